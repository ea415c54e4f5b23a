"""Flat encoding of sequences into a single text column.

    encode(["a", "b"])         -> "a\\x1fb"
    decode("1\\x1f2", int)     -> [1, 2]

Elements are joined with the ASCII unit separator (0x1F). Values are not
escaped: text containing 0x1F splits into extra elements on decode, and
``[]`` and ``[""]`` both encode to the empty string.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kasten.errors import DecodeError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

SEPARATOR = "\x1f"


def encode(values: Iterable[Any]) -> str:
    return SEPARATOR.join(str(v) for v in values)


def decode(text: str | None, parse: Callable[[str], Any] = str) -> list[Any]:
    """Split *text* on the separator and parse each token.

    Raises DecodeError when *text* is not a string or *parse* rejects a token.
    """
    if text is None or text == "":
        return []
    if not isinstance(text, str):
        msg = f"expected text, got {type(text).__name__} {text!r}"
        raise DecodeError(msg)
    out: list[Any] = []
    for i, token in enumerate(text.split(SEPARATOR)):
        try:
            out.append(parse(token))
        except (TypeError, ValueError) as exc:
            msg = f"bad token #{i} {token!r}: {exc}"
            raise DecodeError(msg) from exc
    return out


def parse_uint(token: str) -> int:
    value = int(token)
    if value < 0:
        msg = f"negative value {value}"
        raise ValueError(msg)
    return value


def decode_uints(text: str | None) -> list[int]:
    return decode(text, parse_uint)
