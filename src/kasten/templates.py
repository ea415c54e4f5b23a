"""Template registry keyed by identifier."""

from __future__ import annotations

from typing import TYPE_CHECKING

from kasten.errors import IdentifierConflict, NotFound
from kasten.ids import IdentifierAllocator
from kasten.models import Template

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class TemplateStore:
    def __init__(self, allocator: IdentifierAllocator | None = None) -> None:
        self._allocator = allocator or IdentifierAllocator()
        self._templates: dict[int, Template] = {}

    def register(
        self,
        name: str,
        front_layouts: Iterable[str],
        back_layouts: Iterable[str],
        field_names: Iterable[str],
    ) -> int:
        """Store a new template and return its id.

        Front and back layout counts are not checked against each other.
        """
        template = Template(
            id=self._allocator.allocate(self._templates),
            name=name,
            front_layouts=tuple(front_layouts),
            back_layouts=tuple(back_layouts),
            field_names=tuple(field_names),
        )
        self._templates[template.id] = template
        return template.id

    def restore(self, template: Template) -> None:
        """Install a template loaded from storage under its stored id."""
        if template.id in self._templates:
            msg = f"template id {template.id} already registered"
            raise IdentifierConflict(msg)
        self._templates[template.id] = template

    def get(self, template_id: int) -> Template:
        try:
            return self._templates[template_id]
        except KeyError:
            raise NotFound("template", template_id) from None

    def find(self, name: str) -> Template | None:
        """First template registered under *name*, if any."""
        for t in self._templates.values():
            if t.name == name:
                return t
        return None

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __iter__(self) -> Iterator[Template]:
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)
