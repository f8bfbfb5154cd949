"""Hierarchical scoping of child-task ids.

A parent ``0`` returning ``{"id": "fetch"}`` and ``{"id": "store",
"dependsOn": ["fetch"]}`` produces ``0-fetch`` and ``0-store`` depending on
``0-fetch``. Children without an id get their position (``0-0``, ``0-1``...).

All ids of a batch are planned before any reference is rewritten, so a child
may point at a sibling listed after it. References that do not match a
sibling are passed through untouched; they are expected to be already
qualified (an existing task, an ancestor or an uncle) and are checked when the
children are spawned.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .constants import ID_SEPARATOR
from .validation import ChildTaskSpec


@dataclass
class ScopeResult:
    scoped_children: list[ChildTaskSpec]
    custom_id_map: dict[str, str] = field(default_factory=dict)

    @property
    def planned_ids(self) -> list[str]:
        return [child.id or "" for child in self.scoped_children]


def scoped_child_id(parent_id: str, child_id: str | None, index: int) -> str:
    """Return the globally unique id for the child at ``index``.

    Declared ids are always prefixed, even when they already start with the
    parent id.
    """
    prefix = f"{parent_id}{ID_SEPARATOR}"
    if child_id is None:
        return f"{prefix}{index}"
    return f"{prefix}{child_id}"


def scope_child_tasks(parent_id: str, child_specs: list[ChildTaskSpec]) -> ScopeResult:
    id_map: dict[str, str] = {}
    planned: list[str] = []

    for index, spec in enumerate(child_specs):
        scoped = scoped_child_id(parent_id, spec.id, index)
        planned.append(scoped)
        if spec.id is not None:
            id_map[spec.id] = scoped

    scoped_children = [
        spec.model_copy(
            update={
                "id": planned[index],
                "depends_on": [id_map.get(dep, dep) for dep in spec.depends_on],
            }
        )
        for index, spec in enumerate(child_specs)
    ]
    return ScopeResult(scoped_children=scoped_children, custom_id_map=id_map)
