"""Client-side board view models.

Built from the ``ProjectDetail`` payload served by ``GET /projects/{id}``;
sections keep their display order and each holds its tasks in order.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


@dataclass
class BoardTask:
    id: str
    title: str
    section_id: str
    order: int = 0
    completed: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BoardTask":
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or ""),
            section_id=str(raw["section_id"]),
            order=int(raw.get("order") or 0),
            completed=bool(raw.get("completed", False)),
        )


@dataclass
class BoardSection:
    id: str
    name: str
    order: int = 0
    tasks: list[BoardTask] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BoardSection":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            order=int(raw.get("order") or 0),
            tasks=[BoardTask.from_dict(t) for t in raw.get("tasks", [])],
        )


def sections_from_payload(sections: Iterable[Mapping[str, Any] | BoardSection]) -> list[BoardSection]:
    return [s if isinstance(s, BoardSection) else BoardSection.from_dict(s) for s in sections]
