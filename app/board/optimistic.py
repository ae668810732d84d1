"""Optimistic drag-and-drop board state.

A move is applied to local state at once and then confirmed by a server
round trip. While any round trip is in flight, fresh server state is
ignored: the server payload may predate the write and would snap the
board back. Once every in-flight move has finished, the next server state
replaces local state wholesale.

A failed round trip is logged and the optimistic change is kept; the
next accepted server state corrects it.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

import httpx

from app.board.models import BoardSection, BoardTask, sections_from_payload

logger = logging.getLogger(__name__)

MoveCommit = Callable[[str, str, int], Awaitable[Any]]


class MutationGate:
    """Counts in-flight mutations of one board; a counter so overlapping drags stack."""

    def __init__(self) -> None:
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def begin(self) -> None:
        self._count += 1

    def end(self) -> None:
        self._count = max(0, self._count - 1)

    @property
    def can_apply_external(self) -> bool:
        return self._count == 0


class OptimisticBoard:
    def __init__(self, sections: Iterable[Mapping[str, Any] | BoardSection], commit: MoveCommit):
        self.sections: list[BoardSection] = sections_from_payload(sections)
        self.gate = MutationGate()
        self._commit = commit

    # -------------------- queries --------------------
    def section(self, section_id: str) -> BoardSection | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def find_task(self, task_id: str) -> tuple[BoardSection, BoardTask] | None:
        for section in self.sections:
            for task in section.tasks:
                if task.id == task_id:
                    return section, task
        return None

    def snapshot(self) -> dict[str, list[str]]:
        """Section id -> task ids in display order."""
        return {s.id: [t.id for t in s.tasks] for s in self.sections}

    # -------------------- local mutation --------------------
    def apply_move(self, task_id: str, section_id: str, index: int) -> int | None:
        """Move locally and return the clamped position, or None for unknown ids."""
        found = self.find_task(task_id)
        target = self.section(section_id)
        if found is None or target is None:
            return None

        source, task = found
        source.tasks.remove(task)
        index = max(0, min(index, len(target.tasks)))
        target.tasks.insert(index, task)
        task.section_id = target.id

        for column in {source.id: source, target.id: target}.values():
            for position, t in enumerate(column.tasks):
                t.order = position
        return index

    async def move(self, task_id: str, section_id: str, index: int) -> bool:
        """
        Apply a move locally, then confirm it with the server.

        Returns True when the round trip succeeded.
        """
        self.gate.begin()
        try:
            position = self.apply_move(task_id, section_id, index)
            if position is None:
                return False
            await self._commit(task_id, section_id, position)
            return True
        except Exception:
            logger.exception("Move of task %s to section %s failed", task_id, section_id)
            return False
        finally:
            self.gate.end()

    # -------------------- reconciliation --------------------
    def receive_server_state(self, sections: Iterable[Mapping[str, Any] | BoardSection]) -> bool:
        """Replace local state with server state unless a move is in flight."""
        if not self.gate.can_apply_external:
            logger.debug("Ignoring server state, %s move(s) in flight", self.gate.count)
            return False
        self.sections = copy.deepcopy(sections_from_payload(sections))
        return True


def http_move_commit(client: httpx.AsyncClient) -> MoveCommit:
    """Round trip for a move against ``POST /tasks/{id}/move``."""

    async def commit(task_id: str, section_id: str, order: int) -> Any:
        response = await client.post(
            f"/tasks/{task_id}/move", json={"section_id": section_id, "order": order}
        )
        response.raise_for_status()
        return response.json()

    return commit
