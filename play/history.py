from __future__ import annotations

from typing import List, Optional

from robo_engine import Program, Snapshot, copy_program


class StepHistory:
    """Snapshots taken before each executed step, newest last."""

    def __init__(self) -> None:
        self.snapshots: List[Snapshot] = []

    def __len__(self) -> int:
        return len(self.snapshots)

    @property
    def can_backstep(self) -> bool:
        return len(self.snapshots) > 0

    def push(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    def pop(self) -> Optional[Snapshot]:
        if not self.snapshots:
            return None
        return self.snapshots.pop()

    def clear(self) -> None:
        self.snapshots.clear()


class EditHistory:
    def __init__(self, limit: int = 50):
        self.limit = max(1, int(limit))
        self.entries: List[Program] = []

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def can_undo(self) -> bool:
        return len(self.entries) > 0

    def record(self, program: Program) -> None:
        self.entries.append(copy_program(program))
        if len(self.entries) > self.limit:
            self.entries.pop(0)

    def undo(self) -> Optional[Program]:
        if not self.entries:
            return None
        return self.entries.pop()

    def clear(self) -> None:
        self.entries.clear()
