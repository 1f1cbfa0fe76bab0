from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from play.config import SessionConfig
from play.history import EditHistory, StepHistory
from robo_engine import ACTIVE_STATUSES, GameEngine, GameState, Instruction, Program, PuzzleConfig, StackFrame
from robo_puzzles import grid_to_rows, program_to_dict, puzzle_to_dict

logger = logging.getLogger(__name__)


class PlaySession:
    """Host-side controller: one engine plus step history, edit undo and playback flags."""

    def __init__(self, puzzle: PuzzleConfig, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.speed = self.config.playback.clamp(self.config.playback.default_speed)
        self.step_history = StepHistory()
        self.edit_history = EditHistory(limit=self.config.history.edit_undo_limit)
        self.load_puzzle(puzzle)

    def load_puzzle(self, puzzle: PuzzleConfig) -> None:
        self.puzzle = puzzle
        self.engine = GameEngine(puzzle, config=self.config.engine_config())
        self.is_running = False
        self.is_paused = False
        self.step_history.clear()
        self.edit_history.clear()

    # --- program editing

    @property
    def can_edit(self) -> bool:
        return not self.is_running or self.is_paused

    def _edit(self, apply: Callable[[], None]) -> bool:
        if not self.can_edit:
            return False
        before = self.engine.get_program()
        apply()
        # Out-of-range slots and unknown functions leave the program as it was.
        if self.engine.get_program() == before:
            return False
        self.edit_history.record(before)
        return True

    def set_instruction(self, function_name: str, index: int, instruction: Optional[Instruction]) -> bool:
        return self._edit(lambda: self.engine.set_instruction(function_name, index, instruction))

    def clear_function(self, function_name: str) -> bool:
        return self._edit(lambda: self.engine.clear_function(function_name))

    def clear_program(self) -> bool:
        return self._edit(self.engine.clear_program)

    def set_program(self, program: Program) -> bool:
        return self._edit(lambda: self.engine.set_program(program))

    def undo(self) -> bool:
        if not self.can_edit:
            return False
        previous = self.edit_history.undo()
        if previous is None:
            return False
        self.engine.set_program(previous)
        return True

    # --- execution controls

    def start(self) -> None:
        self.engine.start()
        self.is_running = True
        self.is_paused = False
        self.step_history.clear()

    def pause(self) -> None:
        self.engine.pause()
        self.is_paused = self.engine.state.status == "paused"

    def resume(self) -> None:
        self.engine.resume()
        self.is_paused = self.engine.state.status == "paused"

    def step(self) -> Tuple[bool, bool]:
        if self.engine.state.status in ACTIVE_STATUSES:
            self.step_history.push(self.engine.create_snapshot())
        result = self.engine.step()
        if result.finished:
            self.is_running = False
            self.is_paused = False
        return result.finished, result.won

    def backstep(self) -> bool:
        snapshot = self.step_history.pop()
        if snapshot is None:
            return False
        self.engine.restore_snapshot(snapshot)
        self.is_running = self.engine.state.status in ACTIVE_STATUSES
        self.is_paused = self.engine.state.status == "paused"
        return True

    def reset(self) -> None:
        self.engine.reset()
        self.is_running = False
        self.is_paused = False
        self.step_history.clear()

    def set_speed(self, speed: int) -> int:
        self.speed = self.config.playback.clamp(speed)
        return self.speed

    # --- queries

    @property
    def state(self) -> GameState:
        return self.engine.get_state()

    @property
    def program(self) -> Program:
        return self.engine.get_program()

    @property
    def current_position(self) -> Optional[Tuple[str, int]]:
        return self.engine.get_current_position()

    @property
    def call_stack(self) -> List[StackFrame]:
        return self.engine.get_call_stack()

    @property
    def can_backstep(self) -> bool:
        return self.step_history.can_backstep

    @property
    def can_undo(self) -> bool:
        return self.edit_history.can_undo

    @property
    def instructions_used(self) -> int:
        return self.engine.count_instructions()

    def to_dict(self) -> Dict[str, Any]:
        state = self.engine.get_state()
        metrics = self.engine.get_metrics()
        x, y = state.robot.position
        position = self.current_position
        return {
            "puzzleId": state.puzzle_id,
            "status": state.status,
            "robot": {"x": x, "y": y, "direction": state.robot.direction},
            "grid": grid_to_rows(state.grid),
            "starsCollected": state.stars_collected,
            "totalStars": state.total_stars,
            "steps": state.steps,
            "isRunning": self.is_running,
            "isPaused": self.is_paused,
            "speed": self.speed,
            "program": program_to_dict(self.engine.get_program()),
            "currentPosition": {"function": position[0], "index": position[1]} if position else None,
            "callStack": [{"function": f.function_name, "index": f.instruction_index} for f in self.call_stack],
            "stackDepth": self.engine.get_stack_depth(),
            "canBackstep": self.can_backstep,
            "canUndo": self.can_undo,
            "instructionsUsed": self.instructions_used,
            "metrics": {
                "maxStackDepth": metrics.max_stack_depth,
                "conditionalsExecuted": metrics.conditionals_executed,
                "functionsCalled": metrics.functions_called,
                "paintsExecuted": metrics.paints_executed,
                "tilesVisited": metrics.tiles_visited,
            },
        }


@dataclass
class StoredSession:
    session_id: str
    session: PlaySession
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class PlaySessionStore:
    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.sessions: Dict[str, StoredSession] = {}

    def new_session(self, puzzle: PuzzleConfig, config: Optional[SessionConfig] = None) -> StoredSession:
        sid = uuid.uuid4().hex[:12]
        stored = StoredSession(session_id=sid, session=PlaySession(puzzle, config=config or self.config))
        self.sessions[sid] = stored
        logger.info("Created session %s for puzzle %s", sid, puzzle.id)
        return stored

    def get_session(self, sid: str) -> StoredSession:
        if sid not in self.sessions:
            raise KeyError(f"Unknown session '{sid}'")
        return self.sessions[sid]

    def drop_session(self, sid: str) -> None:
        if self.sessions.pop(sid, None) is None:
            raise KeyError(f"Unknown session '{sid}'")

    def describe(self, sid: str) -> Dict[str, Any]:
        stored = self.get_session(sid)
        return {
            "session_id": stored.session_id,
            "created_at": stored.created_at,
            "puzzle": puzzle_to_dict(stored.session.puzzle),
            "snapshot": stored.session.to_dict(),
        }
