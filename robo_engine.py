from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

MAX_STEPS = 10_000

FUNCTION_NAMES: List[str] = ["f1", "f2", "f3", "f4", "f5"]
COLORS: Tuple[str, ...] = ("red", "green", "blue")

DIRECTION_DELTAS: Dict[str, Tuple[int, int]] = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}

TURN_LEFT: Dict[str, str] = {
    "up": "left",
    "left": "down",
    "down": "right",
    "right": "up",
}

TURN_RIGHT: Dict[str, str] = {
    "up": "right",
    "right": "down",
    "down": "left",
    "left": "up",
}

PAINT_COLORS: Dict[str, str] = {
    "paint_red": "red",
    "paint_green": "green",
    "paint_blue": "blue",
}

INSTRUCTION_TYPES: List[str] = ["forward", "left", "right", *FUNCTION_NAMES, *PAINT_COLORS, "noop"]

ACTIVE_STATUSES = ("running", "paused")


class PuzzleFormatError(ValueError):
    pass


@dataclass
class Tile:
    color: Optional[str] = None
    has_star: bool = False

    def __post_init__(self) -> None:
        if self.color is not None and self.color not in COLORS:
            raise PuzzleFormatError(f"Unknown tile color '{self.color}'")


Grid = List[List[Optional[Tile]]]


@dataclass
class Robot:
    position: Tuple[int, int]
    direction: str

    def __post_init__(self) -> None:
        if self.direction not in DIRECTION_DELTAS:
            raise PuzzleFormatError(f"Unknown direction '{self.direction}'")
        self.position = (int(self.position[0]), int(self.position[1]))

    def copy(self) -> "Robot":
        return Robot(position=self.position, direction=self.direction)


@dataclass(frozen=True)
class Instruction:
    type: str
    condition: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in INSTRUCTION_TYPES:
            raise PuzzleFormatError(f"Unknown instruction type '{self.type}'")
        if self.condition is not None and self.condition not in COLORS:
            raise PuzzleFormatError(f"Unknown condition color '{self.condition}'")


Program = Dict[str, List[Optional[Instruction]]]


@dataclass
class StackFrame:
    function_name: str
    instruction_index: int = 0

    def copy(self) -> "StackFrame":
        return StackFrame(self.function_name, self.instruction_index)


@dataclass
class PuzzleConfig:
    id: str
    title: str
    grid: Grid
    robot_start: Robot
    function_lengths: Dict[str, int]
    allowed_instructions: List[str] = field(default_factory=lambda: ["forward", "left", "right", "f1"])
    category: str = "classic"
    difficulty: str = "easy"
    description: Optional[str] = None
    hint: Optional[str] = None
    warning: Optional[str] = None
    author: Optional[str] = None
    stars: Optional[int] = None
    community_difficulty: Optional[float] = None

    def capacity(self, function_name: str) -> int:
        return max(0, int(self.function_lengths.get(function_name, 0)))

    @property
    def total_capacity(self) -> int:
        return sum(self.capacity(name) for name in FUNCTION_NAMES)


@dataclass
class GameState:
    puzzle_id: str
    robot: Robot
    grid: Grid
    stars_collected: int = 0
    total_stars: int = 0
    steps: int = 0
    status: str = "idle"

    def copy(self) -> "GameState":
        return GameState(
            puzzle_id=self.puzzle_id,
            robot=self.robot.copy(),
            grid=clone_grid(self.grid),
            stars_collected=self.stars_collected,
            total_stars=self.total_stars,
            steps=self.steps,
            status=self.status,
        )


@dataclass
class ExecutionMetrics:
    max_stack_depth: int = 0
    conditionals_executed: int = 0
    functions_called: int = 0
    paints_executed: int = 0
    visited: Set[Tuple[int, int]] = field(default_factory=set)

    @property
    def tiles_visited(self) -> int:
        return len(self.visited)

    def copy(self) -> "ExecutionMetrics":
        return ExecutionMetrics(
            max_stack_depth=self.max_stack_depth,
            conditionals_executed=self.conditionals_executed,
            functions_called=self.functions_called,
            paints_executed=self.paints_executed,
            visited=set(self.visited),
        )


@dataclass
class Snapshot:
    state: GameState
    stack: List[StackFrame]
    metrics: ExecutionMetrics


@dataclass
class StepResult:
    state: GameState
    finished: bool
    won: bool


@dataclass
class EngineConfig:
    max_steps: int = MAX_STEPS


def clone_grid(grid: Grid) -> Grid:
    return [[Tile(tile.color, tile.has_star) if tile is not None else None for tile in row] for row in grid]


def count_stars(grid: Grid) -> int:
    return sum(1 for row in grid for tile in row if tile is not None and tile.has_star)


def empty_program(function_lengths: Dict[str, int]) -> Program:
    return {name: [None] * max(0, int(function_lengths.get(name, 0))) for name in FUNCTION_NAMES}


def copy_program(program: Program) -> Program:
    # Instructions are frozen, so copying the slot lists is enough.
    return {name: list(slots) for name, slots in program.items()}


def count_program_instructions(program: Program) -> int:
    return sum(1 for slots in program.values() for instr in slots if instr is not None)


class GameEngine:
    """Resumable interpreter for a robot program over a tile grid.

    One call to ``step`` executes exactly one instruction; empty slots and
    instructions whose color condition does not match are skipped inside the
    same call. Callers only ever receive copies of the engine's state.
    """

    def __init__(self, puzzle: PuzzleConfig, config: Optional[EngineConfig] = None):
        self.puzzle = puzzle
        self.config = config or EngineConfig()
        self._initial_grid = clone_grid(puzzle.grid)
        self.program: Program = empty_program(puzzle.function_lengths)
        self.stack: List[StackFrame] = []
        self.metrics = ExecutionMetrics()
        self.state = self._create_initial_state()

    def _create_initial_state(self) -> GameState:
        grid = clone_grid(self._initial_grid)
        return GameState(
            puzzle_id=self.puzzle.id,
            robot=self.puzzle.robot_start.copy(),
            grid=grid,
            total_stars=count_stars(grid),
        )

    # --- program store

    def set_program(self, program: Program) -> None:
        fitted: Program = {}
        for name in FUNCTION_NAMES:
            capacity = self.puzzle.capacity(name)
            slots = list(program.get(name, []))[:capacity]
            fitted[name] = slots + [None] * (capacity - len(slots))
        self.program = fitted

    def get_program(self) -> Program:
        return copy_program(self.program)

    def set_instruction(self, function_name: str, index: int, instruction: Optional[Instruction]) -> None:
        slots = self.program.get(function_name)
        if slots is None:
            return
        if 0 <= index < len(slots):
            slots[index] = instruction

    def clear_function(self, function_name: str) -> None:
        slots = self.program.get(function_name)
        if slots is None:
            return
        for idx in range(len(slots)):
            slots[idx] = None

    def clear_program(self) -> None:
        for name in FUNCTION_NAMES:
            self.clear_function(name)

    def is_instruction_allowed(self, instruction: Instruction) -> bool:
        return instruction.type in self.puzzle.allowed_instructions

    def count_instructions(self) -> int:
        return count_program_instructions(self.program)

    # --- control surface

    def start(self) -> None:
        if self.state.status != "idle":
            self.reset()
        self.state.status = "running"
        self.stack = [StackFrame("f1", 0)]
        self.metrics.max_stack_depth = 1
        self.metrics.visited.add(self.state.robot.position)
        logger.info("Run started for puzzle %s", self.puzzle.id)

    def pause(self) -> None:
        if self.state.status == "running":
            self.state.status = "paused"

    def resume(self) -> None:
        if self.state.status == "paused":
            self.state.status = "running"

    def reset(self) -> None:
        self.state = self._create_initial_state()
        self.stack = []
        self.metrics = ExecutionMetrics()
        logger.debug("Engine reset for puzzle %s", self.puzzle.id)

    def step(self) -> StepResult:
        status = self.state.status
        if status not in ACTIVE_STATUSES:
            return self._result(finished=True, won=status == "won")

        if self.state.steps >= self.config.max_steps:
            return self._finish_lost(f"step ceiling of {self.config.max_steps} reached")

        reseeds = 0
        while True:
            if self._settle_stack():
                reseeds += 1
                # F1 was scanned from its first slot without executing anything,
                # and skips never change the world, so no later step could either.
                if reseeds > 1:
                    break
            frame = self.stack[-1]
            if self._frame_exhausted(frame):
                # Only possible when F1 has no slots at all.
                break
            instruction = self.program[frame.function_name][frame.instruction_index]
            # The stored index always points at the next slot to check.
            frame.instruction_index += 1

            if instruction is None:
                continue
            if instruction.condition is not None:
                tile = self._tile_at_robot()
                if tile is None or tile.color != instruction.condition:
                    continue
                self.metrics.conditionals_executed += 1

            return self._execute(instruction)

        return self._finish_lost("program has no executable instruction")

    def run_to_completion(self) -> StepResult:
        self.start()
        result = self.step()
        while not result.finished:
            result = self.step()
        return result

    # --- snapshots

    def create_snapshot(self) -> Snapshot:
        return Snapshot(
            state=self.state.copy(),
            stack=[frame.copy() for frame in self.stack],
            metrics=self.metrics.copy(),
        )

    def restore_snapshot(self, snapshot: Snapshot) -> None:
        self.state = snapshot.state.copy()
        self.stack = [frame.copy() for frame in snapshot.stack]
        self.metrics = snapshot.metrics.copy()

    # --- read-only queries

    def get_state(self) -> GameState:
        return self.state.copy()

    def get_puzzle(self) -> PuzzleConfig:
        return self.puzzle

    def get_metrics(self) -> ExecutionMetrics:
        return self.metrics.copy()

    def get_stack_depth(self) -> int:
        return len(self.stack)

    def get_call_stack(self) -> List[StackFrame]:
        if not self.stack and self.state.status in ACTIVE_STATUSES:
            return [StackFrame("f1", 0)]
        return [frame.copy() for frame in self.stack]

    def get_current_position(self) -> Optional[Tuple[str, int]]:
        if not self.stack:
            if self.state.status in ACTIVE_STATUSES:
                return ("f1", 0)
            return None
        frame = self.stack[-1]
        return (frame.function_name, frame.instruction_index)

    # --- internals

    def _result(self, finished: bool, won: bool) -> StepResult:
        return StepResult(state=self.get_state(), finished=finished, won=won)

    def _finish_lost(self, reason: str) -> StepResult:
        self.state.status = "lost"
        logger.info("Run lost after %d steps: %s", self.state.steps, reason)
        return self._result(finished=True, won=False)

    def _frame_exhausted(self, frame: StackFrame) -> bool:
        return frame.instruction_index >= len(self.program.get(frame.function_name, []))

    def _ensure_root_frame(self) -> bool:
        # F1 loops forever: an empty stack restarts it from the top.
        if self.stack:
            return False
        self.stack.append(StackFrame("f1", 0))
        return True

    def _settle_stack(self) -> bool:
        """Pop exhausted frames; returns True when F1 had to be reseeded."""
        while self.stack and self._frame_exhausted(self.stack[-1]):
            self.stack.pop()
        return self._ensure_root_frame()

    def _tile_at(self, position: Tuple[int, int]) -> Optional[Tile]:
        x, y = position
        grid = self.state.grid
        if y < 0 or y >= len(grid):
            return None
        row = grid[y]
        if x < 0 or x >= len(row):
            return None
        return row[x]

    def _tile_at_robot(self) -> Optional[Tile]:
        return self._tile_at(self.state.robot.position)

    def _execute(self, instruction: Instruction) -> StepResult:
        self._apply_effect(instruction.type)
        self.state.steps += 1
        logger.debug(
            "step %d: %s at %s facing %s",
            self.state.steps,
            instruction.type,
            self.state.robot.position,
            self.state.robot.direction,
        )

        tile = self._tile_at_robot()
        if tile is None:
            return self._finish_lost(f"robot left the board at {self.state.robot.position}")
        self.metrics.visited.add(self.state.robot.position)

        if tile.has_star:
            tile.has_star = False
            self.state.stars_collected += 1
            if self.state.stars_collected >= self.state.total_stars:
                self.state.status = "won"
                logger.info("Run won after %d steps", self.state.steps)
                return self._result(finished=True, won=True)

        # Keep the top frame pointing at a real slot for the next step and for
        # "next instruction" queries.
        self._settle_stack()
        return self._result(finished=False, won=False)

    def _apply_effect(self, kind: str) -> None:
        robot = self.state.robot
        if kind == "forward":
            dx, dy = DIRECTION_DELTAS[robot.direction]
            x, y = robot.position
            robot.position = (x + dx, y + dy)
        elif kind == "left":
            robot.direction = TURN_LEFT[robot.direction]
        elif kind == "right":
            robot.direction = TURN_RIGHT[robot.direction]
        elif kind in PAINT_COLORS:
            tile = self._tile_at_robot()
            if tile is not None:
                tile.color = PAINT_COLORS[kind]
            self.metrics.paints_executed += 1
        elif kind in FUNCTION_NAMES:
            self.stack.append(StackFrame(kind, 0))
            self.metrics.functions_called += 1
            self.metrics.max_stack_depth = max(self.metrics.max_stack_depth, len(self.stack))
        # noop: nothing to do
