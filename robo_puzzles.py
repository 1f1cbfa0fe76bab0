from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from robo_engine import (
    FUNCTION_NAMES,
    Grid,
    Instruction,
    Program,
    PuzzleConfig,
    PuzzleFormatError,
    Robot,
    Tile,
    count_stars,
    empty_program,
)

CLASSIC_GRID_WIDTH = 16
CLASSIC_GRID_HEIGHT = 12

CLASSIC_DIRECTIONS: Dict[int, str] = {
    0: "right",
    1: "down",
    2: "left",
    3: "up",
}

COLOR_CHARS: Dict[str, Optional[str]] = {
    "R": "red",
    "G": "green",
    "B": "blue",
    ".": None,
}

VOID_CHARS = ("#", " ")

BASE_INSTRUCTIONS: List[str] = ["forward", "left", "right", "f1"]

# AllowedCommands bit -> instruction unlocked by it.
CLASSIC_COMMAND_BITS: List[Tuple[int, str]] = [
    (1, "f2"),
    (2, "f3"),
    (4, "f4"),
    (8, "f5"),
    (16, "paint_red"),
    (32, "paint_green"),
    (64, "paint_blue"),
]


def stars_to_difficulty(stars: int) -> str:
    if stars >= 17:
        return "impossible"
    if stars >= 13:
        return "expert"
    if stars >= 9:
        return "hard"
    if stars >= 5:
        return "medium"
    return "easy"


def estimate_difficulty(sub_lengths: Sequence[int]) -> Tuple[str, int]:
    total_slots = sum(int(x) for x in sub_lengths)
    if total_slots > 20:
        return "expert", 14
    if total_slots > 12:
        return "hard", 10
    if total_slots > 6:
        return "medium", 6
    return "easy", 2


def parse_classic_puzzle(data: Dict[str, Any]) -> PuzzleConfig:
    """Build a puzzle from a classic archive record.

    ``Items`` decides which cells are playable (``#`` void, ``.`` walkable,
    ``*`` star) and ``Colors`` gives the color of every playable cell.
    """
    size = CLASSIC_GRID_WIDTH * CLASSIC_GRID_HEIGHT
    colors = str(data.get("Colors", "")).ljust(size, "#")
    items = str(data.get("Items", "")).ljust(size, ".")

    grid: Grid = []
    for y in range(CLASSIC_GRID_HEIGHT):
        row: List[Optional[Tile]] = []
        for x in range(CLASSIC_GRID_WIDTH):
            idx = y * CLASSIC_GRID_WIDTH + x
            item = items[idx]
            if item == "#":
                row.append(None)
                continue
            color = COLOR_CHARS.get(colors[idx].upper())
            row.append(Tile(color=color, has_star=item == "*"))
        grid.append(row)

    allowed = list(BASE_INSTRUCTIONS)
    mask = int(data.get("AllowedCommands", 0) or 0)
    for bit, name in CLASSIC_COMMAND_BITS:
        if mask & bit:
            allowed.append(name)

    sub_lengths = [int(x) for x in data.get("SubLengths", [])]

    community: Optional[float] = None
    vote_count = int(data.get("DifficultyVoteCount", 0) or 0)
    vote_sum = data.get("DifficultyVoteSum")
    if vote_count > 0 and vote_sum is not None:
        community = float(vote_sum) / vote_count
        stars = max(1, min(20, math.floor((community - 1) * 4.75 + 0.5) + 1))
        difficulty = stars_to_difficulty(stars)
    else:
        difficulty, stars = estimate_difficulty(sub_lengths)

    puzzle_id = str(data.get("Id", ""))
    return PuzzleConfig(
        id=f"classic-{puzzle_id}",
        title=data.get("Title") or f"Puzzle {puzzle_id}",
        description=data.get("About"),
        grid=grid,
        robot_start=Robot(
            position=(int(data.get("RobotCol", 0)), int(data.get("RobotRow", 0))),
            direction=CLASSIC_DIRECTIONS.get(int(data.get("RobotDir", 0)), "right"),
        ),
        function_lengths={
            name: sub_lengths[idx] if idx < len(sub_lengths) else 0 for idx, name in enumerate(FUNCTION_NAMES)
        },
        allowed_instructions=allowed,
        category="classic",
        difficulty=difficulty,
        author=data.get("SubmittedBy") or None,
        stars=stars,
        community_difficulty=round(community, 2) if community is not None else None,
    )


def create_simple_puzzle(
    puzzle_id: str,
    title: str,
    rows: Sequence[str],
    robot: Tuple[int, int],
    direction: str,
    stars: Iterable[Tuple[int, int]],
    *,
    function_lengths: Optional[Dict[str, int]] = None,
    allowed_instructions: Optional[List[str]] = None,
    category: str = "tutorial",
    difficulty: str = "easy",
    description: Optional[str] = None,
    hint: Optional[str] = None,
    warning: Optional[str] = None,
) -> PuzzleConfig:
    star_set = {(int(x), int(y)) for x, y in stars}
    grid: Grid = []
    for y, row_text in enumerate(rows):
        row: List[Optional[Tile]] = []
        for x, ch in enumerate(row_text):
            if ch in VOID_CHARS:
                row.append(None)
                continue
            if ch.upper() not in COLOR_CHARS:
                raise PuzzleFormatError(f"Unknown tile character '{ch}' at ({x}, {y})")
            row.append(Tile(color=COLOR_CHARS[ch.upper()], has_star=(x, y) in star_set))
        grid.append(row)

    lengths = {"f1": 5, "f2": 0, "f3": 0, "f4": 0, "f5": 0}
    lengths.update(function_lengths or {})

    return PuzzleConfig(
        id=puzzle_id,
        title=title,
        description=description,
        grid=grid,
        robot_start=Robot(position=robot, direction=direction),
        function_lengths=lengths,
        allowed_instructions=list(allowed_instructions or BASE_INSTRUCTIONS),
        category=category,
        difficulty=difficulty,
        hint=hint,
        warning=warning,
    )


def validate_puzzle(puzzle: PuzzleConfig) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    x, y = puzzle.robot_start.position
    grid = puzzle.grid
    if y < 0 or y >= len(grid) or x < 0 or x >= len(grid[y]):
        errors.append("Robot starts outside grid")
    elif grid[y][x] is None:
        errors.append("Robot starts on void tile")

    if count_stars(grid) == 0:
        errors.append("No stars in puzzle")

    if puzzle.capacity("f1") == 0:
        errors.append("F1 must have at least one slot")

    return len(errors) == 0, errors


# --- plain-dict encoding


def instruction_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Instruction]:
    if data is None:
        return None
    if not isinstance(data, dict) or "type" not in data:
        raise PuzzleFormatError(f"Invalid instruction payload: {data!r}")
    return Instruction(type=str(data["type"]), condition=data.get("condition"))


def instruction_to_dict(instruction: Optional[Instruction]) -> Optional[Dict[str, Any]]:
    if instruction is None:
        return None
    return {"type": instruction.type, "condition": instruction.condition}


def program_from_dict(data: Dict[str, Any], function_lengths: Dict[str, int]) -> Program:
    program = empty_program(function_lengths)
    for name, slots in data.items():
        if name not in program:
            raise PuzzleFormatError(f"Unknown function '{name}'")
        decoded = [instruction_from_dict(slot) for slot in slots]
        capacity = len(program[name])
        program[name] = decoded[:capacity] + [None] * max(0, capacity - len(decoded))
    return program


def program_to_dict(program: Program) -> Dict[str, List[Optional[Dict[str, Any]]]]:
    return {name: [instruction_to_dict(instr) for instr in slots] for name, slots in program.items()}


def grid_to_rows(grid: Grid) -> List[List[Optional[Dict[str, Any]]]]:
    return [
        [{"color": tile.color, "hasStar": tile.has_star} if tile is not None else None for tile in row]
        for row in grid
    ]


def puzzle_from_dict(data: Dict[str, Any]) -> PuzzleConfig:
    try:
        grid: Grid = [
            [Tile(color=cell.get("color"), has_star=bool(cell.get("hasStar", False))) if cell else None for cell in row]
            for row in data["grid"]
        ]
        start = data["robotStart"]
        robot = Robot(position=(start["position"]["x"], start["position"]["y"]), direction=start["direction"])
        lengths = {name: int(data.get("functionLengths", {}).get(name, 0)) for name in FUNCTION_NAMES}
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise PuzzleFormatError(f"Malformed puzzle definition: {exc}") from exc

    return PuzzleConfig(
        id=str(data.get("id", "")),
        title=str(data.get("title", "")),
        description=data.get("description"),
        grid=grid,
        robot_start=robot,
        function_lengths=lengths,
        allowed_instructions=list(data.get("allowedInstructions", BASE_INSTRUCTIONS)),
        category=data.get("category", "classic"),
        difficulty=data.get("difficulty", "easy"),
        hint=data.get("hint"),
        warning=data.get("warning"),
        author=data.get("author"),
        stars=data.get("stars"),
        community_difficulty=data.get("communityDifficulty"),
    )


def puzzle_to_dict(puzzle: PuzzleConfig) -> Dict[str, Any]:
    x, y = puzzle.robot_start.position
    return {
        "id": puzzle.id,
        "title": puzzle.title,
        "description": puzzle.description,
        "grid": grid_to_rows(puzzle.grid),
        "robotStart": {"position": {"x": x, "y": y}, "direction": puzzle.robot_start.direction},
        "functionLengths": {name: puzzle.capacity(name) for name in FUNCTION_NAMES},
        "allowedInstructions": list(puzzle.allowed_instructions),
        "category": puzzle.category,
        "difficulty": puzzle.difficulty,
        "hint": puzzle.hint,
        "warning": puzzle.warning,
        "author": puzzle.author,
        "stars": puzzle.stars,
        "communityDifficulty": puzzle.community_difficulty,
    }


def builtin_puzzles() -> Dict[str, PuzzleConfig]:
    puzzles = [
        create_simple_puzzle(
            "tutorial-1",
            "First Steps",
            rows=["BBBBB"],
            robot=(0, 0),
            direction="right",
            stars=[(4, 0)],
            function_lengths={"f1": 5},
            hint="Move forward until you reach the star.",
        ),
        create_simple_puzzle(
            "tutorial-2",
            "Around the Corner",
            rows=["BBBB", "###B", "###B"],
            robot=(0, 0),
            direction="right",
            stars=[(3, 2)],
            function_lengths={"f1": 6},
            hint="Turn right when the path bends.",
        ),
        create_simple_puzzle(
            "tutorial-3",
            "Loop Forever",
            rows=["BBBBBBBBBB"],
            robot=(0, 0),
            direction="right",
            stars=[(9, 0)],
            function_lengths={"f1": 2},
            hint="F1 starts over when it runs out of instructions.",
        ),
        create_simple_puzzle(
            "tutorial-4",
            "Red Means Turn",
            rows=["BBBR", "###B", "###B"],
            robot=(0, 0),
            direction="right",
            stars=[(3, 2)],
            function_lengths={"f1": 3},
            hint="Give the turn a red condition.",
        ),
    ]
    return {p.id: p for p in puzzles}
