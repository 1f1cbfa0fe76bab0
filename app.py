from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from play.config import SessionConfig
from play.session import PlaySessionStore, StoredSession
from robo_engine import FUNCTION_NAMES, MAX_STEPS, PuzzleFormatError
from robo_puzzles import (
    builtin_puzzles,
    instruction_from_dict,
    program_from_dict,
    puzzle_from_dict,
    puzzle_to_dict,
    validate_puzzle,
)


class NewSessionRequest(BaseModel):
    puzzle_id: Optional[str] = None
    puzzle: Optional[Dict[str, Any]] = None
    max_steps: int = Field(default=MAX_STEPS, ge=1, le=100_000)


class InstructionPayload(BaseModel):
    type: str
    condition: Optional[str] = None


class SetInstructionRequest(BaseModel):
    function: str
    index: int
    instruction: Optional[InstructionPayload] = None


class SetProgramRequest(BaseModel):
    program: Dict[str, List[Optional[InstructionPayload]]]


class SpeedRequest(BaseModel):
    speed: int


app = FastAPI(title="Robot Puzzle Engine", version="0.1.0")
PUZZLES = builtin_puzzles()
SESSIONS = PlaySessionStore()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _lookup(sid: str) -> StoredSession:
    try:
        return SESSIONS.get_session(sid)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _view(stored: StoredSession, **extra: Any) -> dict:
    payload = {
        "session_id": stored.session_id,
        "snapshot": stored.session.to_dict(),
    }
    payload.update(extra)
    return payload


@app.get("/api/health")
def health() -> dict:
    return {"ok": True}


@app.get("/api/puzzles")
def puzzles() -> dict:
    return {"puzzles": [puzzle_to_dict(p) for p in PUZZLES.values()]}


@app.post("/api/sessions")
def new_session(req: NewSessionRequest) -> dict:
    if req.puzzle is not None:
        try:
            puzzle = puzzle_from_dict(req.puzzle)
        except PuzzleFormatError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        valid, errors = validate_puzzle(puzzle)
        if not valid:
            raise HTTPException(status_code=400, detail="; ".join(errors))
    elif req.puzzle_id is not None:
        if req.puzzle_id not in PUZZLES:
            raise HTTPException(status_code=404, detail=f"Unknown puzzle '{req.puzzle_id}'")
        puzzle = PUZZLES[req.puzzle_id]
    else:
        raise HTTPException(status_code=400, detail="Either puzzle_id or puzzle is required")

    stored = SESSIONS.new_session(puzzle, config=SessionConfig(max_steps=req.max_steps))
    return SESSIONS.describe(stored.session_id)


@app.get("/api/sessions/{sid}")
def session_state(sid: str) -> dict:
    return _view(_lookup(sid))


@app.delete("/api/sessions/{sid}")
def drop_session(sid: str) -> dict:
    stored = _lookup(sid)
    SESSIONS.drop_session(stored.session_id)
    return {"ok": True}


@app.post("/api/sessions/{sid}/instruction")
def set_instruction(sid: str, req: SetInstructionRequest) -> dict:
    stored = _lookup(sid)
    if req.function not in FUNCTION_NAMES:
        raise HTTPException(status_code=400, detail=f"Unknown function '{req.function}'")
    try:
        instruction = instruction_from_dict(req.instruction.model_dump() if req.instruction else None)
    except PuzzleFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    applied = stored.session.set_instruction(req.function, req.index, instruction)
    return _view(stored, applied=applied)


@app.post("/api/sessions/{sid}/program")
def set_program(sid: str, req: SetProgramRequest) -> dict:
    stored = _lookup(sid)
    raw = {name: [slot.model_dump() if slot else None for slot in slots] for name, slots in req.program.items()}
    try:
        program = program_from_dict(raw, stored.session.puzzle.function_lengths)
    except PuzzleFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    applied = stored.session.set_program(program)
    return _view(stored, applied=applied)


@app.post("/api/sessions/{sid}/undo")
def undo(sid: str) -> dict:
    stored = _lookup(sid)
    applied = stored.session.undo()
    return _view(stored, applied=applied)


@app.post("/api/sessions/{sid}/clear")
def clear_program(sid: str) -> dict:
    stored = _lookup(sid)
    applied = stored.session.clear_program()
    return _view(stored, applied=applied)


@app.post("/api/sessions/{sid}/start")
def start(sid: str) -> dict:
    stored = _lookup(sid)
    stored.session.start()
    return _view(stored)


@app.post("/api/sessions/{sid}/pause")
def pause(sid: str) -> dict:
    stored = _lookup(sid)
    stored.session.pause()
    return _view(stored)


@app.post("/api/sessions/{sid}/resume")
def resume(sid: str) -> dict:
    stored = _lookup(sid)
    stored.session.resume()
    return _view(stored)


@app.post("/api/sessions/{sid}/step")
def step(sid: str) -> dict:
    stored = _lookup(sid)
    finished, won = stored.session.step()
    return _view(stored, finished=finished, won=won)


@app.post("/api/sessions/{sid}/backstep")
def backstep(sid: str) -> dict:
    stored = _lookup(sid)
    applied = stored.session.backstep()
    return _view(stored, applied=applied)


@app.post("/api/sessions/{sid}/reset")
def reset(sid: str) -> dict:
    stored = _lookup(sid)
    stored.session.reset()
    return _view(stored)


@app.post("/api/sessions/{sid}/speed")
def set_speed(sid: str, req: SpeedRequest) -> dict:
    stored = _lookup(sid)
    speed = stored.session.set_speed(req.speed)
    return _view(stored, speed=speed)
