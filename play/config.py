from __future__ import annotations

from dataclasses import dataclass, field

from robo_engine import MAX_STEPS, EngineConfig

# Playback speeds in milliseconds per step.
SPEED_SLOW = 1000
SPEED_MEDIUM = 500
SPEED_FAST = 100
SPEED_LIGHTNING = 25


@dataclass
class PlaybackConfig:
    default_speed: int = SPEED_SLOW
    min_speed: int = SPEED_LIGHTNING
    max_speed: int = SPEED_SLOW

    def clamp(self, speed: int) -> int:
        return max(self.min_speed, min(self.max_speed, int(speed)))


@dataclass
class HistoryConfig:
    edit_undo_limit: int = 50


@dataclass
class SessionConfig:
    max_steps: int = MAX_STEPS
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)

    def engine_config(self) -> EngineConfig:
        return EngineConfig(max_steps=self.max_steps)
