# config.py
# Game settings and the tunables shared by the engine.

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tilemerge.errors import InvalidConfig

MAX_UNDOS = 20
LEADERBOARD_SIZE = 10
DEFAULT_SIZE = 4
DEFAULT_TARGET = 2048


class Difficulty(str, Enum):
    """Controls how often a spawned tile is a 4 instead of a 2."""
    NORMAL = "normal"
    HARD = "hard"
    EXTREME = "extreme"


class GameMode(str, Enum):
    SINGLE = "single"
    PASS_AND_PLAY = "pass-and-play"


# Probability that a spawned tile is a 2.
SPAWN_CHANCE: Dict[Difficulty, float] = {
    Difficulty.NORMAL: 0.9,
    Difficulty.HARD: 0.75,
    Difficulty.EXTREME: 0.5,
}


def spawn_chance(difficulty: Union[Difficulty, str]) -> float:
    return SPAWN_CHANCE[Difficulty(difficulty)]


class GameConfig(BaseModel):
    """Settings for creating a new game."""
    model_config = ConfigDict(frozen=True)

    size: int = Field(
        default=DEFAULT_SIZE,
        gt=1,  # Board size must be at least 2x2
        description="Size of the N x N game board (e.g., 4 for a 4x4 board)."
    )
    target: int = Field(
        default=DEFAULT_TARGET,
        gt=0,
        description="The tile value to reach for winning the round (e.g., 2048)."
    )
    difficulty: Difficulty = Field(
        default=Difficulty.NORMAL,
        description="Spawn difficulty: normal, hard or extreme."
    )
    mode: GameMode = Field(
        default=GameMode.SINGLE,
        description="single, or pass-and-play to alternate turns between two players."
    )
    allow_continue: bool = Field(
        default=True,
        description="Whether play may continue after the target tile is reached."
    )


def make_config(config: Optional[Union[GameConfig, Mapping[str, Any]]] = None, **overrides: Any) -> GameConfig:
    """
    Builds a validated GameConfig.
    Args:
        config: An existing GameConfig, a mapping of settings, or None for defaults.
        **overrides: Individual settings that replace those in `config`.
    Returns:
        GameConfig: The validated settings.
    Raises:
        InvalidConfig: If any setting is out of range or of the wrong type.
    """
    if isinstance(config, GameConfig):
        data = config.model_dump()
    elif config is None:
        data = {}
    else:
        data = dict(config)
    data.update(overrides)
    try:
        return GameConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(f"Invalid game configuration: {e}") from e
