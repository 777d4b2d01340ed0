# session.py
# Serializable records: full sessions, quick-saves and the leaderboard.

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator, model_validator

from tilemerge.config import LEADERBOARD_SIZE, MAX_UNDOS, DEFAULT_TARGET, Difficulty, GameMode
from tilemerge.core import GameStatus
from tilemerge.errors import MalformedSession
from tilemerge.grid import Grid, validate_grid

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

Record = Union[dict, str, bytes]
ModelT = TypeVar("ModelT", bound=BaseModel)

# Tiles must be real integers, never coerced from bool or str.
Board = List[List[StrictInt]]


def _check_board(board: Grid, size: int) -> None:
    n = validate_grid(board)
    if n != size:
        raise ValueError(f"Board is {n}x{n} but the record declares size {size}.")


# --- Leaderboard ---

class LeaderboardEntry(BaseModel):
    """One finished (won or lost) round."""
    score: int = Field(..., ge=0, description="Final score of the round.")
    timestamp: str = Field(..., description="Local time the score was recorded, YYYY-MM-DD HH:MM:SS.")
    grid_size: int = Field(..., gt=1, description="Dimension N of the board the round was played on.")
    target: int = Field(..., gt=0, description="Win tile of the round.")

    @classmethod
    def now(cls, score: int, grid_size: int, target: int, when: Optional[datetime] = None) -> "LeaderboardEntry":
        when = when or datetime.now()
        return cls(score=score, timestamp=when.strftime(TIMESTAMP_FORMAT), grid_size=grid_size, target=target)


def submit_score(
    leaderboard: Sequence[LeaderboardEntry],
    entry: LeaderboardEntry,
    limit: int = LEADERBOARD_SIZE,
) -> List[LeaderboardEntry]:
    """
    Inserts an entry and returns the new leaderboard.

    Entries are ordered by descending score; equal scores keep insertion order
    (sorted() is stable under reverse=True). Only the best `limit` survive.
    """
    entries = list(leaderboard) + [entry]
    entries = sorted(entries, key=lambda e: e.score, reverse=True)
    return entries[:limit]


def parse_leaderboard(raw: Any) -> List[LeaderboardEntry]:
    """
    Rebuilds a leaderboard from its stored form.
    Raises:
        MalformedSession: If the stored value is not a list of valid entries.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedSession("Leaderboard record must be a list.")
    try:
        entries = [LeaderboardEntry.model_validate(item) for item in raw]
    except ValidationError as e:
        raise MalformedSession(f"Invalid leaderboard entry: {e}") from e
    return sorted(entries, key=lambda e: e.score, reverse=True)[:LEADERBOARD_SIZE]


# --- Sessions ---

class UndoEntry(BaseModel):
    board: Board
    score: int = Field(..., ge=0)


class QuickSave(BaseModel):
    """Lossy crash-recovery record: no undo history, no players or status."""
    size: int = Field(..., gt=1)
    board: Board
    score: int = Field(..., ge=0)
    target: int = Field(default=DEFAULT_TARGET, gt=0)
    difficulty: Difficulty = Difficulty.NORMAL

    @model_validator(mode="after")
    def check_board_matches_size(self) -> "QuickSave":
        _check_board(self.board, self.size)
        return self


class SessionSnapshot(BaseModel):
    """Everything needed to resume a game exactly, undo history included."""
    size: int = Field(..., gt=1, description="Dimension N of the board.")
    board: Board = Field(..., description="The N x N game board.")
    score: int = Field(..., ge=0)
    best_score: int = Field(default=0, ge=0)
    target: int = Field(..., gt=0)
    difficulty: Difficulty = Difficulty.NORMAL
    mode: GameMode = GameMode.SINGLE
    current_player: int = Field(default=1, ge=1, le=2)
    status: GameStatus = GameStatus.PLAYING
    allow_continue: bool = True
    continued: bool = Field(default=False, description="True once play has continued past a win.")
    undo: List[UndoEntry] = Field(default_factory=list, description="Oldest entry first.")

    @field_validator("undo")
    @classmethod
    def check_undo_is_bounded(cls, undo: List[UndoEntry]) -> List[UndoEntry]:
        if len(undo) > MAX_UNDOS:
            raise ValueError(f"Undo history holds {len(undo)} entries, at most {MAX_UNDOS} allowed.")
        return undo

    @model_validator(mode="after")
    def check_boards_match_size(self) -> "SessionSnapshot":
        _check_board(self.board, self.size)
        for entry in self.undo:
            _check_board(entry.board, self.size)
        if self.best_score < self.score:
            self.best_score = self.score
        return self


def _load_record(model: Type[ModelT], record: Record) -> ModelT:
    if isinstance(record, BaseModel):
        record = record.model_dump(mode="json")
    try:
        if isinstance(record, (str, bytes)):
            return model.model_validate_json(record)
        if not isinstance(record, dict):
            raise MalformedSession(f"{model.__name__} record must be a mapping, got {type(record).__name__}.")
        return model.model_validate(record)
    except ValidationError as e:
        raise MalformedSession(f"Malformed {model.__name__}: {e}") from e


def serialize_session(snapshot: SessionSnapshot) -> dict:
    """Returns the JSON-compatible form of a session."""
    return snapshot.model_dump(mode="json")


def deserialize_session(record: Record) -> SessionSnapshot:
    """
    Rebuilds a session from a dict or a JSON document.
    Raises:
        MalformedSession: If the record does not describe a playable game
                          (bad grid shape, bad tile values, negative score).
    """
    snapshot = _load_record(SessionSnapshot, record)
    logger.debug("Deserialized %dx%d session with %d undo entries", snapshot.size, snapshot.size, len(snapshot.undo))
    return snapshot


def serialize_quick_save(quick: QuickSave) -> dict:
    return quick.model_dump(mode="json")


def deserialize_quick_save(record: Record) -> QuickSave:
    return _load_record(QuickSave, record)
