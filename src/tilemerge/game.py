# game.py
# The game state machine. A Game is the single owner of the live board; everything it
# hands out (boards, states, results) is a copy.

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, List, Mapping, Optional, Tuple, Union

from tilemerge import session
from tilemerge.ai import select_move
from tilemerge.config import (
    MAX_UNDOS,
    Difficulty,
    GameConfig,
    GameMode,
    make_config,
    spawn_chance,
)
from tilemerge.core import Cell, Direction, GameStatus, MoveResult, process_move
from tilemerge.errors import MalformedSession
from tilemerge.grid import Grid, can_move, copy_grid, empty_grid, get_empty_cells, has_tile_at_least
from tilemerge.session import LeaderboardEntry, QuickSave, SessionSnapshot, UndoEntry
from tilemerge.storage import (
    BEST_SCORE_KEY,
    LEADERBOARD_KEY,
    QUICK_SAVE_KEY,
    SESSION_KEY,
    KeyValueStore,
    MemoryStore,
)

logger = logging.getLogger(__name__)

# Errors a store may raise; persistence is best-effort and never undoes a move.
_STORE_ERRORS = (OSError, ValueError, TypeError)


class UndoStack:
    """Bounded history of (board, score) pairs. The oldest entry is evicted once full."""

    def __init__(self, capacity: int = MAX_UNDOS):
        self.capacity = capacity
        self._entries: Deque[Tuple[Grid, int]] = deque(maxlen=capacity)

    def push(self, board: Grid, score: int) -> None:
        self._entries.append((copy_grid(board), score))

    def pop(self) -> Optional[Tuple[Grid, int]]:
        if not self._entries:
            return None
        return self._entries.pop()

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[Tuple[Grid, int]]:
        """Copies of the stored entries, oldest first."""
        return [(copy_grid(board), score) for board, score in self._entries]

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class GameState:
    """Read-only view of a game for renderers."""
    board: Grid
    size: int
    score: int
    best_score: int
    target: int
    difficulty: Difficulty
    mode: GameMode
    allow_continue: bool
    current_player: int
    status: GameStatus
    undo_depth: int
    message: str


class Game:
    """
    One player's (or one pass-and-play pair's) game.

    External drivers call `apply_move`, `undo`, `setup` and friends; each call runs to
    completion synchronously. Hosts that deliver input from several threads must
    serialize those calls themselves.
    """

    def __init__(
        self,
        config: Optional[Union[GameConfig, Mapping[str, Any]]] = None,
        rng: Optional[random.Random] = None,
        store: Optional[KeyValueStore] = None,
        ai_rng: Optional[random.Random] = None,
        restore_quick_save: bool = False,
    ):
        self.config = make_config(config)
        self.rng = rng or random.Random()
        self.ai_rng = ai_rng or self.rng
        self.store = store if store is not None else MemoryStore()
        self.best_score = self._load_best_score()
        self.message = ""
        self._undo = UndoStack()
        self._board: Grid = empty_grid(self.config.size)
        self._score = 0
        self._continued = False
        self.status = GameStatus.PLAYING
        self.current_player = 1
        # Read the quick-save before setup overwrites it.
        quick = self._read(QUICK_SAVE_KEY) if restore_quick_save else None
        self.setup(self.config)
        if quick is not None:
            self.quick_restore(quick)

    @classmethod
    def from_session(cls, record: session.Record, rng: Optional[random.Random] = None,
                     store: Optional[KeyValueStore] = None) -> "Game":
        """Builds a game straight from a saved session. Raises MalformedSession."""
        snapshot = session.deserialize_session(record)
        game = cls(
            config=dict(size=snapshot.size, target=snapshot.target, difficulty=snapshot.difficulty,
                        mode=snapshot.mode, allow_continue=snapshot.allow_continue),
            rng=rng,
            store=store,
        )
        game._restore(snapshot)
        return game

    # --- Read access ---

    @property
    def board(self) -> Grid:
        return copy_grid(self._board)

    @property
    def score(self) -> int:
        return self._score

    @property
    def size(self) -> int:
        return self.config.size

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    def get_state(self) -> GameState:
        return GameState(
            board=copy_grid(self._board),
            size=self.config.size,
            score=self._score,
            best_score=self.best_score,
            target=self.config.target,
            difficulty=self.config.difficulty,
            mode=self.config.mode,
            allow_continue=self.config.allow_continue,
            current_player=self.current_player,
            status=self.status,
            undo_depth=len(self._undo),
            message=self.message,
        )

    # --- Setup ---

    def setup(self, config: Optional[Union[GameConfig, Mapping[str, Any]]] = None, **overrides: Any) -> GameState:
        """
        Starts a fresh round: empty board with two spawned tiles, score 0, no undo history.

        With no arguments the current settings are reused (a restart).
        Raises:
            InvalidConfig: If the new settings are invalid. The running game is left untouched.
        """
        self.config = make_config(config if config is not None else self.config, **overrides)
        self._board = empty_grid(self.config.size)
        self._score = 0
        self._undo.clear()
        self._continued = False
        self.status = GameStatus.PLAYING
        self.current_player = 1
        self._spawn_tile()
        self._spawn_tile()
        self.status = self._status_for(self._board)
        self.message = "New game started."
        logger.info("New %dx%d game, target %d, difficulty %s, mode %s", self.config.size, self.config.size,
                    self.config.target, self.config.difficulty.value, self.config.mode.value)
        self.quick_save()
        return self.get_state()

    # --- Moves ---

    def accepts_moves(self) -> bool:
        if self.status == GameStatus.PLAYING:
            return True
        return self.status == GameStatus.WON and self.config.allow_continue

    def apply_move(self, direction: Union[Direction, str]) -> MoveResult:
        """
        Applies one player move.

        Unmoved results leave board, score, history and turn untouched and spawn nothing.
        A successful move is recorded for undo, spawns one tile, re-evaluates the round
        status and, in pass-and-play, hands the turn to the other player.
        Raises:
            ValueError: If `direction` is not a known direction.
        """
        direction = Direction(direction)
        if not self.accepts_moves():
            return MoveResult(copy_grid(self._board), False)

        result = process_move(self._board, direction)
        if not result.moved:
            return result

        if self.status == GameStatus.WON:
            self._continued = True
        self._undo.push(self._board, self._score)
        self._board = copy_grid(result.board)
        self._score += result.score_delta

        changed = set(result.changed_cells)
        spawned = self._spawn_tile()
        if spawned is not None:
            changed.add(spawned)
        self._update_best_score()

        previous = self.status
        self.status = self._status_for(self._board)
        self.message = ""
        if self.config.mode == GameMode.PASS_AND_PLAY:
            self.current_player = 2 if self.current_player == 1 else 1
            self.message = f"Player {self.current_player}'s turn"
        if self.status != GameStatus.PLAYING and self.status != previous:
            self._announce_round_end()
            self.submit_score()
        self.quick_save()
        return MoveResult(copy_grid(self._board), True, frozenset(changed), result.score_delta)

    def undo(self) -> bool:
        """
        Restores the board and score saved before the most recent move.
        Returns:
            bool: True if an undo happened, False if the history was empty.
        """
        entry = self._undo.pop()
        if entry is None:
            return False
        self._board, self._score = entry
        if not has_tile_at_least(self._board, self.config.target):
            self._continued = False
        self.status = self._status_for(self._board)
        self.message = "Undo performed."
        self.quick_save()
        return True

    def continue_after_win(self) -> bool:
        """Returns a won round to play, if the settings allow continuing."""
        if self.status != GameStatus.WON or not self.config.allow_continue:
            return False
        self._continued = True
        self.status = self._status_for(self._board)
        return True

    def new_turn(self) -> str:
        self.message = f"Player {self.current_player}'s turn"
        return self.message

    def select_ai_move(self) -> Optional[Direction]:
        if not self.accepts_moves():
            return None
        return select_move(self._board, self.ai_rng)

    def _status_for(self, board: Grid) -> GameStatus:
        if not self._continued and has_tile_at_least(board, self.config.target):
            return GameStatus.WON
        if not can_move(board):
            return GameStatus.OVER
        return GameStatus.PLAYING

    def _spawn_tile(self) -> Optional[Cell]:
        empties = get_empty_cells(self._board)
        if not empties:
            return None
        r, c = self.rng.choice(empties)
        value = 2 if self.rng.random() < spawn_chance(self.config.difficulty) else 4
        self._board[r][c] = value
        logger.debug("Spawned %d at (%d, %d)", value, r, c)
        return r, c

    def _announce_round_end(self) -> None:
        if self.status == GameStatus.WON:
            self.message = f"You reached {self.config.target}!"
        else:
            self.message = "Game Over!"
        logger.info("Round ended (%s) with score %d", self.status.value, self._score)

    # --- Best score ---

    def _load_best_score(self) -> int:
        raw = self._read(BEST_SCORE_KEY)
        if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 0:
            return raw
        return 0

    def _update_best_score(self) -> None:
        if self._score > self.best_score:
            self.best_score = self._score
            self._persist(BEST_SCORE_KEY, self.best_score)

    # --- Sessions ---

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            size=self.config.size,
            board=copy_grid(self._board),
            score=self._score,
            best_score=self.best_score,
            target=self.config.target,
            difficulty=self.config.difficulty,
            mode=self.config.mode,
            current_player=self.current_player,
            status=self.status,
            allow_continue=self.config.allow_continue,
            continued=self._continued,
            undo=[UndoEntry(board=board, score=score) for board, score in self._undo.entries()],
        )

    def serialize_session(self) -> dict:
        return session.serialize_session(self.snapshot())

    def save_session(self) -> dict:
        """Serializes the full game, undo history included, into the `lastSession` record."""
        record = self.serialize_session()
        if self._persist(SESSION_KEY, record):
            self.message = "Session saved."
            logger.info("Session saved (score %d, %d undo entries)", self._score, len(self._undo))
        return record

    def load_session(self, record: Optional[session.Record] = None) -> bool:
        """
        Replaces the whole game with a saved session.
        Args:
            record: A serialized session; None reads the `lastSession` record from the store.
        Returns:
            bool: False if no record was given and none is stored, True once loaded.
        Raises:
            MalformedSession: If the record cannot be restored. The running game is left untouched.
        """
        if record is None:
            record = self._read(SESSION_KEY)
            if record is None:
                self.message = "No saved session found."
                return False
        snapshot = session.deserialize_session(record)
        self._restore(snapshot)
        self.message = "Session loaded."
        logger.info("Session loaded (%dx%d, score %d)", snapshot.size, snapshot.size, snapshot.score)
        return True

    def _restore(self, snapshot: SessionSnapshot) -> None:
        config = make_config(
            self.config,
            size=snapshot.size,
            target=snapshot.target,
            difficulty=snapshot.difficulty,
            mode=snapshot.mode,
            allow_continue=snapshot.allow_continue,
        )
        undo = UndoStack()
        for entry in snapshot.undo:
            undo.push(entry.board, entry.score)

        self.config = config
        self._board = copy_grid(snapshot.board)
        self._score = snapshot.score
        self._undo = undo
        self._continued = snapshot.continued
        self.current_player = snapshot.current_player
        self.status = self._status_for(self._board)
        self.message = ""
        if snapshot.best_score > self.best_score:
            self.best_score = snapshot.best_score
            self._persist(BEST_SCORE_KEY, self.best_score)

    # --- Quick-save ---

    def quick_save(self) -> dict:
        """Writes the lossy crash-recovery record (no undo history)."""
        record = session.serialize_quick_save(QuickSave(
            size=self.config.size,
            board=copy_grid(self._board),
            score=self._score,
            target=self.config.target,
            difficulty=self.config.difficulty,
        ))
        self._persist(QUICK_SAVE_KEY, record)
        return record

    def quick_restore(self, record: Optional[session.Record] = None) -> bool:
        """
        Resumes from a quick-save record, by default the stored `quickSave`. Undo history starts empty.
        Returns:
            bool: True if a usable record was found and restored.
        """
        raw = record if record is not None else self._read(QUICK_SAVE_KEY)
        if raw is None:
            return False
        try:
            quick = session.deserialize_quick_save(raw)
        except MalformedSession:
            logger.warning("Ignoring unreadable quick-save", exc_info=True)
            return False
        self.config = make_config(self.config, size=quick.size, target=quick.target, difficulty=quick.difficulty)
        self._board = copy_grid(quick.board)
        self._score = quick.score
        self._undo.clear()
        self._continued = False
        self.current_player = 1
        self.status = self._status_for(self._board)
        self._update_best_score()
        self.quick_save()
        logger.info("Quick-save restored (%dx%d, score %d)", quick.size, quick.size, quick.score)
        return True

    # --- Leaderboard ---

    def get_leaderboard(self) -> List[LeaderboardEntry]:
        try:
            return session.parse_leaderboard(self._read(LEADERBOARD_KEY))
        except MalformedSession:
            logger.warning("Ignoring unreadable leaderboard", exc_info=True)
            return []

    def submit_score(self) -> List[LeaderboardEntry]:
        """Records the current score on the leaderboard and returns the updated list."""
        entry = LeaderboardEntry.now(score=self._score, grid_size=self.config.size, target=self.config.target)
        leaderboard = session.submit_score(self.get_leaderboard(), entry)
        self._persist(LEADERBOARD_KEY, [item.model_dump(mode="json") for item in leaderboard])
        logger.info("Score %d submitted to the leaderboard", self._score)
        return leaderboard

    def clear_leaderboard(self) -> None:
        try:
            self.store.delete(LEADERBOARD_KEY)
        except _STORE_ERRORS:
            logger.warning("Could not clear the leaderboard", exc_info=True)

    # --- Persistence boundary ---

    def _persist(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
        except _STORE_ERRORS:
            logger.warning("Could not persist %r; keeping in-memory state", key, exc_info=True)
            return False
        return True

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except _STORE_ERRORS:
            logger.warning("Could not read %r", key, exc_info=True)
            return None
