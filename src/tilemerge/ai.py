# ai.py
# Heuristic autoplayer: board evaluation, move selection and a host-driven scheduler.

import logging
import random
from typing import Optional, Tuple

from tilemerge.core import Direction, GameStatus, MoveResult, process_move
from tilemerge.grid import (
    Grid,
    copy_grid,
    count_adjacent_equal_pairs,
    count_monotonic_decreases,
    get_empty_cells,
)

logger = logging.getLogger(__name__)

EMPTY_WEIGHT = 1100
MERGE_WEIGHT = 600
MONOTONIC_WEIGHT = 10
JITTER = 10.0
DEFAULT_AI_SPEED_MS = 300

_default_rng = random.Random()


def evaluate(board: Grid, rng: Optional[random.Random] = None, jitter: float = JITTER) -> float:
    """
    Scores a board configuration; higher is better.

    The weighted terms reward empty cells, equal neighbours in rows and columns,
    and left-to-right decreasing rows. A uniform jitter in [0, jitter) breaks ties.
    Args:
        board (Grid): The board to score.
        rng (random.Random): Source of the tie-breaking jitter. Seed it for reproducible play.
        jitter (float): Upper bound of the jitter; 0 makes evaluation deterministic.
    Returns:
        float: The heuristic value.
    """
    rng = rng or _default_rng
    value = (
        EMPTY_WEIGHT * len(get_empty_cells(board))
        + MERGE_WEIGHT * count_adjacent_equal_pairs(board)
        + MONOTONIC_WEIGHT * count_monotonic_decreases(board)
    )
    return value + rng.random() * jitter


def rank_moves(board: Grid, rng: Optional[random.Random] = None, jitter: float = JITTER) -> Tuple[Tuple[Direction, float], ...]:
    """Evaluates every legal move from `board`, best first. Illegal moves are left out."""
    scored = []
    for direction in Direction:
        # Simulate on a copy; the live board is never handed to the engine here.
        result = process_move(copy_grid(board), direction)
        if not result.moved:
            continue
        scored.append((direction, evaluate(result.board, rng, jitter)))
    scored.sort(key=lambda item: item[1], reverse=True)
    return tuple(scored)


def select_move(board: Grid, rng: Optional[random.Random] = None, jitter: float = JITTER) -> Optional[Direction]:
    """
    Picks the legal move whose resulting board evaluates highest.
    Returns:
        Optional[Direction]: The chosen direction, or None when no move changes the board.
    """
    ranked = rank_moves(board, rng, jitter)
    if not ranked:
        return None
    direction, value = ranked[0]
    logger.debug("AI picked %s (%.1f) out of %d legal moves", direction.value, value, len(ranked))
    return direction


class AutoPlayer:
    """
    Periodic autoplay driven by the host.

    The host calls `tick()` every `period` seconds while `enabled` is set; each tick is a
    full select-then-apply cycle through the game's normal move path. Autoplay switches
    itself off when no move is left or the round stops being in play.
    """

    def __init__(self, game, speed_ms: int = DEFAULT_AI_SPEED_MS):
        if speed_ms < 0:
            raise ValueError("Autoplay speed must not be negative.")
        self.game = game
        self.speed_ms = speed_ms
        self.enabled = False

    @property
    def period(self) -> float:
        return self.speed_ms / 1000.0

    def start(self) -> None:
        self.enabled = True

    def stop(self) -> None:
        self.enabled = False

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        logger.info("Autoplay %s", "on" if self.enabled else "off")
        return self.enabled

    def tick(self) -> Optional[MoveResult]:
        if not self.enabled:
            return None
        direction = self.game.select_ai_move()
        if direction is None:
            logger.info("Autoplay stopped: no legal move")
            self.stop()
            return None
        result = self.game.apply_move(direction)
        if self.game.status != GameStatus.PLAYING:
            logger.info("Autoplay stopped: round is %s", self.game.status.value)
            self.stop()
        return result
