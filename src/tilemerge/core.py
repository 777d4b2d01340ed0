# core.py
# The move engine: composes the grid primitives into the four directional moves.
# Every function here is pure; the caller decides what to do with the returned board.

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Tuple

from tilemerge.grid import (
    Grid,
    Row,
    copy_grid,
    get_board_size,
    reverse_rows,
    slide,
    transpose,
)

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


class GameStatus(str, Enum):
    """Represents the current progress state of a round."""
    PLAYING = "PLAYING"
    WON = "WON"
    OVER = "OVER"  # No legal move remains


class Direction(str, Enum):
    """Represents the possible move directions."""
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True)
class RowMoveResult:
    row: Row
    merged_columns: FrozenSet[int]
    score_delta: int


@dataclass(frozen=True)
class MoveResult:
    """
    Outcome of one directional move.

    `board` is the grid after the move (an unmodified copy when `moved` is False).
    `changed_cells` holds the surviving cell of every merge; the game state machine
    adds the spawned tile's cell after a successful move.
    """
    board: Grid
    moved: bool
    changed_cells: FrozenSet[Cell] = field(default_factory=frozenset)
    score_delta: int = 0


# --- Line Processing ---

def move_left_on_row(row: Row) -> RowMoveResult:
    """
    Slides a single line toward index 0, merging equal neighbours once.

    The line is compacted, scanned left to right exactly once (a tile produced by a
    merge is never merged again in the same pass), then compacted again.
    Args:
        row (Row): The line to process.
    Returns:
        RowMoveResult: The new line, the merge columns in final coordinates, and the score gained.
    """
    line = slide(row)
    score_delta = 0
    merged_at: List[int] = []
    for i in range(len(line) - 1):
        if line[i] != 0 and line[i] == line[i + 1]:
            line[i] *= 2
            line[i + 1] = 0
            score_delta += line[i]
            merged_at.append(i)

    # Map merge positions through the second slide: a tile lands after every
    # non-zero tile that precedes it.
    final_columns = set()
    for i in merged_at:
        final_columns.add(sum(1 for value in line[:i] if value != 0))

    return RowMoveResult(slide(line), frozenset(final_columns), score_delta)

# --- Directional Moves ---

def move_left(board: Grid) -> MoveResult:
    """
    Applies the leftward move to every row.
    Args:
        board (Grid): The board before the move.
    Returns:
        MoveResult: `moved` is True iff some row's contents differ from the original.
    """
    get_board_size(board)
    new_board = []
    changed = set()
    score_delta = 0
    moved = False
    for r, row in enumerate(board):
        result = move_left_on_row(row)
        if result.row != list(row):
            moved = True
        new_board.append(result.row)
        changed.update((r, c) for c in result.merged_columns)
        score_delta += result.score_delta

    if not moved:
        return MoveResult(copy_grid(board), False)
    return MoveResult(new_board, True, frozenset(changed), score_delta)

def move_right(board: Grid) -> MoveResult:
    n = get_board_size(board)
    result = move_left(reverse_rows(board))
    if not result.moved:
        return MoveResult(copy_grid(board), False)
    changed = frozenset((r, n - 1 - c) for r, c in result.changed_cells)
    return MoveResult(reverse_rows(result.board), True, changed, result.score_delta)

def move_up(board: Grid) -> MoveResult:
    result = move_left(transpose(board))
    if not result.moved:
        return MoveResult(copy_grid(board), False)
    changed = frozenset((c, r) for r, c in result.changed_cells)
    return MoveResult(transpose(result.board), True, changed, result.score_delta)

def move_down(board: Grid) -> MoveResult:
    # Down is right on the transposed board.
    result = move_right(transpose(board))
    if not result.moved:
        return MoveResult(copy_grid(board), False)
    changed = frozenset((c, r) for r, c in result.changed_cells)
    return MoveResult(transpose(result.board), True, changed, result.score_delta)


_MOVES: Dict[Direction, Callable[[Grid], MoveResult]] = {
    Direction.LEFT: move_left,
    Direction.RIGHT: move_right,
    Direction.UP: move_up,
    Direction.DOWN: move_down,
}

# --- Core Game Move Processing ---

def process_move(board: Grid, direction: Direction) -> MoveResult:
    """
    Processes a move in the specified direction on a copy of the board.
    Args:
        board (Grid): The current game board.
        direction (Direction): The direction to move.
    Returns:
        MoveResult: The new board, whether it changed, merge cells and score gained.
    Raises:
        ValueError: If an invalid direction is specified.
    """
    try:
        move = _MOVES[Direction(direction)]
    except ValueError:
        raise ValueError(f"Invalid direction specified for process_move: {direction!r}") from None
    result = move(board)
    logger.debug("Move %s: moved=%s score_delta=%d", Direction(direction).value, result.moved, result.score_delta)
    return result

def legal_directions(board: Grid) -> List[Direction]:
    """Returns the directions whose move would change the board, in enum order."""
    return [direction for direction in Direction if process_move(board, direction).moved]
