# grid.py
# Pure grid primitives for the tile-merging game. Nothing here mutates its input.

from typing import List, Tuple

Grid = List[List[int]]
Row = List[int]

# --- Board Helper Functions ---

def get_board_size(board: Grid) -> int:
    """
    Gets the size (N) of an N x N board.
    Args:
        board (Grid): The game board.
    Returns:
        int: The dimension of the board.
    Raises:
        ValueError: If the board is not square or empty.
    """
    if not board or not all(len(row) == len(board) for row in board):
        raise ValueError("Board must be a non-empty square matrix.")
    return len(board)

def empty_grid(size: int) -> Grid:
    """Returns a fresh size x size grid of zeros."""
    return [[0] * size for _ in range(size)]

def copy_grid(board: Grid) -> Grid:
    return [list(row) for row in board]

def get_empty_cells(board: Grid) -> List[Tuple[int, int]]:
    """
    Get coordinates of empty (0-value) cells in the given board.
    Args:
        board (Grid): The board to check.
    Returns:
        List[Tuple[int, int]]: List of (row, col) tuples for empty cells, in row-major order.
    """
    n = get_board_size(board)
    empty_cells = []
    for row in range(n):
        for col in range(n):
            if board[row][col] == 0:
                empty_cells.append((row, col))
    return empty_cells

def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0

def validate_grid(board: Grid) -> int:
    """
    Checks that a board is square and holds only empty cells or powers of two from 2 up.
    Args:
        board (Grid): The board to check.
    Returns:
        int: The dimension of the board.
    Raises:
        ValueError: If the board shape or any tile value is invalid.
    """
    n = get_board_size(board)
    for r, row in enumerate(board):
        for c, value in enumerate(row):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Tile at ({r}, {c}) is not an integer: {value!r}")
            if value != 0 and (value < 2 or not is_power_of_two(value)):
                raise ValueError(f"Tile at ({r}, {c}) is not a power of two of at least 2: {value}")
    return n

# --- Line Primitives ---

def slide(row: Row) -> Row:
    """
    Closes the gaps in a line: non-zero values move toward index 0 in their original order,
    and the line is padded with zeros on the right.
    Args:
        row (Row): The line to compact.
    Returns:
        Row: A new line of the same length.
    """
    compacted = [value for value in row if value != 0]
    return compacted + [0] * (len(row) - len(compacted))

def rotate_row(row: Row) -> Row:
    """Returns the line reversed. Turns a leftward operation into a rightward one."""
    return row[::-1]

def reverse_rows(board: Grid) -> Grid:
    """
    Reverses each row in a given board.
    Args:
        board (Grid): The board whose rows are to be reversed.
    Returns:
        Grid: A new board with rows reversed.
    """
    return [rotate_row(row) for row in board]

def transpose(board: Grid) -> Grid:
    """
    Transposes a given board (swaps rows and columns).
    Args:
        board (Grid): The board to transpose.
    Returns:
        Grid: A new transposed board.
    """
    n = get_board_size(board)
    new_board = empty_grid(n)
    for r in range(n):
        for c in range(n):
            new_board[c][r] = board[r][c]
    return new_board

# --- Board Queries ---

def count_adjacent_equal_pairs(board: Grid) -> int:
    """Counts horizontally and vertically adjacent cell pairs holding the same value, empties included."""
    n = get_board_size(board)
    pairs = 0
    for r in range(n):
        for c in range(n - 1):
            if board[r][c] == board[r][c + 1]:
                pairs += 1
    for c in range(n):
        for r in range(n - 1):
            if board[r][c] == board[r + 1][c]:
                pairs += 1
    return pairs

def count_monotonic_decreases(board: Grid) -> int:
    """Counts left-to-right adjacent pairs within rows where the value strictly decreases."""
    n = get_board_size(board)
    decreases = 0
    for r in range(n):
        for c in range(n - 1):
            if board[r][c] > board[r][c + 1]:
                decreases += 1
    return decreases

def has_tile_at_least(board: Grid, threshold: int) -> bool:
    return any(value >= threshold for row in board for value in row)

def max_tile(board: Grid) -> int:
    return max(max(row) for row in board)

def can_move(board: Grid) -> bool:
    """
    Checks whether any move is still possible: an empty cell exists, or two
    adjacent cells in a row or column hold equal values.
    Args:
        board (Grid): The game board.
    Returns:
        bool: True if the player can still move, False if the board is locked.
    """
    if get_empty_cells(board):
        return True
    return count_adjacent_equal_pairs(board) > 0
