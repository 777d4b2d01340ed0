import random
from dataclasses import replace

import pytest

from conftest import StubRandom, make_record
from tilemerge.config import Difficulty, GameConfig, GameMode
from tilemerge.core import Direction, GameStatus, legal_directions
from tilemerge.errors import InvalidConfig, MalformedSession
from tilemerge.game import Game, UndoStack
from tilemerge.storage import BEST_SCORE_KEY, LEADERBOARD_KEY, QUICK_SAVE_KEY, SESSION_KEY, MemoryStore


class FailingStore(MemoryStore):
    def get(self, key):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("quota exceeded")

    def delete(self, key):
        raise OSError("storage unavailable")


def _tiles(board):
    return [v for row in board for v in row if v]


# --- Setup ---

def test_setup_spawns_two_tiles():
    game = Game(rng=random.Random(1))
    state = game.get_state()
    tiles = _tiles(state.board)
    assert len(tiles) == 2
    assert set(tiles) <= {2, 4}
    assert state.score == 0
    assert state.status == GameStatus.PLAYING
    assert state.current_player == 1
    assert state.undo_depth == 0
    assert state.size == 4


def test_setup_with_new_size():
    game = Game(rng=random.Random(1))
    game.setup(size=6, target=512)
    assert game.size == 6
    assert len(game.board) == 6
    assert game.get_state().target == 512


@pytest.mark.parametrize("bad", [dict(size=0), dict(size=1), dict(size=-3), dict(target=0), dict(target=-8),
                                 dict(difficulty="impossible"), dict(mode="online")])
def test_invalid_config_leaves_game_untouched(bad):
    game = Game(rng=random.Random(2))
    game.apply_move(legal_directions(game.board)[0])
    before = game.get_state()
    with pytest.raises(InvalidConfig):
        game.setup(**bad)
    assert game.get_state() == before


def test_invalid_config_is_a_value_error():
    with pytest.raises(ValueError):
        Game(config=dict(size=1))


def test_restart_reuses_settings_and_clears_history():
    game = Game(config=GameConfig(size=5, mode=GameMode.PASS_AND_PLAY), rng=random.Random(3))
    game.apply_move(legal_directions(game.board)[0])
    game.setup()
    state = game.get_state()
    assert state.size == 5
    assert state.undo_depth == 0
    assert state.score == 0
    assert state.current_player == 1
    assert len(_tiles(state.board)) == 2


# --- Moves ---

def test_scenario_merge_left():
    board = [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    game = Game.from_session(make_record(board), rng=StubRandom(0.0))
    result = game.apply_move(Direction.LEFT)
    assert result.moved
    assert result.score_delta == 4
    # The spawned 2 lands in the first empty cell.
    assert result.board[0] == [4, 2, 0, 0]
    assert result.changed_cells == {(0, 0), (0, 1)}
    assert game.score == 4
    assert game.undo_depth == 1


def test_unmoved_move_changes_nothing():
    board = [[2, 4, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    game = Game.from_session(make_record(board, score=12), rng=StubRandom(0.0))
    result = game.apply_move(Direction.LEFT)
    assert not result.moved
    assert game.board == board
    assert game.score == 12
    assert game.undo_depth == 0


def test_moves_rejected_when_over():
    game = Game.from_session(make_record([[2, 4], [4, 2]], score=6), rng=StubRandom(0.0))
    assert game.status == GameStatus.OVER
    for direction in Direction:
        result = game.apply_move(direction)
        assert not result.moved
    assert game.board == [[2, 4], [4, 2]]
    assert game.undo_depth == 0
    assert game.select_ai_move() is None


def test_apply_move_rejects_unknown_direction():
    game = Game(rng=random.Random(0))
    with pytest.raises(ValueError):
        game.apply_move("DIAGONAL")


def test_move_into_loss_submits_score_and_undo_recovers(store):
    game = Game.from_session(make_record([[2, 0], [8, 4]]), rng=StubRandom(0.99), store=store)
    result = game.apply_move(Direction.RIGHT)
    assert result.moved
    assert game.board == [[4, 2], [8, 4]]
    assert game.status == GameStatus.OVER
    assert [entry.score for entry in game.get_leaderboard()] == [0]
    assert game.message == "Game Over!"

    assert game.undo()
    assert game.board == [[2, 0], [8, 4]]
    assert game.status == GameStatus.PLAYING


def test_win_is_reported_once_and_play_continues(store):
    game = Game.from_session(make_record([[4, 4], [0, 0]], target=8), rng=StubRandom(0.0), store=store)
    game.apply_move(Direction.LEFT)
    assert game.board == [[8, 2], [0, 0]]
    assert game.status == GameStatus.WON
    assert game.score == 8
    assert len(game.get_leaderboard()) == 1

    result = game.apply_move(Direction.DOWN)
    assert result.moved
    assert game.board == [[2, 0], [8, 2]]
    assert game.status == GameStatus.PLAYING
    assert len(game.get_leaderboard()) == 1


def test_win_without_continue_blocks_moves():
    game = Game.from_session(make_record([[4, 4], [0, 0]], target=8, allow_continue=False), rng=StubRandom(0.0))
    game.apply_move(Direction.LEFT)
    assert game.status == GameStatus.WON
    assert not game.continue_after_win()
    assert not game.apply_move(Direction.DOWN).moved
    assert game.select_ai_move() is None


def test_win_takes_priority_over_loss():
    game = Game.from_session(make_record([[16, 16], [4, 2]], target=32), rng=StubRandom(0.99))
    game.apply_move(Direction.LEFT)
    assert game.board == [[32, 4], [4, 2]]
    assert game.status == GameStatus.WON
    assert game.continue_after_win()
    assert game.status == GameStatus.OVER


def test_undo_out_of_win_returns_to_playing():
    game = Game.from_session(make_record([[4, 4], [0, 0]], target=8), rng=StubRandom(0.0))
    game.apply_move(Direction.LEFT)
    assert game.status == GameStatus.WON
    assert game.undo()
    assert game.status == GameStatus.PLAYING
    game.apply_move(Direction.LEFT)
    assert game.status == GameStatus.WON


@pytest.mark.parametrize("difficulty, expected", [
    (Difficulty.NORMAL, 2),
    (Difficulty.HARD, 4),
    (Difficulty.EXTREME, 4),
])
def test_spawn_value_follows_difficulty(difficulty, expected):
    record = make_record([[0, 2], [0, 0]], difficulty=difficulty.value)
    game = Game.from_session(record, rng=StubRandom(0.8))
    game.apply_move(Direction.LEFT)
    assert game.board == [[2, expected], [0, 0]]


def test_pass_and_play_alternates_on_successful_moves_only():
    record = make_record([[2, 0, 0], [0, 0, 0], [0, 0, 0]], mode=GameMode.PASS_AND_PLAY.value)
    game = Game.from_session(record, rng=StubRandom(0.0))
    assert game.current_player == 1
    game.apply_move(Direction.LEFT)  # unmoved
    assert game.current_player == 1
    game.apply_move(Direction.RIGHT)
    assert game.current_player == 2
    assert game.message == "Player 2's turn"
    game.apply_move(Direction.DOWN)
    assert game.current_player == 1
    assert game.new_turn() == "Player 1's turn"


def test_single_mode_never_changes_player():
    game = Game.from_session(make_record([[2, 0, 0], [0, 0, 0], [0, 0, 0]]), rng=StubRandom(0.0))
    game.apply_move(Direction.RIGHT)
    assert game.current_player == 1


# --- Undo ---

def test_undo_stack_is_bounded_and_lifo():
    stack = UndoStack(capacity=20)
    for i in range(25):
        stack.push([[i]], i)
    assert len(stack) == 20
    popped = [stack.pop()[1] for _ in range(20)]
    assert popped == list(range(24, 4, -1))
    assert stack.pop() is None


def test_undo_stack_stores_copies():
    stack = UndoStack()
    board = [[2, 0], [0, 0]]
    stack.push(board, 0)
    board[0][0] = 4
    assert stack.pop() == ([[2, 0], [0, 0]], 0)


def test_undo_restores_exact_snapshot():
    board = [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    game = Game.from_session(make_record(board, score=10), rng=StubRandom(0.0))
    game.apply_move(Direction.LEFT)
    assert game.undo()
    assert game.board == board
    assert game.score == 10
    assert not game.undo()
    assert game.board == board


def test_undo_back_to_setup():
    game = Game(rng=random.Random(11))
    initial = game.board
    for _ in range(5):
        assert game.apply_move(legal_directions(game.board)[0]).moved
    for _ in range(5):
        assert game.undo()
    assert game.board == initial
    assert game.score == 0
    assert not game.undo()


def test_undo_history_keeps_last_twenty_moves():
    # A 6x6 board cannot fill up within 25 moves, so every move succeeds.
    game = Game(config=dict(size=6, target=2 ** 20), rng=random.Random(5))
    boards = []
    for _ in range(25):
        boards.append(game.board)
        assert game.apply_move(legal_directions(game.board)[0]).moved
    assert game.undo_depth == 20
    for _ in range(20):
        assert game.undo()
    assert game.board == boards[5]
    assert not game.undo()


# --- AI hook ---

def test_select_ai_move_does_not_touch_state():
    board = [[2, 2, 0, 0], [0, 4, 0, 0], [0, 0, 0, 0], [8, 0, 0, 0]]
    game = Game.from_session(make_record(board, score=20), rng=random.Random(4))
    direction = game.select_ai_move()
    assert direction in legal_directions(board)
    assert game.board == board
    assert game.score == 20
    assert game.undo_depth == 0


# --- Persistence ---

def test_best_score_is_persisted(store):
    board = [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    game = Game.from_session(make_record(board), rng=StubRandom(0.0), store=store)
    game.apply_move(Direction.LEFT)
    assert game.best_score == 4
    assert store.get(BEST_SCORE_KEY) == 4
    assert Game(store=store).best_score == 4


def test_persistence_failures_do_not_break_play():
    board = [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    game = Game.from_session(make_record(board), rng=StubRandom(0.0), store=FailingStore())
    result = game.apply_move(Direction.LEFT)
    assert result.moved
    assert game.score == 4
    assert game.best_score == 4
    game.save_session()
    game.clear_leaderboard()
    assert game.get_leaderboard() == []
    assert not game.load_session()


def test_session_round_trip(store):
    game = Game(config=dict(size=5, target=256, difficulty="hard", mode="pass-and-play"),
                rng=random.Random(8), store=store)
    for _ in range(3):
        game.apply_move(legal_directions(game.board)[0])
    record = game.save_session()
    assert store.get(SESSION_KEY) == record

    other = Game(rng=random.Random(9))
    assert other.load_session(record)
    assert other.get_state() == replace(game.get_state(), message="Session loaded.")
    assert other.undo_depth == 3
    assert other.message == "Session loaded."
    other.undo()
    game.undo()
    assert other.board == game.board
    assert other.score == game.score


def test_load_session_from_store(store):
    game = Game(rng=random.Random(8), store=store)
    game.apply_move(legal_directions(game.board)[0])
    game.save_session()
    expected = game.board

    game.setup()
    assert game.load_session()
    assert game.board == expected
    assert game.undo_depth == 1


def test_load_session_without_record():
    game = Game(rng=random.Random(1))
    assert not game.load_session()
    assert game.message == "No saved session found."


@pytest.mark.parametrize("record", [
    {"size": 4, "score": 0, "target": 2048},
    make_record([[2, 0], [0, 0]], size=3),
    make_record([[2, 0], [0, 0]], score=-1),
    make_record([[3, 0], [0, 0]]),
    "not json",
])
def test_malformed_session_leaves_game_untouched(record):
    game = Game(rng=random.Random(1))
    before = game.get_state()
    with pytest.raises(MalformedSession):
        game.load_session(record)
    assert game.get_state() == before


def test_quick_restore_after_restart(store):
    game = Game(rng=random.Random(6), store=store)
    for _ in range(4):
        game.apply_move(legal_directions(game.board)[0])
    saved = store.get(QUICK_SAVE_KEY)
    assert saved["board"] == game.board
    assert "undo" not in saved

    resumed = Game(rng=random.Random(7), store=store, restore_quick_save=True)
    assert resumed.board == game.board
    assert resumed.score == game.score
    assert resumed.undo_depth == 0
    assert not resumed.undo()


def test_quick_restore_ignores_bad_record(store):
    store.set(QUICK_SAVE_KEY, {"size": 4, "board": [[1]]})
    game = Game(rng=random.Random(1), store=store, restore_quick_save=True)
    assert len(_tiles(game.board)) == 2
    assert game.score == 0


def test_manual_leaderboard_submission_and_clear(store):
    game = Game.from_session(make_record([[2, 0], [0, 0]], score=40), rng=StubRandom(0.0), store=store)
    leaderboard = game.submit_score()
    assert [entry.score for entry in leaderboard] == [40]
    assert leaderboard[0].grid_size == 2
    assert store.get(LEADERBOARD_KEY)[0]["score"] == 40
    game.clear_leaderboard()
    assert game.get_leaderboard() == []
