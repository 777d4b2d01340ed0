import random

import pytest

from conftest import StubRandom, make_record
from tilemerge.ai import JITTER, AutoPlayer, evaluate, rank_moves, select_move
from tilemerge.core import Direction, GameStatus, process_move
from tilemerge.game import Game


def test_evaluate_weights():
    assert evaluate([[0, 0], [0, 0]], jitter=0) == 4 * 1100 + 4 * 600
    # One empty cell, no equal neighbours, two decreasing pairs.
    assert evaluate([[4, 2], [2, 0]], jitter=0) == 1100 + 20


def test_evaluate_jitter_is_bounded():
    rng = random.Random(0)
    board = [[2, 4], [8, 0]]
    base = evaluate(board, jitter=0)
    values = [evaluate(board, rng) for _ in range(200)]
    assert all(base <= value < base + JITTER for value in values)
    assert len(set(values)) > 1


def test_evaluate_is_reproducible_with_seeded_rng():
    board = [[2, 2, 0, 0], [0, 4, 0, 0], [0, 0, 8, 0], [0, 0, 0, 0]]
    assert evaluate(board, random.Random(42)) == evaluate(board, random.Random(42))


def test_select_move_prefers_highest_evaluation():
    board = [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]]
    assert select_move(board, jitter=0) == Direction.LEFT
    ranked = rank_moves(board, jitter=0)
    assert [direction for direction, _ in ranked] == [Direction.LEFT, Direction.RIGHT, Direction.DOWN]


def test_select_move_reports_no_move_on_blocked_board():
    assert select_move([[2, 4], [4, 2]]) is None
    assert rank_moves([[2, 4], [4, 2]]) == ()


@pytest.mark.parametrize("seed", range(10))
def test_select_move_only_returns_legal_moves_and_leaves_board(seed):
    rng = random.Random(seed)
    board = [[rng.choice([0, 0, 2, 4, 8]) for _ in range(4)] for _ in range(4)]
    before = [list(row) for row in board]
    direction = select_move(board, rng)
    assert board == before
    if direction is not None:
        assert process_move(board, direction).moved


def test_autoplayer_idle_until_started():
    game = Game(rng=random.Random(1))
    before = game.get_state()
    player = AutoPlayer(game, speed_ms=250)
    assert player.period == 0.25
    assert player.tick() is None
    assert game.get_state() == before


def test_autoplayer_tick_uses_normal_move_path():
    game = Game(rng=random.Random(1))
    player = AutoPlayer(game)
    player.start()
    result = player.tick()
    assert result.moved
    assert game.undo_depth == 1


def test_autoplayer_toggle_takes_effect_before_next_tick():
    game = Game(rng=random.Random(1))
    player = AutoPlayer(game)
    assert player.toggle()
    player.tick()
    assert not player.toggle()
    depth = game.undo_depth
    assert player.tick() is None
    assert game.undo_depth == depth


def test_autoplayer_stops_when_round_is_won():
    game = Game.from_session(make_record([[4, 4], [0, 0]], target=8), rng=StubRandom(0.0))
    player = AutoPlayer(game)
    player.start()
    result = player.tick()
    assert result.moved
    assert game.board == [[8, 2], [0, 0]]
    assert game.status == GameStatus.WON
    assert not player.enabled


def test_autoplayer_stops_without_legal_move():
    game = Game.from_session(make_record([[2, 4], [4, 2]]), rng=StubRandom(0.0))
    player = AutoPlayer(game)
    player.start()
    assert player.tick() is None
    assert not player.enabled


def test_autoplayer_plays_small_game_to_the_end():
    game = Game(config=dict(size=2), rng=random.Random(3))
    player = AutoPlayer(game, speed_ms=0)
    player.start()
    for _ in range(10000):
        if not player.enabled:
            break
        player.tick()
    assert not player.enabled
    assert game.status == GameStatus.OVER


def test_autoplayer_rejects_negative_speed():
    with pytest.raises(ValueError):
        AutoPlayer(Game(), speed_ms=-1)
