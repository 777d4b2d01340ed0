# cli_driver.py
# Play the game on the command line, with undo, autoplay, saving and a leaderboard.

import argparse
import logging
import random
import time
from typing import List, Optional

from tilemerge.ai import DEFAULT_AI_SPEED_MS, AutoPlayer
from tilemerge.config import DEFAULT_SIZE, DEFAULT_TARGET, Difficulty, GameMode
from tilemerge.core import Direction, GameStatus
from tilemerge.errors import InvalidConfig, MalformedSession
from tilemerge.game import Game, GameState
from tilemerge.storage import JsonFileStore

logger = logging.getLogger(__name__)

DIRECTION_KEYS = {'W': Direction.UP, 'A': Direction.LEFT, 'S': Direction.DOWN, 'D': Direction.RIGHT}

HELP_TEXT = (
    "W/A/S/D move | U undo | R restart | C continue after a win | I AI hint move | "
    "P autoplay | V save | L load | B leaderboard | X clear leaderboard | Q quit"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tile-merging puzzle on the command line")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE)
    parser.add_argument("--target", type=int, default=DEFAULT_TARGET, help="tile value that wins the round")
    parser.add_argument("--difficulty", type=str, default=Difficulty.NORMAL.value,
                        choices=[d.value for d in Difficulty])
    parser.add_argument("--mode", type=str, default=GameMode.SINGLE.value, choices=[m.value for m in GameMode])
    parser.add_argument("--no-continue", action="store_true", help="end the round when the target is reached")
    parser.add_argument("--store", type=str, default="tilemerge_save.json", help="JSON file for saves and scores")
    parser.add_argument("--resume", action="store_true", help="resume from the last quick-save")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for reproducibility")
    parser.add_argument("--ai-speed", type=int, default=DEFAULT_AI_SPEED_MS, help="autoplay period in milliseconds")
    parser.add_argument("--log-level", type=str, default="WARNING")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    config = dict(
        size=args.size,
        target=args.target,
        difficulty=args.difficulty,
        mode=args.mode,
        allow_continue=not args.no_continue,
    )
    try:
        game = Game(config=config, rng=random.Random(args.seed), store=JsonFileStore(args.store),
                    restore_quick_save=args.resume)
    except InvalidConfig as e:
        print(f"Invalid settings: {e}")
        return 2
    autoplayer = AutoPlayer(game, speed_ms=args.ai_speed)

    print(HELP_TEXT)
    display_board_state(game.get_state())

    # Game Loop
    while True:
        try:
            command = input("Enter command: ").strip().upper()
        except EOFError:
            command = 'Q'

        if command == 'Q':
            print("Quitting game.")
            break

        if command in DIRECTION_KEYS:
            result = game.apply_move(DIRECTION_KEYS[command])
            if not result.moved:
                if game.status == GameStatus.OVER:
                    print("No more moves possible. Press R to start again.")
                else:
                    print("Move did not change the board. Try a different direction.")
                continue
        elif command == 'U':
            if not game.undo():
                print("Nothing to undo.")
                continue
        elif command == 'R':
            game.setup()
        elif command == 'C':
            if not game.continue_after_win():
                print("Nothing to continue.")
                continue
        elif command == 'I':
            direction = game.select_ai_move()
            if direction is None:
                print("No legal move.")
                continue
            print(f"AI plays {direction.value}")
            game.apply_move(direction)
        elif command == 'P':
            run_autoplay(autoplayer)
        elif command == 'V':
            game.save_session()
        elif command == 'L':
            try:
                if not game.load_session():
                    print("No saved session found.")
                    continue
            except MalformedSession as e:
                print(f"Failed to load session: {e}")
                logger.info("Starting a new game after a failed session load")
                game.setup()
        elif command == 'B':
            display_leaderboard(game)
            continue
        elif command == 'X':
            game.clear_leaderboard()
            print("Leaderboard cleared.")
            continue
        else:
            print(f"Invalid input. {HELP_TEXT}")
            continue

        display_board_state(game.get_state())

    # Game Ended
    state = game.get_state()
    print(f"Final score: {state.score} (best {state.best_score})")
    return 0


def run_autoplay(autoplayer: AutoPlayer) -> int:
    """Ticks the autoplayer until it switches itself off. Returns the number of moves played."""
    moves = 0
    autoplayer.start()
    try:
        while autoplayer.enabled:
            if autoplayer.tick() is not None:
                moves += 1
            if autoplayer.enabled and autoplayer.period:
                time.sleep(autoplayer.period)
    except KeyboardInterrupt:
        autoplayer.stop()
    print(f"Autoplay made {moves} moves.")
    return moves


# --- Display Functions ---

def display_board_state(state: GameState):
    """Prints the board, score, and game status to the console."""
    print(f"\nScore: {state.score}  Best: {state.best_score}")
    status_message = {
        GameStatus.PLAYING: f"Status: {state.status.name}",
        GameStatus.WON: f"YOU REACHED {state.target}!" + (" Press C to keep going." if state.allow_continue else ""),
        GameStatus.OVER: "GAME OVER!"
    }
    print(status_message.get(state.status, f"Status: {state.status.name} (Unknown)"))
    if state.mode == GameMode.PASS_AND_PLAY:
        print(f"Player {state.current_player} to move")
    if state.message:
        print(state.message)

    width = max(4, len(str(max(max(row) for row in state.board))) + 1)
    for row in state.board:
        print("".join(f"{value if value else '.':>{width}}" for value in row))
    print("-" * (state.size * width))


def display_leaderboard(game: Game):
    leaderboard = game.get_leaderboard()
    if not leaderboard:
        print("No scores yet.")
        return
    for rank, entry in enumerate(leaderboard, start=1):
        print(f"#{rank} {entry.score:>8}  {entry.grid_size}x{entry.grid_size} to {entry.target}  {entry.timestamp}")


if __name__ == "__main__":
    raise SystemExit(main())
