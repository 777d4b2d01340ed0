import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from tilemerge import session
from tilemerge.config import DEFAULT_SIZE, DEFAULT_TARGET, Difficulty, GameMode
from tilemerge.core import Direction, GameStatus
from tilemerge.errors import InvalidConfig, MalformedSession
from tilemerge.game import Game
from tilemerge.session import LeaderboardEntry

logger = logging.getLogger(__name__)

# Initialize the rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(
    title="Tile Merge Game API",
    description="A stateless API for playing the tile-merging puzzle. "\
                "The client keeps the session record and sends it with every request.",
    version="1.0.0"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game."""
    size: int = Field(
        default=DEFAULT_SIZE,
        description="Size of the N x N game board (e.g., 4 for a 4x4 board)."
    )
    target: int = Field(
        default=DEFAULT_TARGET,
        description="The tile value to achieve for winning the game (e.g., 2048)."
    )
    difficulty: Difficulty = Field(default=Difficulty.NORMAL, description="normal, hard or extreme.")
    mode: GameMode = Field(default=GameMode.SINGLE, description="single or pass-and-play.")
    allow_continue: bool = Field(default=True, description="Whether play may continue after a win.")
    seed: Optional[int] = Field(default=None, description="Seed for the tile spawner, for reproducible games.")

class SessionRequestData(BaseModel):
    """Any request that operates on an existing game."""
    session: Dict[str, Any] = Field(..., description="The session record returned by a previous call.")
    seed: Optional[int] = Field(default=None, description="Seed for spawning and AI tie-breaking.")

class MoveRequestData(SessionRequestData):
    """Data required to make a move."""
    direction: Direction = Field(..., description="Direction of the move (LEFT, RIGHT, UP, DOWN).")

class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    session: Dict[str, Any] = Field(..., description="Serialized session to send back on the next request.")
    board: List[List[int]] = Field(..., description="The N x N game board, represented as a list of lists.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    best_score: int = Field(..., ge=0, description="Best score seen by this session.")
    status: GameStatus = Field(..., description="PLAYING, WON or OVER.")
    current_player: int = Field(..., description="Player to move in pass-and-play mode.")
    message: Optional[str] = Field(default=None, description="A short message suitable for the player.")

class MoveResponseData(GameStateData):
    """Response after a move, including the new game state and move effectiveness."""
    moved: bool = Field(..., description="True if the move changed the board.")
    changed_cells: List[Tuple[int, int]] = Field(
        default_factory=list,
        description="Cells holding a merged or newly spawned tile, as (row, col)."
    )
    score_delta: int = Field(default=0, ge=0, description="Points gained by this move.")
    round_end_entry: Optional[LeaderboardEntry] = Field(
        default=None,
        description="Set when this move won or lost the round. The server keeps no leaderboard, "\
                    "so clients add it to theirs with /leaderboard/submit."
    )

class UndoResponseData(GameStateData):
    undone: bool = Field(..., description="False if there was no history to undo.")

class AiMoveResponseData(BaseModel):
    direction: Optional[Direction] = Field(
        default=None,
        description="Best move according to the heuristic, or null when no move is legal."
    )

class LeaderboardSubmitData(BaseModel):
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list, description="The client's current leaderboard.")
    entry: LeaderboardEntry

# --- Helpers ---

def _state_data(game: Game, **extra) -> Dict[str, Any]:
    state = game.get_state()
    return dict(
        session=game.serialize_session(),
        board=state.board,
        score=state.score,
        best_score=state.best_score,
        status=state.status,
        current_player=state.current_player,
        message=state.message or None,
        **extra,
    )

def _load_game(data: SessionRequestData) -> Game:
    try:
        return Game.from_session(data.session, rng=random.Random(data.seed))
    except MalformedSession as e:
        raise HTTPException(status_code=400, detail=f"Invalid session: {str(e)}")

# --- API Endpoints ---

@app.post("/game/new", response_model=GameStateData, summary="Start a New Game")
@limiter.limit("100/minute")
async def start_new_game(request: Request, settings: NewGameSettings):
    """
    Initializes a new game based on the provided settings.

    Returns the initial game state, including the board with two random tiles,
    score (0), status (PLAYING), and the session record to send with later requests.
    """
    config = settings.model_dump(exclude={"seed"})
    try:
        game = Game(config=config, rng=random.Random(settings.seed))
        return GameStateData(**_state_data(game))
    except InvalidConfig as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error in /game/new: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during game creation: {str(e)}")


@app.post("/game/move", response_model=MoveResponseData, summary="Make a Move in the Game")
@limiter.limit("100/minute")
async def make_move(request: Request, request_data: MoveRequestData):
    """
    Processes a player's move in the game.

    The API will:
    1. Restore the game from the session record.
    2. Slide and merge tiles; if the board changed, record undo history and spawn a tile.
    3. Determine the new game status (PLAYING, WON, OVER).

    Returns the updated session, whether the move was effective, and the cells to highlight.
    """
    game = _load_game(request_data)
    try:
        previous = game.status
        result = game.apply_move(request_data.direction)
        round_end_entry = None
        if game.status != GameStatus.PLAYING and game.status != previous:
            # A restored game writes to a fresh in-memory store, so this is the only entry.
            round_end_entry = game.get_leaderboard()[0]
        if not result.moved and not game.message:
            game.message = "Move was not effective; board state unchanged."
        return MoveResponseData(**_state_data(
            game,
            moved=result.moved,
            changed_cells=sorted(result.changed_cells),
            score_delta=result.score_delta,
            round_end_entry=round_end_entry,
        ))
    except Exception as e:
        logger.error(f"Unexpected error in /game/move: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")


@app.post("/game/undo", response_model=UndoResponseData, summary="Undo the Last Move")
@limiter.limit("100/minute")
async def undo_move(request: Request, request_data: SessionRequestData):
    game = _load_game(request_data)
    try:
        undone = game.undo()
        return UndoResponseData(**_state_data(game, undone=undone))
    except Exception as e:
        logger.error(f"Unexpected error in /game/undo: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred during undo: {str(e)}")


@app.post("/game/ai-move", response_model=AiMoveResponseData, summary="Suggest a Move")
@limiter.limit("100/minute")
async def suggest_move(request: Request, request_data: SessionRequestData):
    """Returns the heuristic autoplayer's choice without applying it."""
    game = _load_game(request_data)
    try:
        return AiMoveResponseData(direction=game.select_ai_move())
    except Exception as e:
        logger.error(f"Unexpected error in /game/ai-move: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while choosing a move: {str(e)}")


@app.post("/leaderboard/submit", response_model=List[LeaderboardEntry], summary="Add a Score to a Leaderboard")
@limiter.limit("100/minute")
async def submit_leaderboard_score(request: Request, request_data: LeaderboardSubmitData):
    """Inserts the entry and returns the leaderboard sorted by score, truncated to 10."""
    return session.submit_score(request_data.leaderboard, request_data.entry)
