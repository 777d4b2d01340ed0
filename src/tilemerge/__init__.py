"""Tile-merging puzzle engine: grid transforms, moves, game state, autoplay and persistence."""

__version__ = "1.0.0"
