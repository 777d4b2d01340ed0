# errors.py
# Exception types raised by the tilemerge engine.


class TileMergeError(Exception):
    """Base class for all tilemerge errors."""


class InvalidConfig(TileMergeError, ValueError):
    """Raised by setup when the requested game configuration is not playable."""


class MalformedSession(TileMergeError, ValueError):
    """Raised when a saved session or quick-save record cannot be restored."""
