"""Exception hierarchy for the tile server.

Startup errors are fatal and stop the process before it serves traffic.
The rest are raised while handling a single request and are mapped to an
HTTP status by the tile endpoints:

    - MalformedCoordinate -> 400
    - PoolUnavailable / PoolExhausted -> 503
    - QueryError -> 500
"""


class TileServerError(Exception):
    """Base class for all tile server errors."""


class StartupError(TileServerError):
    """The server cannot start (database unreachable, bad configuration)."""


class TilesetLoadError(StartupError):
    """Tileset definitions could not be read or are invalid."""


class MalformedCoordinate(TileServerError):
    """A z/x/y path capture is empty or not a number."""


class PoolUnavailable(TileServerError):
    """No database connection could be handed out."""


class PoolExhausted(PoolUnavailable):
    """Every pooled connection stayed busy for the whole wait bound."""


class QueryError(TileServerError):
    """The tile query failed on the database side."""
