"""URL shapes served by the tile server.

Three routes exist, matched in declaration order:

    1. ``/index.json``
    2. ``/{tileset}.json``
    3. ``/{tileset}/{z}/{x}/{y}.pbf``

Tileset names match ``[\\w.]*`` and coordinates ``\\d*``. Both patterns admit
empty captures on purpose: the handlers reject an empty name or coordinate
with a proper error instead of letting the request fall through to 404.
The patterns are registered as Starlette URL convertors so FastAPI matches
exactly these regexes.
"""

import enum

from starlette import convertors


class TilesetNameConvertor(convertors.Convertor[str]):
    """Word characters and dots, possibly empty."""

    regex = r"[\w.]*"

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value


class DigitsConvertor(convertors.Convertor[str]):
    """A run of ASCII digits, possibly empty; kept as text for validation."""

    regex = r"[0-9]*"

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value


convertors.register_url_convertor("tileset", TilesetNameConvertor())
convertors.register_url_convertor("digits", DigitsConvertor())


class Route(enum.StrEnum):
    """Route patterns, in match order."""

    INDEX = "/index.json"
    TILEJSON = "/{tileset:tileset}.json"
    TILE = "/{tileset:tileset}/{z:digits}/{x:digits}/{y:digits}.pbf"
