"""Data models for tilesets and tile coordinates.

This module defines the core data structures used throughout the server.
A Tileset is one servable vector layer source: its zoom range, geographic
bounds, display metadata and the SQL template that renders MVT bytes for a
tile. TileCoordinate is a validated (z, x, y) address in the XYZ tile
pyramid. Both are frozen: once built they never change for the lifetime of
the process, so they can be shared across request threads without locking.

Example:
    Creating a tileset and checking whether it serves a tile:
        >>> from tileserver.db.models import TileCoordinate, Tileset
        >>> tileset = Tileset(
        ...     name="cities",
        ...     minzoom=0,
        ...     maxzoom=14,
        ...     tile_query="SELECT ST_AsMVT(...)",
        ... )
        >>> tileset.covers(TileCoordinate.parse("3", "4", "2"))
        True
"""

from __future__ import annotations

import dataclasses
import re
import types
from collections.abc import Mapping

from tileserver.core import errors

BBox = tuple[float, float, float, float]

MAX_ZOOM = 30
WORLD_BOUNDS: BBox = (-180.0, -85.0511287798066, 180.0, 85.0511287798066)
TILESET_NAME_RE = re.compile(r"[\w.]+")


@dataclasses.dataclass(frozen=True)
class TileCoordinate:
    """A tile address in the XYZ pyramid (top-left origin).

    Attributes:
        z: Zoom level.
        x: Column, 0 at the antimeridian and growing eastwards.
        y: Row, 0 at the north edge and growing southwards.
    """

    z: int
    x: int
    y: int

    @classmethod
    def parse(cls, z: str, x: str, y: str) -> TileCoordinate:
        """Build a coordinate from raw path captures.

        Args:
            z: Zoom capture from the URL.
            x: Column capture from the URL.
            y: Row capture from the URL.

        Returns:
            The parsed coordinate.

        Raises:
            MalformedCoordinate: If any capture is empty or not all digits.
                Empty captures are never read as zero.
        """
        values = []
        for axis, raw in (("z", z), ("x", x), ("y", y)):
            if not raw or not raw.isascii() or not raw.isdigit():
                raise errors.MalformedCoordinate(
                    f"Invalid tile coordinate {axis}={raw!r}"
                )
            values.append(int(raw))
        return cls(*values)

    @property
    def tiles_per_axis(self) -> int:
        return 1 << self.z

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclasses.dataclass(frozen=True)
class Tileset:
    """A named vector tile source backed by a PostGIS query.

    Attributes:
        name: Unique identifier used in URLs (word characters and dots).
        tile_query: SQL template with ``%(z)s``, ``%(x)s`` and ``%(y)s``
            placeholders (``%(layer)s`` is bound to ``name``). It must return
            a single row whose first column is the MVT payload.
        minzoom: Lowest zoom level served.
        maxzoom: Highest zoom level served.
        bounds: (west, south, east, north) in WGS84 degrees.
        attribution: Optional attribution shown by map clients.
        description: Optional human-readable description.

    Raises:
        ValueError: If any field violates the constraints above.
    """

    name: str
    tile_query: str
    minzoom: int = 0
    maxzoom: int = 22
    bounds: BBox = WORLD_BOUNDS
    attribution: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if not TILESET_NAME_RE.fullmatch(self.name):
            raise ValueError(f"Invalid tileset name {self.name!r}")
        if not 0 <= self.minzoom <= self.maxzoom <= MAX_ZOOM:
            raise ValueError(
                f"Tileset {self.name!r}: zoom range "
                f"{self.minzoom}..{self.maxzoom} outside 0..{MAX_ZOOM}"
            )
        if len(self.bounds) != 4:
            raise ValueError(f"Tileset {self.name!r}: bounds need 4 values")
        west, south, east, north = self.bounds
        if not (-180.0 <= west < east <= 180.0 and -90.0 <= south < north <= 90.0):
            raise ValueError(
                f"Tileset {self.name!r}: invalid bounds {self.bounds}"
            )
        if not self.tile_query.strip():
            raise ValueError(f"Tileset {self.name!r}: empty tile query")

    @property
    def center(self) -> tuple[float, float, int]:
        """Bounds midpoint at the lowest served zoom."""
        west, south, east, north = self.bounds
        return ((west + east) / 2, (south + north) / 2, self.minzoom)

    def covers(self, coord: TileCoordinate) -> bool:
        """Return True if this tileset serves the given tile address."""
        if not self.minzoom <= coord.z <= self.maxzoom:
            return False
        size = coord.tiles_per_axis
        return 0 <= coord.x < size and 0 <= coord.y < size


Tilesets = Mapping[str, Tileset]


def freeze_tilesets(tilesets: Mapping[str, Tileset]) -> Tilesets:
    """Return a read-only registry view over a private copy of ``tilesets``."""
    return types.MappingProxyType(dict(tilesets))
