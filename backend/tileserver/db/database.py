"""Tileset registry loading from PostGIS.

Tileset definitions live in a table with one row per tileset::

    CREATE TABLE tilesets (
      name TEXT PRIMARY KEY,
      minzoom INTEGER,
      maxzoom INTEGER,
      bounds_west DOUBLE PRECISION,
      bounds_south DOUBLE PRECISION,
      bounds_east DOUBLE PRECISION,
      bounds_north DOUBLE PRECISION,
      attribution TEXT,
      description TEXT,
      source_table TEXT,
      geometry_column TEXT,
      tile_query TEXT
    );

A row either provides its own ``tile_query`` or names a ``source_table``
(and optionally a ``geometry_column``) from which the default MVT query is
generated. The registry is read once at startup and frozen.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol, TypeVar, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from tileserver.core import config, errors
from tileserver.db import models as db_models
from tileserver.services import tiles_postgis

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _cast(value: object, dtype: type[T]) -> T | None:
    """Cast a value to a specific type, returning None if value is None."""
    if value is None:
        return None

    return cast(T, value)


class TilesetRepositoryProtocol(Protocol):
    """Protocol interface for reading tileset definitions."""

    def all(self) -> Iterable[db_models.Tileset]: ...


class PostgresTilesetRepository(TilesetRepositoryProtocol):
    """Reads tileset definitions from a PostgreSQL table.

    The table name is embedded in the query, so it must be a plain
    (optionally schema qualified) identifier.
    """

    def __init__(
        self,
        conn: psycopg2.extensions.connection,
        table: str = "tilesets",
    ) -> None:
        if not re.fullmatch(config.TABLE_NAME_PATTERN, table):
            raise ValueError(f"Invalid tilesets table {table!r}")
        self.conn = conn
        self.table = table

    def all(self) -> Iterable[db_models.Tileset]:
        with self.conn.cursor(
            cursor_factory=psycopg2.extras.RealDictCursor
        ) as cur:
            cur.execute(f"SELECT * FROM {self.table} ORDER BY name")  # noqa: S608
            rows = cur.fetchall()
        for row in rows:
            yield self._from_row(cast(dict[str, object], row))

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Tileset:
        """Convert a database row dictionary to a Tileset.

        Args:
            row: Dictionary from database query result.

        Returns:
            Tileset with defaults applied for missing zooms and bounds.

        Raises:
            ValueError: If the row has no name, has neither a tile query nor
                a source table, or a field fails Tileset validation.
        """
        name = row.get("name")
        if not isinstance(name, str):
            raise ValueError(f"Tileset row has no valid name: {name!r}")
        tile_query = _cast(row.get("tile_query"), str)
        if not tile_query:
            source_table = _cast(row.get("source_table"), str)
            if not source_table:
                raise ValueError(
                    f"Tileset {name!r} has neither tile_query nor source_table"
                )
            geometry_column = _cast(row.get("geometry_column"), str) or "geom"
            tile_query = tiles_postgis.build_mvt_sql(source_table, geometry_column)

        bounds = (
            row.get("bounds_west"),
            row.get("bounds_south"),
            row.get("bounds_east"),
            row.get("bounds_north"),
        )
        if any(v is None for v in bounds):
            bounds_tuple = db_models.WORLD_BOUNDS
        else:
            bounds_tuple = tuple(float(cast(float, v)) for v in bounds)

        minzoom_value = row.get("minzoom")
        maxzoom_value = row.get("maxzoom")

        return db_models.Tileset(
            name=name,
            tile_query=tile_query,
            minzoom=int(cast(int, minzoom_value)) if minzoom_value is not None else 0,
            maxzoom=int(cast(int, maxzoom_value)) if maxzoom_value is not None else 22,
            bounds=bounds_tuple,  # type: ignore[arg-type]
            attribution=_cast(row.get("attribution"), str),
            description=_cast(row.get("description"), str),
        )


def build_registry(
    repo: TilesetRepositoryProtocol,
) -> db_models.Tilesets:
    """Materialize every tileset from ``repo`` into a frozen registry.

    Raises:
        TilesetLoadError: On a database error, an invalid definition or a
            duplicate tileset name.
    """
    tilesets: dict[str, db_models.Tileset] = {}
    try:
        for tileset in repo.all():
            if tileset.name in tilesets:
                raise errors.TilesetLoadError(
                    f"Duplicate tileset name {tileset.name!r}"
                )
            tilesets[tileset.name] = tileset
    except psycopg2.Error as exc:
        raise errors.TilesetLoadError(f"Could not read tilesets: {exc}") from exc
    except ValueError as exc:
        raise errors.TilesetLoadError(str(exc)) from exc
    return db_models.freeze_tilesets(tilesets)


def load_tilesets(
    conn: psycopg2.extensions.connection,
    table: str = "tilesets",
) -> db_models.Tilesets:
    """Load the tileset registry through ``conn``.

    Args:
        conn: A connection borrowed for the duration of the load.
        table: Table holding tileset definitions.

    Returns:
        Read-only mapping from tileset name to Tileset.

    Raises:
        TilesetLoadError: If the definitions cannot be read or are invalid.
    """
    registry = build_registry(PostgresTilesetRepository(conn, table))
    logger.info("Loaded %d tileset(s): %s", len(registry), ", ".join(registry))
    return registry
