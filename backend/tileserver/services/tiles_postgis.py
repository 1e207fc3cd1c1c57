"""PostGIS MVT (Mapbox Vector Tiles) query building and execution.

This module turns a tile address into MVT bytes. ``build_mvt_sql`` generates
the default tile query for a tileset backed by a plain table: it uses
PostGIS functions like ST_TileEnvelope, ST_AsMVTGeom and ST_AsMVT to clip,
quantize and encode the features intersecting the tile.
``fetch_tile`` runs a tileset's query through the connection pool and
returns the payload untouched.

Tile queries are psycopg2 templates with named placeholders: ``%(z)s``,
``%(x)s``, ``%(y)s`` for the tile address and ``%(layer)s`` for the MVT layer
name (the tileset name). Literal percent signs must be written as ``%%``.

Example:
    Generate the default query for a table and fetch one tile:
        >>> from tileserver.services.tiles_postgis import build_mvt_sql
        >>> sql = build_mvt_sql("public.cities")
        >>> tileset = Tileset(name="cities", tile_query=sql)
        >>> data = fetch_tile(pool, tileset, TileCoordinate(10, 512, 340))

    The generated SQL:
     - Uses ST_TileEnvelope to create the Web Mercator tile bounds
     - Transforms geometries to 3857 (if needed)
     - Clips geometries to the tile extent plus a buffer
     - Encodes the remaining columns as feature properties
     - Returns MVT binary data via ST_AsMVT
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING

import psycopg2

from tileserver.core import errors

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tileserver.db import models as db_models
    from tileserver.db import pool as db_pool

logger = logging.getLogger(__name__)

MVT_EXTENT = 4096
MVT_BUFFER = 64

# Raised by psycopg2 while binding parameters into a malformed template.
QUERY_TEMPLATE_ERRORS = (KeyError, IndexError, TypeError, ValueError)

_TABLE_RE = re.compile(r"[A-Za-z_]\w*(\.[A-Za-z_]\w*)?")
_COLUMN_RE = re.compile(r"[A-Za-z_]\w*")


def _quote_identifier(name: str) -> str:
    """Quote a (possibly schema qualified) identifier for PostgreSQL."""
    return ".".join(f'"{part}"' for part in name.split("."))


def build_mvt_sql(
    source_table: str,
    geometry_column: str = "geom",
    extent: int = MVT_EXTENT,
    buffer: int = MVT_BUFFER,
) -> str:
    """Return an ST_AsMVT query template for a table.

    Generates a PostGIS SQL query that produces Mapbox Vector Tiles (MVT)
    format. The query uses ST_TileEnvelope to create tile bounds, clips
    geometries to the tile extent, and returns MVT binary data via ST_AsMVT.
    Every column except the geometry becomes a feature property.

    The generated SQL expects the named parameters ``z``, ``x``, ``y`` and
    ``layer``. Geometries in any SRID are transformed to EPSG:3857.

    Args:
        source_table: Table or view name, optionally schema qualified.
        geometry_column: Name of the geometry column in ``source_table``.
        extent: MVT tile extent in integer coordinates.
        buffer: Clipping buffer around the tile, in extent units.

    Returns:
        SQL template ready for execution with tile parameters.

    Raises:
        ValueError: If ``source_table`` or ``geometry_column`` is not a
            plain identifier.
    """
    if not _TABLE_RE.fullmatch(source_table):
        raise ValueError(f"Invalid source table {source_table!r}")
    if not _COLUMN_RE.fullmatch(geometry_column):
        raise ValueError(f"Invalid geometry column {geometry_column!r}")

    table = _quote_identifier(source_table)
    column = _quote_identifier(geometry_column)
    return f"""
WITH
  bounds AS (
    SELECT ST_TileEnvelope(%(z)s, %(x)s, %(y)s) AS geom
  ),
  mvtgeom AS (
    SELECT ST_AsMVTGeom(
        ST_Transform(t.{column}, 3857),
        bounds.geom,
        {int(extent)},
        {int(buffer)},
        true
    ) AS geom,
    to_jsonb(t) - '{geometry_column}' AS properties
    FROM {table} t, bounds
    WHERE ST_Intersects(ST_Transform(t.{column}, 3857), bounds.geom)
  )
SELECT ST_AsMVT(mvtgeom.*, %(layer)s, {int(extent)}, 'geom') FROM mvtgeom
""".strip()


def fetch_tile(
    pool: db_pool.ConnectionPool,
    tileset: db_models.Tileset,
    coord: db_models.TileCoordinate,
) -> bytes:
    """Run a tileset's query for one tile and return the raw MVT payload.

    The connection is borrowed from ``pool`` for the duration of the query
    and is returned (or discarded, if it broke) on every exit path.

    Args:
        pool: Shared connection pool.
        tileset: Tileset whose ``tile_query`` is executed.
        coord: Tile address; callers check it against the tileset first.

    Returns:
        The MVT bytes, or ``b""`` when no feature intersects the tile.

    Raises:
        PoolUnavailable: If no connection could be checked out.
        QueryError: If the query failed on the database side, could not be
            bound to the tile parameters or did not return bytea.
    """
    params = {"z": coord.z, "x": coord.x, "y": coord.y, "layer": tileset.name}
    started = time.perf_counter()
    try:
        with pool.connection() as conn, conn.cursor() as cur:
            cur.execute(tileset.tile_query, params)
            row = cur.fetchone()
    except psycopg2.Error as exc:
        logger.error("Tile query failed for %s/%s: %s", tileset.name, coord, exc)
        raise errors.QueryError(str(exc)) from exc
    except QUERY_TEMPLATE_ERRORS as exc:
        # psycopg2 raises these while binding, e.g. for %(zoom)s or a bare %.
        logger.error(
            "Tile query failed for %s/%s: cannot bind parameters: %r",
            tileset.name,
            coord,
            exc,
        )
        raise errors.QueryError(f"Invalid tile query template: {exc!r}") from exc

    data = _payload(tileset, coord, row)
    logger.debug(
        "Tile %s/%s: %d bytes in %.1f ms",
        tileset.name,
        coord,
        len(data),
        (time.perf_counter() - started) * 1000,
    )
    return data


def _payload(
    tileset: db_models.Tileset,
    coord: db_models.TileCoordinate,
    row: Sequence[object] | None,
) -> bytes:
    """Extract the MVT bytes from the first column of a tile query row."""
    value = row[0] if row else None
    if value is None:
        return b""
    if isinstance(value, (bytes, memoryview)):
        return bytes(value)
    logger.error(
        "Tile query failed for %s/%s: returned %s instead of bytea",
        tileset.name,
        coord,
        type(value).__name__,
    )
    raise errors.QueryError(
        f"Tile query returned {type(value).__name__}, expected bytea"
    )
