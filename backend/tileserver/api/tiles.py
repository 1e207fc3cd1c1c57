"""Tile and TileJSON endpoints.

This module serves the three public routes: a fixed index document,
TileJSON metadata per tileset, and Mapbox Vector Tiles rendered by PostGIS.
Tilesets come from the registry loaded at startup; tiles are rendered on
demand through the shared connection pool and returned as raw protobuf.

Status codes for tile requests:
    - 200: MVT bytes (``application/x-protobuf``)
    - 204: valid tile with no features
    - 400: empty or malformed z/x/y
    - 404: unknown tileset, or tile outside the tileset's zoom range/grid
    - 500: tile query failed
    - 503: no database connection available in time

Example:
    Request metadata and a tile:
        >>> client.get("/cities.json").json()["tiles"]
        ['http://testserver/cities/{z}/{x}/{y}.pbf']
        >>> client.get("/cities/10/512/340.pbf").content
        b'\\x1a...'
"""

import logging
from typing import Any

import fastapi
from fastapi import responses

from tileserver.api.routes import Route
from tileserver.core import errors
from tileserver.db import models as db_models
from tileserver.db import pool as db_pool
from tileserver.services import tilejson, tiles_postgis

logger = logging.getLogger(__name__)

MVT_MEDIA_TYPE = "application/x-protobuf"

router = fastapi.APIRouter(tags=["tiles"])


def _get_tilesets(request: fastapi.Request) -> db_models.Tilesets:
    """Resolve the read-only tileset registry published at startup."""
    return request.app.state.tilesets  # type: ignore[no-any-return]


def _get_pool(request: fastapi.Request) -> db_pool.ConnectionPool:
    """Resolve the shared connection pool."""
    return request.app.state.pool  # type: ignore[no-any-return]


def _lookup(tilesets: db_models.Tilesets, name: str) -> db_models.Tileset:
    tileset = tilesets.get(name)
    if tileset is None:
        raise fastapi.HTTPException(status_code=404, detail="Tileset not found")
    return tileset


@router.get(Route.INDEX)
async def index() -> dict[str, Any]:
    """Top-level document; always an empty object."""
    return {}


@router.get(Route.TILEJSON)
async def get_tilejson(
    tileset: str,
    request: fastapi.Request,
    tilesets: db_models.Tilesets = fastapi.Depends(_get_tilesets),  # noqa: B008
) -> dict[str, Any]:
    """Return the TileJSON document for a tileset.

    The tile URL template is built from the scheme and host of the incoming
    request, so it is correct for whatever address the client used.

    Args:
        tileset: Tileset name from the path.
        request: Incoming request, used for its base URL.
        tilesets: Tileset registry (injected via FastAPI Depends).

    Returns:
        TileJSON dictionary.

    Raises:
        HTTPException: If the tileset is not registered (404).
    """
    found = _lookup(tilesets, tileset)
    return tilejson.build_tilejson(found, str(request.base_url))


@router.get(Route.TILE)
def get_tile(
    tileset: str,
    z: str,
    x: str,
    y: str,
    tilesets: db_models.Tilesets = fastapi.Depends(_get_tilesets),  # noqa: B008
    pool: db_pool.ConnectionPool = fastapi.Depends(_get_pool),  # noqa: B008
) -> responses.Response:
    """Render one vector tile.

    Runs in FastAPI's worker thread pool because the database driver is
    blocking. The pooled connection is released before this returns,
    whichever branch is taken.

    Args:
        tileset: Tileset name from the path.
        z: Zoom level capture (digits, possibly empty).
        x: Tile column capture (digits, possibly empty).
        y: Tile row capture (digits, possibly empty).
        tilesets: Tileset registry (injected via FastAPI Depends).
        pool: Connection pool (injected via FastAPI Depends).

    Returns:
        Protobuf response with the MVT bytes, or 204 for an empty tile.

    Raises:
        HTTPException: 400, 404, 500 or 503 as listed in the module docs.
    """
    try:
        coord = db_models.TileCoordinate.parse(z, x, y)
    except errors.MalformedCoordinate as exc:
        raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc

    found = _lookup(tilesets, tileset)
    if not found.covers(coord):
        raise fastapi.HTTPException(status_code=404, detail="Tile out of range")

    try:
        data = tiles_postgis.fetch_tile(pool, found, coord)
    except errors.PoolUnavailable as exc:
        raise fastapi.HTTPException(
            status_code=503,
            detail="Service unavailable",
            headers={"Retry-After": "1"},
        ) from exc
    except errors.QueryError as exc:
        raise fastapi.HTTPException(
            status_code=500,
            detail="Tile query failed",
        ) from exc

    if not data:
        return responses.Response(status_code=204)
    return responses.Response(content=data, media_type=MVT_MEDIA_TYPE)
