"""TileJSON document assembly."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tileserver.db import models as db_models

TILEJSON_VERSION = "2.2.0"


def tile_url_template(base_url: str, tileset_name: str) -> str:
    """Return the XYZ tile URL template for a tileset under ``base_url``."""
    return f"{base_url.rstrip('/')}/{tileset_name}/{{z}}/{{x}}/{{y}}.pbf"


def build_tilejson(tileset: db_models.Tileset, base_url: str) -> dict[str, Any]:
    """Describe a tileset as a TileJSON document.

    Args:
        tileset: Tileset to describe.
        base_url: Scheme and host the client used to reach this server, so
            the tile template works behind any deployment.

    Returns:
        TileJSON dictionary. ``attribution`` and ``description`` are only
        present when the tileset defines them.
    """
    document: dict[str, Any] = {
        "tilejson": TILEJSON_VERSION,
        "name": tileset.name,
        "scheme": "xyz",
        "format": "pbf",
        "tiles": [tile_url_template(base_url, tileset.name)],
        "minzoom": tileset.minzoom,
        "maxzoom": tileset.maxzoom,
        "bounds": list(tileset.bounds),
        "center": list(tileset.center),
    }
    if tileset.attribution is not None:
        document["attribution"] = tileset.attribution
    if tileset.description is not None:
        document["description"] = tileset.description
    return document
