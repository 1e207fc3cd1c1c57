"""Vector tile server backed by PostGIS.

This package serves Mapbox Vector Tiles and TileJSON metadata for named
tilesets stored in a PostGIS database.

- Tileset definitions are loaded once at startup into a read-only registry
- Tiles are rendered on demand with ST_AsMVT through a bounded pool of
  psycopg2 connections
- Every response carries permissive CORS headers
- Nothing is cached or pre-generated; the server never writes to the database

See README and module sub-docstrings for details on architecture and usage.
"""
