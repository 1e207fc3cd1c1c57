"""Database access: connection pool, tileset models and registry loading.

Submodules:
    - pool: Bounded, thread-safe psycopg2 connection pool.
    - models: Tileset and TileCoordinate value types.
    - database: Loads tileset definitions into the frozen registry.
"""
