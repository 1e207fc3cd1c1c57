"""HTTP layer of the tile server.

Submodules:
    - routes: The three URL shapes and their path convertors.
    - tiles: Index, TileJSON and vector tile endpoints.
    - cors: Middleware adding CORS headers to every response.
"""
