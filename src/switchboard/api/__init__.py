"""HTTP adapter - FastAPI routers over the routing core."""
