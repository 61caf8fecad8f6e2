"""HTTP surface of the edge node (FastAPI)."""
