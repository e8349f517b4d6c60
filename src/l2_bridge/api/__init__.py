"""Local control API (FastAPI)."""
