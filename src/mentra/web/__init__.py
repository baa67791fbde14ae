"""Web API for Mentra (FastAPI)."""
