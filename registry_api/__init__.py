"""HTTP surface for the registry dashboard (FastAPI)."""
