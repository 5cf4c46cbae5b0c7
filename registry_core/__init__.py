"""Core (UI-agnostic) land registry dashboard logic.

This package contains:
- record ingestion (backend JSON -> frozen dataclasses, defaults resolved once)
- policy constants and filter normalization
- page compute functions (JSON-serializable payloads)
- CSV export and chart helpers (Altair -> Vega-Lite spec dict)
- the async registry client with partial-failure tolerant page loaders
"""
