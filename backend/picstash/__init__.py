"""
PicStash Backend — Application Package Initializer
==================================================

What: Marks the `picstash` directory as a Python package.
Why:  Enables module imports like `from picstash.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend is a single upload endpoint split into thin layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP method dispatch, headers
    ├─────────────────────────────────────┤
    │    Upload Service (Orchestration)   │  ← validate → save → process → record
    ├─────────────────────────────────────┤
    │  Validator / Namer / Image / Store  │  ← pluggable strategies
    ├─────────────────────────────────────┤
    │        Upload directory (disk)      │
    └─────────────────────────────────────┘

    The strategies are injected into the service at construction, so a
    subclass is never needed to change where files live or how they are checked.
"""

__version__ = "1.0.0"
