"""
DreamWeaver Backend — Application Package Initializer
=====================================================

What: Marks the `dreamweaver` directory as a Python package.
Why:  Enables module imports like `from dreamweaver.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend keeps the same layering for every resource:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Ownership, lifecycle rules
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The sleep-session state machine lives in exactly one place
    (services/session_state.py + services/session_lifecycle.py); routes
    never re-derive it.
"""

__version__ = "1.0.0"
