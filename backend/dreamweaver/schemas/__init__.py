"""
DreamWeaver Backend — Pydantic Schemas
========================================

API contracts, kept separate from the ORM models so the wire format can
carry derived fields (e.g. whether a session is still active) that are never
stored.
"""
