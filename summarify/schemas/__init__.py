"""
Summarify Backend — Pydantic Request/Response Schemas
=======================================================

API contracts, kept separate from the ORM models so the exposed fields
are chosen explicitly. One module per route group plus `common`.
"""
