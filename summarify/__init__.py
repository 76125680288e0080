"""
Summarify Backend — Application Package Initializer
=====================================================

What: The credit ledger behind the Summarify meeting recorder.
Who:  Imported by uvicorn (summarify.main:app), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← spend, jobs, settlement, queries
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← transactions, account locks
    └─────────────────────────────────────┘

    Every balance change goes through services/ledger_store.py; the
    accounts.balance column is a cache of SUM(ledger_entries.delta).
"""

__version__ = "1.0.0"
