"""
Summarify Backend — ORM Models
================================

Importing this package registers every table with `Base.metadata`
(used by Alembic autogenerate and by the test suite's create_all).

Relationships:
    Account 1—* LedgerEntry
    Account 1—* Transcript 1—* BillableJob
    Account 1—* PaymentIntentRecord 1—1 LedgerEntry (the grant)
    PaymentIntentRecord 1—* SettlementEvent (inbound notifications)
"""

from summarify.models.account import Account
from summarify.models.billable_job import BillableJob, JobStatus
from summarify.models.ledger_entry import EntryKind, LedgerEntry
from summarify.models.payment import (
    EventStatus,
    IntentStatus,
    PaymentIntentRecord,
    Product,
    SettlementEvent,
)
from summarify.models.transcript import Transcript

__all__ = [
    "Account",
    "BillableJob",
    "EntryKind",
    "EventStatus",
    "IntentStatus",
    "JobStatus",
    "LedgerEntry",
    "PaymentIntentRecord",
    "Product",
    "SettlementEvent",
    "Transcript",
]
