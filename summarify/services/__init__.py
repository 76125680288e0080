# Services package init
"""
Summarify Backend — Services Layer
====================================

What:  Business logic between the routes (HTTP) and the database.
How:   Every module exposes a stateless singleton; routes call it directly.
       All balance changes go through LedgerStore inside a `transaction()`
       opened by one of the coordinators below.

Service Inventory:
    Ledger core
    - LedgerStore:         account lock, guarded debit, append-only entries
    - SpendCoordinator:    debit + action atomically, admin adjustments
    - AccountService:      first-authentication and profiles
    - BalanceService:      balance, history, audit and rebuild

    Paid actions
    - TranscriptService:   transcript storage (+ optional summary job)
    - SummaryService:      summary requests and job polling
    - JobTracker:          BillableJob state transitions and refunds
    - JobRunner:           background execution of summary jobs

    Collaborators
    - LLMService (abstract) / GeminiService:         AI completion
    - PaymentProcessor (abstract) / StripeService:   payment intents, webhooks
    - SettlementService:   purchase intents and the exactly-once reconciler
"""
