# Routes package init
"""
Summarify Backend — API Routes Package
========================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource; identity comes from deps.py.

Route Inventory:
    - accounts.py:     POST /api/accounts/auth, GET /api/accounts/me
    - transcripts.py:  POST/GET /api/transcripts, GET /api/transcripts/{id}
    - summaries.py:    POST /api/summaries, GET /api/summaries/{job_id}
    - credits.py:      GET /api/credits/balance, GET /api/credits/history
    - payments.py:     GET /api/payments/products, POST /api/payments/intents,
                       POST /api/payments/webhook
    - admin.py:        adjustments, refunds, balance audit and rebuild
    - health.py:       GET /health

Design Principle:
    Routes are THIN. They read headers, query params and bodies, call one
    service method and pick the status code. Every ledger rule lives in
    the services.
"""
