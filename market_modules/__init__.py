"""
Market Modules.

Thin orchestration layers over the Market Kernel and Engines.
Each module contains:
- Domain models (frozen dataclasses)
- ORM models (persistence)
- Workflows (state machines)
- Services (transaction boundary)

Modules:
- Orders: client orders, items, delivery ledger, order and payment workflows
- Suppliers: supplier directory and supplier assignment
- Invoicing: partial invoices over deliveries and their lifecycle

Actual pricing and ranking logic lives in the engines.
"""
