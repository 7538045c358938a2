"""
Market Kernel

Shared foundation for the order workflow, pricing and invoicing engine:
- Declarative persistence base with UUID keys and audit columns
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Locked-counter sequences for order and invoice numbering
"""

__version__ = "0.1.0"
