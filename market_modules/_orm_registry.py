"""
Module ORM Registry (``market_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  ``create_all_tables()`` is the one entry point for a complete
schema.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``market_modules``
packages and from ``market_kernel.db.engine`` (allowed: modules -> kernel).
MUST NOT be imported by ``market_kernel`` or ``market_engines``.

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel tables and every ``market_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    import market_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import market_modules.orders.orm  # noqa: F401
    import market_modules.suppliers.orm  # noqa: F401
    import market_modules.invoicing.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Create kernel + all module ORM tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from market_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
