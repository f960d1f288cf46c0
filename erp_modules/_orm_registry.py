"""
Module ORM Registry (``erp_modules._orm_registry``).

Ensures every module-level SQLAlchemy model is imported so that
``Base.metadata`` holds all table definitions before
``erp_kernel.db.engine.create_tables()`` runs.  MUST NOT be imported by
``erp_kernel`` at module load time.
"""


def import_all_orm_models() -> None:
    """Import every ``erp_modules.*.orm`` module.  Idempotent."""
    # fmt: off
    import erp_modules.directory.orm  # noqa: F401
    import erp_modules.permissions.orm  # noqa: F401
    import erp_modules.research.orm  # noqa: F401
    # fmt: on
