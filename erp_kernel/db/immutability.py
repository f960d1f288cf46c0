"""
ORM-level append-only enforcement.

History tables (contribution status history, tracker status history) are
journals: rows are inserted and never changed.  Models opt in by mixing in
``AppendOnlyMixin``; the listeners registered here run before the SQL for an
UPDATE or DELETE is emitted and abort the flush with
``ImmutabilityViolationError``.

    session.flush()
         |
         v
    [before_update] --> _block_update() --> ImmutabilityViolationError
    [before_delete] --> _block_delete() --> ImmutabilityViolationError

Usage:
    from erp_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect

from erp_kernel.exceptions import ImmutabilityViolationError
from erp_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


class AppendOnlyMixin:
    """Marks an ORM model whose rows may be inserted but never modified."""

    __append_only__ = True


def _changed_columns(mapper, target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]


def _block_update(mapper, connection, target):
    changed = _changed_columns(mapper, target)
    if not changed:
        return
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "columns": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"append-only record cannot be modified ({', '.join(changed)})",
    )


def _block_delete(mapper, connection, target):
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason="append-only record cannot be deleted",
    )


def _append_only_models() -> list[type]:
    from erp_kernel.db.base import Base

    return [
        mapper.class_
        for mapper in Base.registry.mappers
        if issubclass(mapper.class_, AppendOnlyMixin)
    ]


def register_immutability_listeners() -> None:
    """
    Attach the append-only listeners to every mapped AppendOnlyMixin model.

    Call after the ORM registry has imported all module models.  Idempotent.
    """
    for model in _append_only_models():
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Only for tests that need to bypass enforcement."""
    for model in _append_only_models():
        if event.contains(model, "before_update", _block_update):
            event.remove(model, "before_update", _block_update)
        if event.contains(model, "before_delete", _block_delete):
            event.remove(model, "before_delete", _block_delete)
