"""Simple in-process callback registry for expense and role events.

Usage:
    from reimburse.core.approvals.hooks import on, fire

    on('expense.approved', my_handler)
    fire('expense.approved', {'expense_id': 'e-1', 'by': 'u-dir'})

Events:
    expense.submitted      expense created (after initial auto-skips)
    expense.decided        individual decision recorded
    expense.step_advanced  cursor moved to the next step
    expense.approved       chain concluded approved (normal flow)
    expense.rejected       REJECT at the active step
    expense.overridden     administrator forced a terminal status
    role.added             custom role created
    role.removed           custom role removed and cascaded
"""

import logging

logger = logging.getLogger('reimburse.core.approvals.hooks')

_registry: dict[str, list] = {}


def on(event_type: str, callback):
    """Register a callback for an event type."""
    _registry.setdefault(event_type, []).append(callback)
    logger.debug(f"Registered hook for {event_type}: {getattr(callback, '__name__', callback)}")


def fire(event_type: str, payload: dict):
    """Call all registered callbacks for event_type. A failing callback never stops the others."""
    for cb in list(_registry.get(event_type, [])):
        try:
            cb(payload)
        except Exception as e:
            logger.error(f"Hook error for {event_type} in {getattr(cb, '__name__', cb)}: {e}", exc_info=True)


def clear(event_type: str = None):
    """Clear hooks. If event_type given, clear only that type. Used in tests."""
    if event_type:
        _registry.pop(event_type, None)
    else:
        _registry.clear()
