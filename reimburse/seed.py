"""Demo organization and sample expenses.

Sample expenses are pushed through the engine with real decisions, so
their history and decision lists look exactly like production data.
"""
import logging

from reimburse.core.approvals.constants import APPROVE, REJECT
from reimburse.core.approvals.engine import ApprovalEngine
from reimburse.core.approvals.rules import RulesRepository, default_rules
from reimburse.core.roles.constants import ADMIN, CFO, DIRECTOR, EMPLOYEE, FINANCE, MANAGER
from reimburse.core.users.repositories import UserRepository

logger = logging.getLogger('reimburse.seed')

SEEDED_KEY = 'seeded'

DEMO_USERS = [
    # (id, name, email, roles, manager_id)
    ('u-admin', 'System Admin', 'admin@ems.local', [ADMIN], None),
    ('u-manager', 'Mary Manager', 'manager@ems.local', [MANAGER], None),
    ('u-emp', 'Evan Employee', 'employee@ems.local', [EMPLOYEE], 'u-manager'),
    ('u-fin', 'Frank Finance', 'finance@ems.local', [FINANCE], None),
    ('u-dir', 'Dina Director', 'director@ems.local', [DIRECTOR], None),
    ('u-cfo', 'Cindy CFO', 'cfo@ems.local', [FINANCE, CFO], None),
]

# (amount, currency, category, description, receipt, decisions)
DEMO_EXPENSES = [
    (45.00, 'USD', 'Meals', 'Team lunch',
     {'file_name': 'lunch.jpg', 'text': 'Lunch at cafe'}, []),
    (300.00, 'EUR', 'Travel', 'Flight tickets',
     {'file_name': 'flight.png', 'text': 'Round trip'},
     [('u-manager', APPROVE, 'OK'), ('u-fin', APPROVE, 'Budgeted'), ('u-dir', APPROVE, 'Approved')]),
    (120.00, 'USD', 'Supplies', 'Office chair cushion',
     {'file_name': 'cushion.jpg', 'text': 'Accessory'},
     [('u-manager', REJECT, 'Not needed')]),
]


def reset_store(store):
    """Delete every key. Returns the number of keys removed."""
    removed = 0
    for key in store.keys(''):
        if store.delete(key):
            removed += 1
    logger.warning(f'Store reset: {removed} key(s) removed')
    return removed


def seed_demo(store, dry_run=False):
    """Seed users, default rules and sample expenses once.

    Returns a summary dict. A store that was already seeded is left alone.
    """
    if store.get(SEEDED_KEY):
        logger.info('Store already seeded, nothing to do')
        return {'seeded': False, 'users': 0, 'expenses': 0}

    summary = {'seeded': not dry_run, 'users': len(DEMO_USERS), 'expenses': len(DEMO_EXPENSES)}
    if dry_run:
        return summary

    users = UserRepository(store)
    # Managers first so manager_id references resolve
    for user_id, name, email, roles, manager_id in sorted(DEMO_USERS, key=lambda u: u[4] is not None):
        if users.get_by_id(user_id) is None:
            users.create(name, email, roles, manager_id=manager_id, user_id=user_id)

    RulesRepository(store).save(default_rules())

    engine = ApprovalEngine(store)
    for amount, currency, category, description, receipt, decisions in DEMO_EXPENSES:
        expense = engine.submit('u-emp', amount, currency, category,
                                description=description, receipt=receipt)
        for user_id, decision, comment in decisions:
            engine.decide(expense['id'], user_id, decision, comment=comment)

    store.set(SEEDED_KEY, True)
    logger.info(f"Seeded {summary['users']} users and {summary['expenses']} expenses")
    return summary
