"""Expense Repository - one store key per expense.

Expenses are never deleted; the history list is their audit trail.
"""
import logging
import uuid
from typing import Optional, Dict, Any, List

from reimburse.core.approvals.constants import PENDING
from reimburse.core.roles.constants import ADMIN, MANAGER, FINANCE, DIRECTOR
from reimburse.core.storage import EXPENSE_PREFIX, expense_key

logger = logging.getLogger('reimburse.core.expenses.expense_repository')


def new_expense(user_id, amount, currency, category, description, receipt, date,
                steps, created_at, expense_id=None) -> Dict[str, Any]:
    """Build a PENDING expense with an empty decision list per step.

    `steps` is copied, so later rule edits never reach this expense.
    """
    return {
        'id': expense_id or f'e-{uuid.uuid4().hex[:12]}',
        'user_id': user_id,
        'amount': amount,
        'currency': currency,
        'category': category,
        'description': description or '',
        'receipt': receipt or {'file_name': '', 'text': ''},
        'date': date,
        'status': PENDING,
        'approvals': {
            'step_index': 0,
            'steps': [{'role': role, 'decisions': []} for role in steps],
        },
        'history': [{'timestamp': created_at, 'status': PENDING, 'by': user_id}],
        'created_at': created_at,
    }


class ExpenseRepository:

    def __init__(self, store):
        self._store = store

    def get(self, expense_id) -> Optional[Dict[str, Any]]:
        return self._store.get(expense_key(expense_id))

    def save(self, expense: Dict[str, Any]):
        self._store.set(expense_key(expense['id']), expense)

    def get_all(self, status: str = None) -> List[Dict[str, Any]]:
        """All expenses, newest first."""
        rows = [self._store.get(k) for k in self._store.keys(EXPENSE_PREFIX)]
        rows = [r for r in rows if r and (status is None or r.get('status') == status)]
        rows.sort(key=lambda e: e.get('created_at') or '', reverse=True)
        return rows

    def list_for(self, user: Dict[str, Any], team_ids=None) -> List[Dict[str, Any]]:
        """Expenses visible to a user.

        ADMIN sees everything; MANAGER sees own and direct reports';
        FINANCE and DIRECTOR see every pending expense plus their own;
        everyone else sees their own.
        """
        roles = user.get('roles') or []
        rows = self.get_all()
        if ADMIN in roles:
            return rows
        if MANAGER in roles:
            team = set(team_ids or [])
            return [e for e in rows if e['user_id'] in team or e['user_id'] == user['id']]
        if FINANCE in roles or DIRECTOR in roles:
            return [e for e in rows if e['status'] == PENDING or e['user_id'] == user['id']]
        return [e for e in rows if e['user_id'] == user['id']]
