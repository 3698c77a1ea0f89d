"""ApprovalEngine owns expense status and the step cursor.

All approval logic flows through this class. Nothing else writes
expense['status'] or expense['approvals'].
"""

import logging
import math
import threading
import weakref

from . import hooks
from .constants import (
    DECISIONS, PENDING, TERMINAL_STATUSES,
    OUTCOME_ADVANCED, OUTCOME_APPROVED, OUTCOME_APPROVED_SPECIFIC, OUTCOME_REJECTED,
)
from .eligibility import can_decide, current_step, has_role, is_eligible_approver
from .evaluator import now_iso, record_history, settle
from .rules import RulesRepository
from reimburse.core.errors import (
    InvalidDecisionError, NoActiveStepError, NotAuthorizedError,
    NotFoundError, NotPendingError,
)
from reimburse.core.expenses.repositories.expense_repository import ExpenseRepository, new_expense
from reimburse.core.roles.constants import ADMIN, EMPLOYEE
from reimburse.core.users.repositories.user_repository import UserRepository
from reimburse.core.utils.logging_config import log_with_context

logger = logging.getLogger('reimburse.core.approvals.engine')


def _text(value):
    """Stripped string, or '' for anything that is not a string."""
    return value.strip() if isinstance(value, str) else ''


class ApprovalEngine:

    def __init__(self, store, enforce_eligibility=True, config_lock=None):
        self._store = store
        self._rules_repo = RulesRepository(store)
        self._user_repo = UserRepository(store)
        self._expense_repo = ExpenseRepository(store)
        self.enforce_eligibility = enforce_eligibility
        # Held while snapshotting rules; RoleRegistry takes the same lock for cascades
        self._config_lock = config_lock or threading.RLock()
        self._expense_locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # ════════════════════════════════════════════
    # Public API
    # ════════════════════════════════════════════

    def submit(self, user_id, amount, currency, category, description='',
               receipt=None, date=None):
        """Create a PENDING expense with a snapshot of the current steps.

        Leading steps without eligible approvers are skipped right away.
        """
        users = self._user_repo.get_all()
        submitter = next((u for u in users if u['id'] == user_id), None)
        if not submitter:
            raise NotFoundError(f'User {user_id} not found')
        if not has_role(submitter, EMPLOYEE):
            raise NotAuthorizedError(f'User {user_id} cannot submit expenses without the {EMPLOYEE} role')
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise ValueError('amount must be a number')
        if not math.isfinite(amount):
            raise ValueError('amount must be a finite number')
        if amount <= 0:
            raise ValueError('amount must be positive')
        if not _text(currency) or not _text(category):
            raise ValueError('currency and category are required')
        if description is not None and not isinstance(description, str):
            raise ValueError('description must be text')
        if receipt is not None and not isinstance(receipt, dict):
            raise ValueError('receipt must be an object')
        if date is not None and not isinstance(date, str):
            raise ValueError('date must be an ISO date string')

        created_at = now_iso()
        with self._config_lock:
            rules = self._rules_repo.get()
            expense = new_expense(
                user_id, amount, _text(currency).upper(), _text(category),
                description, receipt, date or created_at[:10],
                rules['steps'], created_at,
            )

        outcomes = settle(expense, rules, users)
        self._expense_repo.save(expense)

        log_with_context(logger, logging.INFO, 'Expense submitted',
                         expense_id=expense['id'], user_id=user_id,
                         steps=rules['steps'], step_index=expense['approvals']['step_index'])
        hooks.fire('expense.submitted', {
            'expense_id': expense['id'], 'user_id': user_id,
            'status': expense['status'],
        })
        self._fire_outcomes(expense, outcomes, start_index=0, by=None)
        return expense

    def decide(self, expense_id, user_id, decision, comment=''):
        """Record a decision on the current step and evaluate it.

        Returns the resulting expense status.
        """
        decision = _text(decision).upper()
        if decision not in DECISIONS:
            raise InvalidDecisionError(f"Decision must be one of {', '.join(DECISIONS)}")
        if comment is not None and not isinstance(comment, str):
            raise ValueError('comment must be text')

        # Expenses are never deleted, so a miss here is final
        if not self._expense_repo.get(expense_id):
            raise NotFoundError(f'Expense {expense_id} not found')

        with self._lock_for(expense_id):
            expense = self._expense_repo.get(expense_id)
            if not expense:
                raise NotFoundError(f'Expense {expense_id} not found')

            if expense['status'] != PENDING:
                raise NotPendingError(
                    f"Expense {expense_id} is {expense['status']}, cannot decide")

            step = current_step(expense)
            if step is None:
                raise NoActiveStepError(f'Expense {expense_id} has no active approval step')

            users = self._user_repo.get_all()
            user = next((u for u in users if u['id'] == user_id), None)
            if not user:
                raise NotFoundError(f'User {user_id} not found')

            rules = self._rules_repo.get()
            if self.enforce_eligibility and not can_decide(expense, user, users, rules):
                raise NotAuthorizedError(
                    f"User {user_id} is not an approver for step {step['role']}")

            start_index = expense['approvals']['step_index']
            step['decisions'].append({
                'user_id': user_id,
                'decision': decision,
                'comment': comment or '',
                'timestamp': now_iso(),
            })

            outcomes = settle(expense, rules, users)
            self._expense_repo.save(expense)

        log_with_context(logger, logging.INFO, 'Decision recorded',
                         expense_id=expense_id, user_id=user_id, decision=decision,
                         step_role=step['role'], status=expense['status'],
                         step_index=expense['approvals']['step_index'])
        hooks.fire('expense.decided', {
            'expense_id': expense_id, 'user_id': user_id, 'decision': decision,
            'step_role': step['role'], 'comment': comment,
        })
        self._fire_outcomes(expense, outcomes, start_index=start_index, by=user_id)
        return expense['status']

    def override(self, expense_id, target_status, admin_id):
        """Force an expense to a terminal status, whatever its current state."""
        target_status = _text(target_status).upper()
        if target_status not in TERMINAL_STATUSES:
            raise InvalidDecisionError(
                f"Override status must be one of {', '.join(TERMINAL_STATUSES)}")

        admin = self._user_repo.get_by_id(admin_id)
        if not admin:
            raise NotFoundError(f'User {admin_id} not found')
        if not has_role(admin, ADMIN):
            raise NotAuthorizedError(f'User {admin_id} is not an administrator')
        if not self._expense_repo.get(expense_id):
            raise NotFoundError(f'Expense {expense_id} not found')

        with self._lock_for(expense_id):
            expense = self._expense_repo.get(expense_id)
            if not expense:
                raise NotFoundError(f'Expense {expense_id} not found')

            previous = expense['status']
            expense['status'] = target_status
            expense['approvals']['step_index'] = len(expense['approvals']['steps'])
            record_history(expense, target_status, admin_id)
            self._expense_repo.save(expense)

        log_with_context(logger, logging.WARNING, 'Expense overridden by admin',
                         expense_id=expense_id, admin_id=admin_id,
                         previous_status=previous, status=target_status)
        hooks.fire('expense.overridden', {
            'expense_id': expense_id, 'admin_id': admin_id,
            'previous_status': previous, 'status': target_status,
        })
        return expense['status']

    def get_rules(self):
        return self._rules_repo.get()

    def update_rules(self, changes, admin_id=None):
        """Validate and save a rule edit. In-flight expenses keep their step snapshot."""
        with self._config_lock:
            rules = self._rules_repo.update(changes)
        log_with_context(logger, logging.INFO, 'Rules updated',
                         admin_id=admin_id, steps=rules['steps'],
                         threshold=rules['percentage_rule']['threshold'])
        return rules

    def get_expense(self, expense_id):
        expense = self._expense_repo.get(expense_id)
        if not expense:
            raise NotFoundError(f'Expense {expense_id} not found')
        return expense

    def get_history(self, expense_id):
        """Audit trail for an expense."""
        return self.get_expense(expense_id).get('history', [])

    def list_for_user(self, user_id):
        """Expenses visible to a user."""
        user = self._user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError(f'User {user_id} not found')
        team_ids = [u['id'] for u in self._user_repo.get_direct_reports(user_id)]
        return self._expense_repo.list_for(user, team_ids=team_ids)

    def get_pending_for_user(self, user_id):
        """PENDING expenses whose current step this user may act on."""
        users = self._user_repo.get_all()
        user = next((u for u in users if u['id'] == user_id), None)
        if not user:
            raise NotFoundError(f'User {user_id} not found')
        return [e for e in self._expense_repo.get_all(status=PENDING)
                if is_eligible_approver(e, user, users)]

    def get_queue_count(self, user_id):
        """Badge count for UI."""
        return len(self.get_pending_for_user(user_id))

    # ════════════════════════════════════════════
    # Internal
    # ════════════════════════════════════════════

    def _lock_for(self, expense_id):
        # Entries vanish once no caller holds the lock
        with self._locks_guard:
            lock = self._expense_locks.get(expense_id)
            if lock is None:
                lock = threading.Lock()
                self._expense_locks[expense_id] = lock
            return lock

    def _fire_outcomes(self, expense, outcomes, start_index, by):
        payload = {'expense_id': expense['id'], 'user_id': expense['user_id'], 'by': by}
        step_index = start_index
        for outcome in outcomes:
            if outcome == OUTCOME_ADVANCED:
                step_index += 1
                hooks.fire('expense.step_advanced', {
                    **payload, 'step_index': step_index,
                })
            elif outcome in (OUTCOME_APPROVED, OUTCOME_APPROVED_SPECIFIC):
                hooks.fire('expense.approved', {
                    **payload, 'specific_approver': outcome == OUTCOME_APPROVED_SPECIFIC,
                })
            elif outcome == OUTCOME_REJECTED:
                hooks.fire('expense.rejected', payload)
