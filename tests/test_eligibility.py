"""Unit tests for approver eligibility."""

from reimburse.core.approvals.eligibility import (
    can_decide, current_step, eligible_approvers, is_eligible_approver,
)
from reimburse.core.approvals.rules import default_rules
from reimburse.core.expenses.repositories import new_expense

USERS = [
    {'id': 'u-manager', 'roles': ['MANAGER']},
    {'id': 'u-other-manager', 'roles': ['MANAGER']},
    {'id': 'u-emp', 'roles': ['EMPLOYEE'], 'manager_id': 'u-manager'},
    {'id': 'u-solo', 'roles': ['EMPLOYEE']},
    {'id': 'u-fin', 'roles': ['FINANCE']},
    {'id': 'u-cfo', 'roles': ['FINANCE', 'CFO']},
    {'id': 'u-admin', 'roles': ['ADMIN']},
]


def _expense(user_id='u-emp', step_index=0):
    expense = new_expense(user_id, 10.0, 'USD', 'Meals', '', None, '2026-01-01',
                          ['MANAGER', 'FINANCE', 'DIRECTOR'], '2026-01-01T00:00:00+00:00')
    expense['approvals']['step_index'] = step_index
    return expense


def _user(user_id):
    return next(u for u in USERS if u['id'] == user_id)


class TestEligibleApprovers:

    def test_manager_step_is_submitters_manager_only(self):
        assert eligible_approvers(_expense(), 'MANAGER', USERS) == {'u-manager'}

    def test_manager_step_without_manager_is_empty(self):
        assert eligible_approvers(_expense('u-solo'), 'MANAGER', USERS) == set()

    def test_unknown_submitter_is_empty(self):
        assert eligible_approvers(_expense('u-gone'), 'MANAGER', USERS) == set()

    def test_other_roles_are_all_holders(self):
        assert eligible_approvers(_expense(), 'FINANCE', USERS) == {'u-fin', 'u-cfo'}

    def test_role_nobody_holds(self):
        assert eligible_approvers(_expense(), 'DIRECTOR', USERS) == set()


class TestCurrentStep:

    def test_returns_step_under_cursor(self):
        assert current_step(_expense(step_index=1))['role'] == 'FINANCE'

    def test_none_when_concluded(self):
        assert current_step(_expense(step_index=3)) is None


class TestIsEligibleApprover:

    def test_submitters_manager(self):
        assert is_eligible_approver(_expense(), _user('u-manager'), USERS) is True

    def test_other_manager_is_not_eligible(self):
        assert is_eligible_approver(_expense(), _user('u-other-manager'), USERS) is False

    def test_finance_at_manager_step(self):
        assert is_eligible_approver(_expense(), _user('u-fin'), USERS) is False

    def test_admin_always_eligible(self):
        assert is_eligible_approver(_expense(), _user('u-admin'), USERS) is True

    def test_concluded_expense(self):
        assert is_eligible_approver(_expense(step_index=3), _user('u-admin'), USERS) is False

    def test_missing_user(self):
        assert is_eligible_approver(_expense(), None, USERS) is False


class TestCanDecide:

    def test_specific_approver_may_decide_at_any_step(self):
        assert can_decide(_expense(), _user('u-cfo'), USERS, default_rules()) is True

    def test_specific_approver_disabled(self):
        rules = default_rules()
        rules['specific_approver_rule']['enabled'] = False
        assert can_decide(_expense(), _user('u-cfo'), USERS, rules) is False

    def test_plain_user_outside_step(self):
        assert can_decide(_expense(), _user('u-fin'), USERS, default_rules()) is False

    def test_concluded_expense(self):
        assert can_decide(_expense(step_index=3), _user('u-cfo'), USERS, default_rules()) is False
