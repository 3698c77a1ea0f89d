"""Who may decide on an expense at a given step.

`users` is always the full user list from the identity source, so the
eligible set tracks role and manager changes made after submission.
"""

from ..roles.constants import ADMIN, MANAGER


def has_role(user, role):
    return bool(user) and role in (user.get('roles') or [])


def find_user(users, user_id):
    for user in users:
        if user.get('id') == user_id:
            return user
    return None


def current_step(expense):
    """The step record under the cursor, or None once the chain concluded."""
    approvals = expense.get('approvals') or {}
    steps = approvals.get('steps') or []
    idx = approvals.get('step_index', 0)
    if 0 <= idx < len(steps):
        return steps[idx]
    return None


def eligible_approvers(expense, role, users):
    """Set of user ids allowed to decide at `role` for this expense.

    MANAGER means the submitter's own manager only; any other role means
    every user holding it. An empty set is a normal outcome.
    """
    if role == MANAGER:
        submitter = find_user(users, expense.get('user_id'))
        manager_id = (submitter or {}).get('manager_id')
        return {manager_id} if manager_id else set()
    return {u['id'] for u in users if has_role(u, role)}


def is_eligible_approver(expense, user, users):
    """True if the user may act on the expense's current step.

    Administrators may always act on the current step.
    """
    step = current_step(expense)
    if step is None or not user:
        return False
    if has_role(user, ADMIN):
        return True
    return user.get('id') in eligible_approvers(expense, step['role'], users)


def can_decide(expense, user, users, rules):
    """Server-side gate for recording a decision.

    Holders of the specific-approver role may decide at any step while that
    rule is enabled, since their approval concludes the whole chain.
    """
    if is_eligible_approver(expense, user, users):
        return True
    specific = (rules or {}).get('specific_approver_rule') or {}
    return (current_step(expense) is not None
            and bool(specific.get('enabled'))
            and has_role(user, specific.get('role')))
