"""Step evaluator: applies the rule set to an expense's current step.

Called after a decision is appended to the current step. Mutates the
expense dict in place (status, cursor, history) and reports what happened.

Order of checks:
    1. concluded or terminal      -> no-op
    2. specific-approver APPROVE  -> APPROVED, chain concluded (any step)
    3. REJECT at current step     -> REJECTED
    4. no eligible approvers      -> auto-skip (advance)
    5. step passes                -> advance, APPROVED after the last step
    6. otherwise                  -> stays PENDING

A step passes when every eligible approver approved. With hybrid enabled
it also passes when the percentage rule is met. Only the latest decision
of each user at a step counts.
"""

import logging
from datetime import datetime, timezone

from .constants import (
    APPROVE, REJECT, PENDING, APPROVED, REJECTED,
    OUTCOME_NOOP, OUTCOME_PENDING, OUTCOME_ADVANCED, OUTCOME_APPROVED,
    OUTCOME_APPROVED_SPECIFIC, OUTCOME_REJECTED,
)
from .eligibility import current_step, eligible_approvers, find_user, has_role

logger = logging.getLogger('reimburse.core.approvals.evaluator')


def now_iso():
    return datetime.now(timezone.utc).isoformat()


def record_history(expense, status, by, timestamp=None):
    expense.setdefault('history', []).append({
        'timestamp': timestamp or now_iso(),
        'status': status,
        'by': by or '',
    })


def latest_decisions(step):
    """Map user_id -> last decision value recorded at this step."""
    latest = {}
    for entry in step.get('decisions') or []:
        latest[entry['user_id']] = entry['decision']
    return latest


def _last_author(step):
    decisions = step.get('decisions') or []
    return decisions[-1]['user_id'] if decisions else ''


def find_specific_approver(expense, rules, users):
    """User id of the first specific-approver APPROVE anywhere in the chain, or None."""
    specific = rules.get('specific_approver_rule') or {}
    if not specific.get('enabled') or not specific.get('role'):
        return None
    for step in expense['approvals']['steps']:
        latest = latest_decisions(step)
        for entry in step.get('decisions') or []:
            user_id = entry['user_id']
            if latest.get(user_id) != APPROVE:
                continue
            if has_role(find_user(users, user_id), specific['role']):
                return user_id
    return None


def step_passes(step, eligible, rules):
    """Combine unanimous-step and percentage rules for one step."""
    latest = latest_decisions(step)
    approved_ids = {uid for uid, d in latest.items() if d == APPROVE}

    unanimous = eligible <= approved_ids

    percentage_pass = False
    pct = rules.get('percentage_rule') or {}
    if pct.get('enabled'):
        decided = [uid for uid in latest if uid in eligible]
        approved = [uid for uid in decided if latest[uid] == APPROVE]
        if decided:
            percentage_pass = len(approved) * 100 >= pct.get('threshold', 100) * len(decided)

    if (rules.get('hybrid') or {}).get('enabled'):
        return unanimous or percentage_pass
    return unanimous


def _advance(expense, by, timestamp):
    approvals = expense['approvals']
    approvals['step_index'] += 1
    if approvals['step_index'] >= len(approvals['steps']):
        approvals['step_index'] = len(approvals['steps'])
        expense['status'] = APPROVED
        record_history(expense, APPROVED, by, timestamp)
        return OUTCOME_APPROVED
    record_history(expense, PENDING, by, timestamp)
    return OUTCOME_ADVANCED


def evaluate_step(expense, rules, users, timestamp=None):
    """Run one evaluation pass over the expense's current step."""
    step = current_step(expense)
    if step is None or expense.get('status') != PENDING:
        return OUTCOME_NOOP

    timestamp = timestamp or now_iso()

    approver_id = find_specific_approver(expense, rules, users)
    if approver_id:
        expense['status'] = APPROVED
        expense['approvals']['step_index'] = len(expense['approvals']['steps'])
        record_history(expense, APPROVED, approver_id, timestamp)
        logger.debug(f"Expense {expense.get('id')} approved by specific approver {approver_id}")
        return OUTCOME_APPROVED_SPECIFIC

    if REJECT in latest_decisions(step).values():
        expense['status'] = REJECTED
        record_history(expense, REJECTED, _last_author(step), timestamp)
        return OUTCOME_REJECTED

    eligible = eligible_approvers(expense, step['role'], users)
    if not eligible:
        logger.debug(f"Expense {expense.get('id')}: no eligible {step['role']} approvers, skipping step")
        return _advance(expense, _last_author(step), timestamp)

    if step_passes(step, eligible, rules):
        return _advance(expense, _last_author(step), timestamp)

    return OUTCOME_PENDING


def settle(expense, rules, users, timestamp=None):
    """Evaluate repeatedly until the cursor stops moving.

    A single pass advances at most one step; settling lets consecutive
    steps with no eligible approvers all skip at once. Returns the list
    of outcomes, one per pass.
    """
    outcomes = []
    while True:
        outcome = evaluate_step(expense, rules, users, timestamp)
        outcomes.append(outcome)
        if outcome != OUTCOME_ADVANCED:
            return outcomes
