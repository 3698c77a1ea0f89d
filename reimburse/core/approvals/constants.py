"""Expense statuses, decision values and hook event names."""

PENDING = 'PENDING'
APPROVED = 'APPROVED'
REJECTED = 'REJECTED'

STATUSES = (PENDING, APPROVED, REJECTED)
TERMINAL_STATUSES = (APPROVED, REJECTED)

APPROVE = 'APPROVE'
REJECT = 'REJECT'

DECISIONS = (APPROVE, REJECT)

# Evaluator outcomes
OUTCOME_NOOP = 'noop'
OUTCOME_PENDING = 'pending'
OUTCOME_ADVANCED = 'advanced'
OUTCOME_APPROVED = 'approved'
OUTCOME_APPROVED_SPECIFIC = 'approved_specific'
OUTCOME_REJECTED = 'rejected'
