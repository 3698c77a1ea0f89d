"""Approval engine exceptions.

Every error is raised before any state is mutated, except
CascadeDivergedError, which reports a role removal that stopped half way.
"""


class ApprovalError(Exception):
    """Base error for the approval engine."""

    code = 'approval_error'

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(ApprovalError):
    """Referenced expense, user or role does not exist."""
    code = 'not_found'


class NotPendingError(ApprovalError):
    """Decision submitted against an expense that is no longer PENDING."""
    code = 'not_pending'


class NoActiveStepError(ApprovalError):
    """Step cursor does not point at a step."""
    code = 'no_active_step'


class NotAuthorizedError(ApprovalError):
    """User may not act on this expense or operation."""
    code = 'not_authorized'


class InvalidDecisionError(ApprovalError):
    """Decision or override target is not a recognised value."""
    code = 'invalid_decision'


class RoleNotRemovableError(ApprovalError):
    """Built-in roles cannot be removed."""
    code = 'role_not_removable'


class DuplicateRoleError(ApprovalError):
    """Role already exists (case-insensitive)."""
    code = 'duplicate_role'


class InvalidRoleNameError(ApprovalError):
    """Role name is empty after normalization or names an unknown role."""
    code = 'invalid_role'


class InvalidRuleSetError(ApprovalError):
    """Edited rule set is not usable (no steps, unknown roles)."""
    code = 'invalid_rule_set'


class CascadeDivergedError(ApprovalError):
    """Role removal failed after some of its writes were persisted.

    The store is left inconsistent and needs operator reconciliation.
    `details['completed']` lists the writes that went through.
    """
    code = 'cascade_diverged'
