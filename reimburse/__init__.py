"""Reimburse: expense reimbursement approval workflow engine."""

__version__ = '0.1.0'
