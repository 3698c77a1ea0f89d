from .expense_repository import ExpenseRepository, new_expense

__all__ = ['ExpenseRepository', 'new_expense']
