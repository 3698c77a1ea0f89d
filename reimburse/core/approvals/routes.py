"""API routes for expenses, decisions and the rule set."""

import logging
from flask import jsonify, request
from flask_login import current_user

from . import approvals_bp
from .constants import STATUSES
from reimburse.core.errors import NotAuthorizedError
from reimburse.core.utils.api_helpers import (
    admin_required, api_login_required, error_response, get_json_or_error, service,
)

logger = logging.getLogger('reimburse.core.approvals.routes')


# ════════════════════════════════════════════
# Expenses
# ════════════════════════════════════════════

@approvals_bp.route('/api/expenses', methods=['POST'])
@api_login_required
def api_submit_expense():
    """Submit an expense for the current user."""
    data, error = get_json_or_error()
    if error:
        return error

    if data.get('amount') in (None, '') or not data.get('currency') or not data.get('category'):
        return jsonify({'success': False, 'error': 'amount, currency and category are required'}), 400

    try:
        expense = service('engine').submit(
            current_user.id,
            data['amount'],
            data['currency'],
            data['category'],
            description=data.get('description', ''),
            receipt=data.get('receipt'),
            date=data.get('date'),
        )
        return jsonify({'success': True, 'expense': expense}), 201
    except Exception as e:
        return error_response(e)


@approvals_bp.route('/api/expenses', methods=['GET'])
@api_login_required
def api_list_expenses():
    """Expenses visible to the current user, newest first."""
    status = (request.args.get('status') or '').strip().upper()
    if status and status not in STATUSES:
        return jsonify({'success': False, 'error': f'Unknown status {status}'}), 400

    try:
        rows = service('engine').list_for_user(current_user.id)
    except Exception as e:
        return error_response(e)

    if status:
        rows = [e for e in rows if e['status'] == status]
    return jsonify({'expenses': rows, 'count': len(rows)})


@approvals_bp.route('/api/expenses/<expense_id>', methods=['GET'])
@api_login_required
def api_get_expense(expense_id):
    """Expense detail, including decisions and history."""
    engine = service('engine')
    try:
        expense = engine.get_expense(expense_id)
        if not _can_view(engine, expense):
            raise NotAuthorizedError(f'Expense {expense_id} is not visible to you')
        return jsonify(expense)
    except Exception as e:
        return error_response(e)


@approvals_bp.route('/api/expenses/<expense_id>/history', methods=['GET'])
@api_login_required
def api_expense_history(expense_id):
    engine = service('engine')
    try:
        expense = engine.get_expense(expense_id)
        if not _can_view(engine, expense):
            raise NotAuthorizedError(f'Expense {expense_id} is not visible to you')
        return jsonify({'history': engine.get_history(expense_id)})
    except Exception as e:
        return error_response(e)


@approvals_bp.route('/api/my-queue', methods=['GET'])
@api_login_required
def api_my_queue():
    """Pending expenses the current user can act on."""
    try:
        rows = service('engine').get_pending_for_user(current_user.id)
        return jsonify({'expenses': rows, 'count': len(rows)})
    except Exception as e:
        return error_response(e)


# ════════════════════════════════════════════
# Decisions
# ════════════════════════════════════════════

@approvals_bp.route('/api/expenses/<expense_id>/decide', methods=['POST'])
@api_login_required
def api_decide(expense_id):
    """APPROVE or REJECT the current step."""
    data, error = get_json_or_error()
    if error:
        return error

    engine = service('engine')
    try:
        status = engine.decide(
            expense_id, current_user.id,
            data.get('decision'), comment=data.get('comment', ''),
        )
        return jsonify({'success': True, 'status': status,
                        'expense': engine.get_expense(expense_id)})
    except Exception as e:
        return error_response(e)


@approvals_bp.route('/api/expenses/<expense_id>/override', methods=['POST'])
@admin_required
def api_override(expense_id):
    """Force an expense to APPROVED or REJECTED."""
    data, error = get_json_or_error()
    if error:
        return error

    engine = service('engine')
    try:
        status = engine.override(expense_id, data.get('status'), current_user.id)
        return jsonify({'success': True, 'status': status,
                        'expense': engine.get_expense(expense_id)})
    except Exception as e:
        return error_response(e)


# ════════════════════════════════════════════
# Rule set
# ════════════════════════════════════════════

@approvals_bp.route('/api/rules', methods=['GET'])
@api_login_required
def api_get_rules():
    return jsonify(service('engine').get_rules())


@approvals_bp.route('/api/rules', methods=['PUT'])
@admin_required
def api_update_rules():
    """Replace or partially update the rule set."""
    data, error = get_json_or_error()
    if error:
        return error
    try:
        rules = service('engine').update_rules(data, admin_id=current_user.id)
        return jsonify({'success': True, 'rules': rules})
    except Exception as e:
        return error_response(e)


def _can_view(engine, expense):
    if expense['user_id'] == current_user.id or current_user.is_admin:
        return True
    visible = {e['id'] for e in engine.list_for_user(current_user.id)}
    if expense['id'] in visible:
        return True
    return any(e['id'] == expense['id'] for e in engine.get_pending_for_user(current_user.id))
