"""Shared API utilities: decorators, error mapping, request validation."""
import logging
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user

from reimburse.core import errors

logger = logging.getLogger('reimburse.api')

# Engine error kind -> HTTP status
ERROR_STATUS = {
    errors.NotFoundError: 404,
    errors.NotPendingError: 409,
    errors.NoActiveStepError: 409,
    errors.NotAuthorizedError: 403,
    errors.InvalidDecisionError: 400,
    errors.RoleNotRemovableError: 400,
    errors.DuplicateRoleError: 409,
    errors.InvalidRoleNameError: 400,
    errors.InvalidRuleSetError: 400,
    errors.CascadeDivergedError: 500,
}


def service(name):
    """Engine, registry or repository bound to the running app by create_app()."""
    return current_app.extensions['reimburse'][name]


# ============== Decorators ==============

def api_login_required(f):
    """Like @login_required but returns JSON 401 instead of redirect."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator requiring authentication + the ADMIN role."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        if not current_user.is_admin:
            return jsonify({'success': False, 'error': 'Permission denied'}), 403
        return f(*args, **kwargs)
    return decorated


# ============== Request Validation ==============

def get_json_or_error():
    """Get JSON from request body with null check.

    Returns (data, error_response) tuple. Caller pattern:
        data, error = get_json_or_error()
        if error:
            return error
    """
    data = request.get_json(silent=True)
    if data is None or not isinstance(data, dict):
        return None, (jsonify({
            'success': False,
            'error': 'Invalid or missing JSON body',
        }), 400)
    return data, None


# ============== Error Handling ==============

def error_response(e):
    """Translate an exception into a JSON error response.

    - ApprovalError kinds: mapped status, message and code
    - ValueError/KeyError: 400 (business validation, safe to expose)
    - Everything else: logged with traceback, generic 500
    """
    if isinstance(e, errors.ApprovalError):
        status = next((s for cls, s in ERROR_STATUS.items() if isinstance(e, cls)), 400)
        if isinstance(e, errors.CascadeDivergedError):
            logger.critical(f'Cascade diverged: {e} details={e.details}')
        return jsonify({'success': False, 'error': str(e), 'code': e.code}), status

    if isinstance(e, (ValueError, KeyError)):
        return jsonify({'success': False, 'error': str(e), 'code': 'invalid_request'}), 400

    logger.exception('Unhandled error in API route')
    return jsonify({'success': False, 'error': 'An internal error occurred'}), 500
