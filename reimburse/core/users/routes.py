"""User directory API routes."""

import logging
from flask import jsonify
from flask_login import current_user

from . import users_bp
from reimburse.core.utils.api_helpers import (
    admin_required, api_login_required, error_response, get_json_or_error, service,
)

logger = logging.getLogger('reimburse.core.users.routes')


@users_bp.route('/api/users', methods=['GET'])
@api_login_required
def api_list_users():
    users = service('users').get_all()
    return jsonify({'users': users, 'count': len(users)})


@users_bp.route('/api/users/me', methods=['GET'])
@api_login_required
def api_current_user():
    """The logged-in user plus their approval queue size."""
    try:
        count = service('engine').get_queue_count(current_user.id)
    except Exception as e:
        return error_response(e)
    return jsonify({**current_user.to_dict(), 'queue_count': count})


@users_bp.route('/api/users', methods=['POST'])
@admin_required
def api_create_user():
    data, error = get_json_or_error()
    if error:
        return error
    try:
        user = service('users').create(
            data.get('name'),
            data.get('email'),
            data.get('roles') or [],
            manager_id=data.get('manager_id'),
            user_id=data.get('id'),
        )
        logger.info(f'User {user["id"]} created by {current_user.id}')
        return jsonify({'success': True, 'user': user}), 201
    except Exception as e:
        return error_response(e)


@users_bp.route('/api/users/<user_id>', methods=['PUT'])
@admin_required
def api_update_user(user_id):
    """Update a user. Send manager_id: null to clear the manager."""
    data, error = get_json_or_error()
    if error:
        return error

    kwargs = {k: data[k] for k in ('name', 'email', 'roles') if k in data}
    if 'manager_id' in data:
        kwargs['manager_id'] = data['manager_id']
    try:
        user = service('users').update(user_id, **kwargs)
        return jsonify({'success': True, 'user': user})
    except Exception as e:
        return error_response(e)


@users_bp.route('/api/users/<user_id>', methods=['DELETE'])
@admin_required
def api_delete_user(user_id):
    if user_id == current_user.id:
        return jsonify({'success': False, 'error': 'Cannot delete your own account'}), 400
    try:
        service('users').delete(user_id)
        logger.info(f'User {user_id} deleted by {current_user.id}')
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e)
