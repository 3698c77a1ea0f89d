"""Role registry API routes."""

import logging
from flask import jsonify

from . import roles_bp
from reimburse.core.utils.api_helpers import (
    admin_required, api_login_required, error_response, get_json_or_error, service,
)

logger = logging.getLogger('reimburse.core.roles.routes')


@roles_bp.route('/api/roles', methods=['GET'])
@api_login_required
def api_list_roles():
    """All roles, built-ins first."""
    registry = service('registry')
    return jsonify({
        'roles': registry.list_roles(),
        'custom_roles': registry.list_custom_roles(),
    })


@roles_bp.route('/api/roles', methods=['POST'])
@admin_required
def api_add_role():
    data, error = get_json_or_error()
    if error:
        return error
    try:
        roles = service('registry').add_custom_role(data.get('name') or '')
        return jsonify({'success': True, 'roles': roles}), 201
    except Exception as e:
        return error_response(e)


@roles_bp.route('/api/roles/<name>', methods=['DELETE'])
@admin_required
def api_remove_role(name):
    """Remove a custom role; users and rules referencing it are updated."""
    try:
        roles = service('registry').remove_custom_role(name)
        return jsonify({'success': True, 'roles': roles})
    except Exception as e:
        return error_response(e)
