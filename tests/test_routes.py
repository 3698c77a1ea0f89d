"""HTTP tests for the JSON API.

Runs the real app factory over the in-memory store; the session is
seeded directly with the Flask-Login user id.
"""

from unittest.mock import patch

import pytest

from reimburse.app import create_app
from reimburse.config import AppConfig
from reimburse.core.errors import CascadeDivergedError
from reimburse.core.storage import MemoryStore


@pytest.fixture
def app(store):
    return create_app(AppConfig(secret_key='test-secret', log_level='WARNING'), store=store)


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, user_id):
    with client.session_transaction() as sess:
        sess['_user_id'] = user_id
        sess['_fresh'] = True


def _submit(client, user_id='u-emp', **overrides):
    _login(client, user_id)
    payload = {'amount': 45.0, 'currency': 'USD', 'category': 'Meals', 'description': 'Team lunch'}
    payload.update(overrides)
    resp = client.post('/api/expenses', json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['expense']


# ============== App factory ==============

class TestAppFactory:

    def test_secret_key_required(self):
        with pytest.raises(RuntimeError):
            create_app(AppConfig(log_level='WARNING'), store=MemoryStore())

    def test_debug_falls_back_to_dev_key(self):
        app = create_app(AppConfig(debug=True, log_level='WARNING'), store=MemoryStore())
        assert app.secret_key == 'dev-secret-key-for-local-only'

    def test_health(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['status'] == 'healthy'
        assert data['checks'] == {'store': True}

    def test_users_and_registry_share_lock(self, app):
        services = app.extensions['reimburse']
        assert services['users']._lock is services['registry']._lock


# ============== Authentication ==============

class TestAuthentication:

    def test_requires_login(self, client):
        resp = client.get('/api/expenses')
        assert resp.status_code == 401
        assert resp.get_json()['success'] is False

    def test_deleted_user_session_rejected(self, client):
        _login(client, 'u-ghost')
        assert client.get('/api/my-queue').status_code == 401

    def test_admin_only_route(self, client):
        _login(client, 'u-manager')
        assert client.put('/api/rules', json={'hybrid': {'enabled': False}}).status_code == 403


# ============== Expenses ==============

class TestExpenses:

    def test_submit(self, client):
        expense = _submit(client)
        assert expense['status'] == 'PENDING'
        assert expense['user_id'] == 'u-emp'
        assert expense['approvals']['step_index'] == 0

    def test_submit_missing_fields(self, client):
        _login(client, 'u-emp')
        resp = client.post('/api/expenses', json={'amount': 10})
        assert resp.status_code == 400

    def test_submit_invalid_json(self, client):
        _login(client, 'u-emp')
        resp = client.post('/api/expenses', data='not json', content_type='application/json')
        assert resp.status_code == 400

    def test_submit_negative_amount(self, client):
        _login(client, 'u-emp')
        resp = client.post('/api/expenses', json={'amount': -5, 'currency': 'USD', 'category': 'Meals'})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_request'

    def test_list_own(self, client):
        _submit(client)
        resp = client.get('/api/expenses')
        assert resp.status_code == 200
        assert resp.get_json()['count'] == 1

    def test_list_status_filter(self, client):
        _submit(client)
        assert client.get('/api/expenses?status=approved').get_json()['count'] == 0
        assert client.get('/api/expenses?status=pending').get_json()['count'] == 1
        assert client.get('/api/expenses?status=lost').status_code == 400

    def test_detail_visibility(self, client):
        expense = _submit(client)
        assert client.get(f"/api/expenses/{expense['id']}").status_code == 200

        _login(client, 'u-fin')
        assert client.get(f"/api/expenses/{expense['id']}").status_code == 200

        _login(client, 'u-solo')
        resp = client.get(f"/api/expenses/{expense['id']}")
        assert resp.status_code == 403
        assert resp.get_json()['code'] == 'not_authorized'

    def test_detail_not_found(self, client):
        _login(client, 'u-admin')
        resp = client.get('/api/expenses/e-missing')
        assert resp.status_code == 404
        assert resp.get_json() == {
            'success': False, 'error': 'Expense e-missing not found', 'code': 'not_found',
        }

    def test_history(self, client):
        expense = _submit(client)
        resp = client.get(f"/api/expenses/{expense['id']}/history")
        assert resp.status_code == 200
        assert resp.get_json()['history'][0]['by'] == 'u-emp'


# ============== Decisions ==============

class TestDecide:

    def test_manager_approves(self, client):
        expense = _submit(client)
        _login(client, 'u-manager')
        resp = client.post(f"/api/expenses/{expense['id']}/decide",
                           json={'decision': 'APPROVE', 'comment': 'ok'})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['status'] == 'PENDING'
        assert data['expense']['approvals']['step_index'] == 1

    def test_not_an_approver(self, client):
        expense = _submit(client)
        _login(client, 'u-dir')
        resp = client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 'APPROVE'})
        assert resp.status_code == 403

    def test_invalid_decision(self, client):
        expense = _submit(client)
        _login(client, 'u-manager')
        resp = client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 'MAYBE'})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_decision'

    def test_decide_after_reject(self, client):
        expense = _submit(client)
        _login(client, 'u-manager')
        client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 'REJECT'})
        resp = client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 'APPROVE'})
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'not_pending'

    def test_cfo_approves_whole_chain(self, client):
        expense = _submit(client)
        _login(client, 'u-cfo')
        resp = client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 'APPROVE'})
        assert resp.get_json()['status'] == 'APPROVED'
        assert resp.get_json()['expense']['approvals']['step_index'] == 3

    def test_my_queue(self, client):
        _submit(client)
        _login(client, 'u-manager')
        assert client.get('/api/my-queue').get_json()['count'] == 1
        _login(client, 'u-fin')
        assert client.get('/api/my-queue').get_json()['count'] == 0


class TestOverride:

    def test_admin_override(self, client):
        expense = _submit(client)
        _login(client, 'u-admin')
        resp = client.post(f"/api/expenses/{expense['id']}/override", json={'status': 'REJECTED'})
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'REJECTED'

    def test_non_admin(self, client):
        expense = _submit(client)
        resp = client.post(f"/api/expenses/{expense['id']}/override", json={'status': 'APPROVED'})
        assert resp.status_code == 403

    def test_invalid_status(self, client):
        expense = _submit(client)
        _login(client, 'u-admin')
        resp = client.post(f"/api/expenses/{expense['id']}/override", json={'status': 'PENDING'})
        assert resp.status_code == 400


# ============== Rules ==============

class TestRules:

    def test_get(self, client):
        _login(client, 'u-emp')
        assert client.get('/api/rules').get_json()['steps'] == ['MANAGER', 'FINANCE', 'DIRECTOR']

    def test_update(self, client):
        _login(client, 'u-admin')
        resp = client.put('/api/rules', json={'percentage_rule': {'threshold': 75}})
        assert resp.status_code == 200
        assert resp.get_json()['rules']['percentage_rule'] == {'enabled': True, 'threshold': 75}

    def test_update_empty_steps(self, client):
        _login(client, 'u-admin')
        resp = client.put('/api/rules', json={'steps': []})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_rule_set'


# ============== Roles ==============

class TestRoles:

    def test_list(self, client):
        _login(client, 'u-emp')
        data = client.get('/api/roles').get_json()
        assert data['roles'][:3] == ['EMPLOYEE', 'MANAGER', 'FINANCE']
        assert data['custom_roles'] == []

    def test_add_and_remove(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/roles', json={'name': 'audit'})
        assert resp.status_code == 201
        assert 'AUDIT' in resp.get_json()['roles']

        resp = client.delete('/api/roles/AUDIT')
        assert resp.status_code == 200
        assert 'AUDIT' not in resp.get_json()['roles']

    def test_duplicate(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/roles', json={'name': 'Finance'})
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'duplicate_role'

    def test_remove_builtin(self, client):
        _login(client, 'u-admin')
        resp = client.delete('/api/roles/MANAGER')
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'role_not_removable'

    def test_remove_unknown(self, client):
        _login(client, 'u-admin')
        assert client.delete('/api/roles/LEGAL').status_code == 404

    def test_cascade_divergence_surfaces(self, app, client):
        _login(client, 'u-admin')
        registry = app.extensions['reimburse']['registry']
        error = CascadeDivergedError('stopped after users', details={'completed': ['users']})
        with patch.object(registry, 'remove_custom_role', side_effect=error):
            resp = client.delete('/api/roles/AUDIT')
        assert resp.status_code == 500
        assert resp.get_json()['code'] == 'cascade_diverged'


# ============== Users ==============

class TestUsers:

    def test_list(self, client):
        _login(client, 'u-emp')
        assert client.get('/api/users').get_json()['count'] == 7

    def test_me(self, client):
        _submit(client)
        _login(client, 'u-manager')
        data = client.get('/api/users/me').get_json()
        assert data['id'] == 'u-manager'
        assert data['queue_count'] == 1

    def test_create(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/users', json={
            'name': 'Nina New', 'email': 'nina@ems.local',
            'roles': ['EMPLOYEE'], 'manager_id': 'u-manager',
        })
        assert resp.status_code == 201
        assert resp.get_json()['user']['manager_id'] == 'u-manager'

    def test_create_duplicate_email(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/users', json={'name': 'X', 'email': 'admin@ems.local'})
        assert resp.status_code == 400

    def test_create_unknown_role(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/users', json={'name': 'X', 'email': 'x@ems.local', 'roles': ['LEGAL']})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_role'

    def test_update_manager(self, client):
        _login(client, 'u-admin')
        resp = client.put('/api/users/u-emp', json={'manager_id': None})
        assert resp.status_code == 200
        assert resp.get_json()['user']['manager_id'] is None

    def test_update_keeps_manager_when_omitted(self, client):
        _login(client, 'u-admin')
        resp = client.put('/api/users/u-emp', json={'name': 'Evan E.'})
        assert resp.get_json()['user']['manager_id'] == 'u-manager'

    def test_delete(self, client):
        _login(client, 'u-admin')
        assert client.delete('/api/users/u-solo').status_code == 200
        assert client.delete('/api/users/u-solo').status_code == 404

    def test_cannot_delete_self(self, client):
        _login(client, 'u-admin')
        assert client.delete('/api/users/u-admin').status_code == 400


# ============== Error handling ==============

class TestErrorHandling:

    def test_unexpected_error_is_generic_500(self, app, client):
        _login(client, 'u-manager')
        engine = app.extensions['reimburse']['engine']
        with patch.object(engine, 'get_pending_for_user', side_effect=RuntimeError('db down')):
            resp = client.get('/api/my-queue')
        assert resp.status_code == 500
        assert resp.get_json() == {'success': False, 'error': 'An internal error occurred'}


# ============== Payload types ==============

class TestPayloadTypes:
    """Wrongly typed JSON fields get a typed 400, never a 500."""

    def test_decision_not_text(self, client):
        expense = _submit(client)
        _login(client, 'u-manager')
        resp = client.post(f"/api/expenses/{expense['id']}/decide", json={'decision': 5})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_decision'

    def test_comment_not_text(self, client):
        expense = _submit(client)
        _login(client, 'u-manager')
        resp = client.post(f"/api/expenses/{expense['id']}/decide",
                           json={'decision': 'APPROVE', 'comment': {'text': 'ok'}})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_request'

    def test_override_status_not_text(self, client):
        expense = _submit(client)
        _login(client, 'u-admin')
        resp = client.post(f"/api/expenses/{expense['id']}/override", json={'status': 5})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_decision'

    @pytest.mark.parametrize('overrides', [
        {'currency': 1},
        {'category': ['Meals']},
        {'amount': 'nan'},
        {'amount': 'inf'},
        {'receipt': 'lunch.jpg'},
    ])
    def test_submit_field_types(self, client, overrides):
        _login(client, 'u-emp')
        payload = {'amount': 45.0, 'currency': 'USD', 'category': 'Meals'}
        payload.update(overrides)
        resp = client.post('/api/expenses', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_request'

    def test_submit_requires_employee_role(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/expenses', json={'amount': 10, 'currency': 'USD', 'category': 'Meals'})
        assert resp.status_code == 403
        assert resp.get_json()['code'] == 'not_authorized'

    def test_role_name_not_text(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/roles', json={'name': 5})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_role'

    @pytest.mark.parametrize('payload', [
        {'steps': [5]},
        {'steps': ['MANAGER', None]},
        {'steps': 'MANAGER'},
        {'specific_approver_rule': {'role': 5}},
    ])
    def test_rules_payload_types(self, client, payload):
        _login(client, 'u-admin')
        resp = client.put('/api/rules', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_rule_set'

    def test_user_fields_not_text(self, client):
        _login(client, 'u-admin')
        resp = client.post('/api/users', json={'name': 5, 'email': 'x@ems.local'})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_request'

        resp = client.put('/api/users/u-emp', json={'email': 7})
        assert resp.status_code == 400

    def test_user_roles_not_a_list(self, client):
        _login(client, 'u-admin')
        resp = client.put('/api/users/u-emp', json={'roles': 'ADMIN'})
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_role'
