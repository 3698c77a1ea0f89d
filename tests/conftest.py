"""Shared fixtures: a small organization in an in-memory store."""
import copy

import pytest

from reimburse.core.approvals import hooks
from reimburse.core.approvals.rules import RulesRepository, default_rules
from reimburse.core.storage import MemoryStore, USERS_KEY

ORG = [
    {'id': 'u-admin', 'name': 'System Admin', 'email': 'admin@ems.local', 'roles': ['ADMIN'], 'manager_id': None},
    {'id': 'u-manager', 'name': 'Mary Manager', 'email': 'manager@ems.local', 'roles': ['MANAGER'], 'manager_id': None},
    {'id': 'u-emp', 'name': 'Evan Employee', 'email': 'employee@ems.local', 'roles': ['EMPLOYEE'], 'manager_id': 'u-manager'},
    {'id': 'u-solo', 'name': 'Sam Solo', 'email': 'solo@ems.local', 'roles': ['EMPLOYEE'], 'manager_id': None},
    {'id': 'u-fin', 'name': 'Frank Finance', 'email': 'finance@ems.local', 'roles': ['FINANCE'], 'manager_id': None},
    {'id': 'u-dir', 'name': 'Dina Director', 'email': 'director@ems.local', 'roles': ['DIRECTOR'], 'manager_id': None},
    {'id': 'u-cfo', 'name': 'Cindy CFO', 'email': 'cfo@ems.local', 'roles': ['CFO'], 'manager_id': None},
]


@pytest.fixture(autouse=True)
def _clear_hooks():
    yield
    hooks.clear()


@pytest.fixture
def org_users():
    return copy.deepcopy(ORG)


@pytest.fixture
def store(org_users):
    store = MemoryStore({USERS_KEY: org_users})
    RulesRepository(store).save(default_rules())
    return store
