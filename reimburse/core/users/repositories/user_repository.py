"""User Repository - identity source for the approval engine.

Users are stored as one collection under the `users` key. Every write
replaces the whole list, so writes run under the lock the role registry
holds for its cascades.
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from reimburse.core.errors import NotFoundError, InvalidRoleNameError
from reimburse.core.roles.constants import all_roles, normalize_role_name
from reimburse.core.storage import USERS_KEY, CUSTOM_ROLES_KEY

logger = logging.getLogger('reimburse.core.users.user_repository')


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _text(value, field):
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValueError(f'{field} must be text')
    return value.strip()


class UserRepository:
    """Repository for user data access operations."""

    def __init__(self, store, lock=None):
        self._store = store
        self._lock = lock or threading.RLock()

    def get_all(self) -> List[Dict[str, Any]]:
        return self._store.get(USERS_KEY, [])

    def get_by_id(self, user_id) -> Optional[Dict[str, Any]]:
        for user in self.get_all():
            if user['id'] == user_id:
                return user
        return None

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        email = email.strip().lower() if isinstance(email, str) else ''
        if not email:
            return None
        for user in self.get_all():
            if (user.get('email') or '').lower() == email:
                return user
        return None

    def get_direct_reports(self, manager_id) -> List[Dict[str, Any]]:
        return [u for u in self.get_all() if u.get('manager_id') == manager_id]

    def create(self, name: str, email: str, roles: List[str], manager_id: str = None,
               user_id: str = None) -> Dict[str, Any]:
        """Create a user. Returns the stored record."""
        name = _text(name, 'name')
        email = _text(email, 'email')
        if not name or not email:
            raise ValueError('name and email are required')
        if user_id is not None and not isinstance(user_id, str):
            raise ValueError('id must be text')

        with self._lock:
            users = self.get_all()
            if any((u.get('email') or '').lower() == email.lower() for u in users):
                raise ValueError(f"User with email '{email}' already exists")

            user_id = user_id or f'u-{uuid.uuid4().hex[:12]}'
            if any(u['id'] == user_id for u in users):
                raise ValueError(f"User '{user_id}' already exists")

            user = {
                'id': user_id,
                'name': name,
                'email': email,
                'roles': self._clean_roles(roles),
                'manager_id': self._check_manager(users, manager_id, user_id),
                'created_at': _now_iso(),
            }
            users.append(user)
            self._store.set(USERS_KEY, users)
        logger.info(f"User created: {user_id} roles={user['roles']}")
        return user

    def update(self, user_id, name: str = None, email: str = None,
               roles: List[str] = None, manager_id=...) -> Dict[str, Any]:
        """Update a user. Pass manager_id=None to clear the manager; omit it to keep."""
        if name is not None:
            name = _text(name, 'name')
            if not name:
                raise ValueError('name cannot be empty')
        if email is not None:
            email = _text(email, 'email')
            if not email:
                raise ValueError('email cannot be empty')

        with self._lock:
            users = self.get_all()
            user = next((u for u in users if u['id'] == user_id), None)
            if not user:
                raise NotFoundError(f'User {user_id} not found')

            if name is not None:
                user['name'] = name
            if email is not None:
                if any(u['id'] != user_id and (u.get('email') or '').lower() == email.lower() for u in users):
                    raise ValueError(f"User with email '{email}' already exists")
                user['email'] = email
            if roles is not None:
                user['roles'] = self._clean_roles(roles)
            if manager_id is not ...:
                user['manager_id'] = self._check_manager(users, manager_id, user_id)

            self._store.set(USERS_KEY, users)
        return user

    def delete(self, user_id) -> bool:
        """Delete a user and clear every manager reference to them."""
        with self._lock:
            users = self.get_all()
            if not any(u['id'] == user_id for u in users):
                raise NotFoundError(f'User {user_id} not found')

            remaining = []
            cleared = 0
            for user in users:
                if user['id'] == user_id:
                    continue
                if user.get('manager_id') == user_id:
                    user['manager_id'] = None
                    cleared += 1
                remaining.append(user)

            self._store.set(USERS_KEY, remaining)
        logger.info(f'User deleted: {user_id} (cleared manager on {cleared} user(s))')
        return True

    def strip_role(self, role: str) -> int:
        """Remove a role from every user. Returns the number of users changed."""
        with self._lock:
            users = self.get_all()
            changed = 0
            for user in users:
                if role in (user.get('roles') or []):
                    user['roles'] = [r for r in user['roles'] if r != role]
                    changed += 1
            if changed:
                self._store.set(USERS_KEY, users)
        return changed

    # --- Validation ---

    def _clean_roles(self, roles):
        if roles is not None and not isinstance(roles, list):
            raise InvalidRoleNameError('roles must be a list of role names')
        known = all_roles(self._store.get(CUSTOM_ROLES_KEY, []))
        cleaned = []
        for role in roles or []:
            name = normalize_role_name(role)
            if not name:
                raise InvalidRoleNameError(f"Invalid role name '{role}'")
            if name not in known:
                raise InvalidRoleNameError(f"Unknown role '{name}'")
            if name not in cleaned:
                cleaned.append(name)
        return cleaned

    @staticmethod
    def _check_manager(users, manager_id, user_id):
        if not manager_id:
            return None
        if manager_id == user_id:
            raise ValueError('A user cannot be their own manager')
        if not any(u['id'] == manager_id for u in users):
            raise NotFoundError(f'Manager {manager_id} not found')
        return manager_id
