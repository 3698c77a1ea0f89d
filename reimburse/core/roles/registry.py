"""Role registry.

Built-in roles are fixed. Custom roles live in the store under
`custom_roles`; removing one cascades into users and the rule set.
"""

import logging
import threading

from .constants import BUILTIN_ROLES, all_roles, normalize_role_name
from reimburse.core.approvals import hooks
from reimburse.core.approvals.rules import RulesRepository
from reimburse.core.errors import (
    CascadeDivergedError, DuplicateRoleError, InvalidRoleNameError,
    NotFoundError, RoleNotRemovableError,
)
from reimburse.core.storage import CUSTOM_ROLES_KEY
from reimburse.core.users.repositories.user_repository import UserRepository

logger = logging.getLogger('reimburse.core.roles.registry')


class RoleRegistry:

    def __init__(self, store, config_lock=None):
        self._store = store
        # Shared with the engine and the user directory so rule snapshots and
        # user writes never interleave with a cascade
        self._lock = config_lock or threading.RLock()
        self._users = UserRepository(store, lock=self._lock)
        self._rules = RulesRepository(store)

    def list_roles(self) -> list[str]:
        """Built-ins first, then custom roles."""
        return all_roles(self._custom())

    def list_custom_roles(self) -> list[str]:
        return [r for r in self.list_roles() if r not in BUILTIN_ROLES]

    def role_exists(self, name: str) -> bool:
        return normalize_role_name(name) in self.list_roles()

    def add_custom_role(self, name: str) -> list[str]:
        """Add a custom role. Returns the full role list."""
        role = normalize_role_name(name)
        if not role:
            raise InvalidRoleNameError(f"Invalid role name '{name}'")
        with self._lock:
            if role in self.list_roles():
                raise DuplicateRoleError(f"Role '{role}' already exists")
            custom = self._custom()
            custom.append(role)
            self._store.set(CUSTOM_ROLES_KEY, custom)
        logger.info(f'Custom role added: {role}')
        hooks.fire('role.added', {'role': role})
        return self.list_roles()

    def remove_custom_role(self, name: str) -> list[str]:
        """Remove a custom role and strip it from users and rules.

        Writes happen in order users -> rules -> custom roles, each only
        when something changed. A failure after a write went through raises
        CascadeDivergedError; the caller must surface it for manual
        reconciliation.
        """
        role = normalize_role_name(name)
        if role in BUILTIN_ROLES:
            raise RoleNotRemovableError(f"Built-in role '{role}' cannot be removed")

        with self._lock:
            custom = self._custom()
            if role not in custom:
                raise NotFoundError(f"Role '{role}' not found")

            completed = []
            try:
                users_changed = self._users.strip_role(role)
                if users_changed:
                    completed.append('users')

                rules, rules_changed = self._rules.without_role(role)
                if rules_changed:
                    self._rules.save(rules)
                    completed.append('rules')

                self._store.set(CUSTOM_ROLES_KEY, [r for r in custom if r != role])
                completed.append('custom_roles')
            except Exception as e:
                if not completed:
                    raise
                logger.critical(
                    f'Role removal of {role} diverged after {completed}: {e}', exc_info=True)
                raise CascadeDivergedError(
                    f"Removing role '{role}' stopped after {', '.join(completed)}; "
                    f"store needs manual reconciliation",
                    details={'role': role, 'completed': completed, 'error': str(e)},
                ) from e

        logger.info(f'Custom role removed: {role} (users changed: {users_changed}, '
                    f'rules changed: {rules_changed})')
        hooks.fire('role.removed', {
            'role': role, 'users_changed': users_changed, 'rules_changed': rules_changed,
        })
        return self.list_roles()

    def _custom(self) -> list[str]:
        return [normalize_role_name(r) for r in self._store.get(CUSTOM_ROLES_KEY, []) if normalize_role_name(r)]
