"""Built-in role names and role-name normalization."""

import re

EMPLOYEE = 'EMPLOYEE'
MANAGER = 'MANAGER'
FINANCE = 'FINANCE'
DIRECTOR = 'DIRECTOR'
ADMIN = 'ADMIN'
CFO = 'CFO'

# Order matters: list_roles() returns built-ins first, in this order
BUILTIN_ROLES = (EMPLOYEE, MANAGER, FINANCE, DIRECTOR, ADMIN, CFO)

DEFAULT_STEPS = (MANAGER, FINANCE, DIRECTOR)

_INVALID_CHARS = re.compile(r'[^A-Z0-9_-]')


def normalize_role_name(name):
    """Trim, uppercase and drop anything but letters, digits, '_' and '-'.

    >>> normalize_role_name('  travel desk ')
    'TRAVELDESK'
    """
    if not isinstance(name, str):
        return ''
    return _INVALID_CHARS.sub('', name.strip().upper())


def is_builtin(name):
    return normalize_role_name(name) in BUILTIN_ROLES


def all_roles(custom_roles):
    """Built-ins followed by custom roles, deduplicated, order preserved."""
    seen = list(BUILTIN_ROLES)
    for role in custom_roles or []:
        name = normalize_role_name(role)
        if name and name not in seen:
            seen.append(name)
    return seen
