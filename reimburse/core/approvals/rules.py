"""Rule set: the approval chain and its combination rules.

A rule set is a plain dict:

    {
        'steps': ['MANAGER', 'FINANCE', 'DIRECTOR'],
        'percentage_rule': {'enabled': True, 'threshold': 50},
        'specific_approver_rule': {'enabled': True, 'role': 'CFO'},
        'hybrid': {'enabled': True},
    }

Unanimous-step approval is always active and has no switch. The engine
reads the rule set from the store on every call and hands it to the
evaluator explicitly, so nothing here is process-global.
"""

import copy
import logging

from ..roles.constants import CFO, DEFAULT_STEPS, all_roles, normalize_role_name
from ..errors import InvalidRuleSetError
from ..storage import RULES_KEY, CUSTOM_ROLES_KEY

logger = logging.getLogger('reimburse.core.approvals.rules')

MIN_THRESHOLD = 1
MAX_THRESHOLD = 100

DEFAULT_RULES = {
    'steps': list(DEFAULT_STEPS),
    'percentage_rule': {'enabled': True, 'threshold': 50},
    'specific_approver_rule': {'enabled': True, 'role': CFO},
    'hybrid': {'enabled': True},
}


def default_rules():
    return copy.deepcopy(DEFAULT_RULES)


def clamp_threshold(value, fallback=50):
    try:
        value = int(value)
    except (TypeError, ValueError):
        value = fallback
    return min(max(value, MIN_THRESHOLD), MAX_THRESHOLD)


def normalize_rules(raw):
    """Fill missing sections from the defaults and coerce field types.

    Does not validate role names; see validate_rules().
    """
    raw = raw or {}
    rules = default_rules()

    if 'steps' in raw:
        rules['steps'] = [normalize_role_name(s) for s in (raw.get('steps') or [])]

    pct = raw.get('percentage_rule') or {}
    rules['percentage_rule'] = {
        'enabled': bool(pct.get('enabled', rules['percentage_rule']['enabled'])),
        'threshold': clamp_threshold(pct.get('threshold', rules['percentage_rule']['threshold'])),
    }

    specific = raw.get('specific_approver_rule') or {}
    rules['specific_approver_rule'] = {
        'enabled': bool(specific.get('enabled', rules['specific_approver_rule']['enabled'])),
        'role': normalize_role_name(specific.get('role')) or rules['specific_approver_rule']['role'],
    }

    hybrid = raw.get('hybrid') or {}
    rules['hybrid'] = {'enabled': bool(hybrid.get('enabled', rules['hybrid']['enabled']))}
    return rules


def validate_rules(rules, known_roles):
    """Raise InvalidRuleSetError unless every referenced role exists and steps is non-empty."""
    steps = rules.get('steps') or []
    if not steps:
        raise InvalidRuleSetError('Rule set must contain at least one step')
    unknown = [s for s in steps if s not in known_roles]
    if unknown:
        raise InvalidRuleSetError(f"Unknown step role(s): {', '.join(unknown)}",
                                  details={'unknown_roles': unknown})
    role = rules['specific_approver_rule']['role']
    if role not in known_roles:
        raise InvalidRuleSetError(f"Unknown specific approver role: {role}",
                                  details={'unknown_roles': [role]})


def merge_rules(current, changes):
    """Overlay a partial payload on the current rules, section by section."""
    merged = copy.deepcopy(current)
    for key in ('percentage_rule', 'specific_approver_rule', 'hybrid'):
        if isinstance(changes.get(key), dict):
            merged[key] = {**merged.get(key, {}), **changes[key]}
    if 'steps' in changes:
        merged['steps'] = changes['steps']
    return merged


class RulesRepository:
    """Reads and writes the singleton rule set."""

    def __init__(self, store):
        self._store = store

    def get(self):
        """Current rules, defaults when none were saved yet."""
        return normalize_rules(self._store.get(RULES_KEY) or default_rules())

    def update(self, changes):
        """Validate and save an edited rule set. Returns the saved rules."""
        if not isinstance(changes, dict):
            raise InvalidRuleSetError('Rule set payload must be an object')
        if 'steps' in changes:
            steps = changes['steps']
            if not isinstance(steps, list) or not all(isinstance(s, str) and s.strip() for s in steps):
                raise InvalidRuleSetError('steps must be a list of role names')
        specific = changes.get('specific_approver_rule')
        if isinstance(specific, dict) and 'role' in specific and not isinstance(specific['role'], str):
            raise InvalidRuleSetError('specific_approver_rule.role must be a role name')

        rules = normalize_rules(merge_rules(self.get(), changes))
        known = all_roles(self._store.get(CUSTOM_ROLES_KEY, []))
        validate_rules(rules, known)

        self._store.set(RULES_KEY, rules)
        logger.info(f"Rules updated: steps={rules['steps']}")
        return rules

    def save(self, rules):
        """Persist rules as-is. Used by the role cascade after it has fixed references."""
        self._store.set(RULES_KEY, rules)

    def without_role(self, role):
        """Return (rules, changed) with `role` removed from every reference.

        Steps fall back to the default chain if removing the role empties them;
        a specific-approver designation on the role falls back to CFO.
        """
        rules = self.get()
        changed = False

        if role in rules['steps']:
            rules['steps'] = [s for s in rules['steps'] if s != role]
            changed = True
            if not rules['steps']:
                rules['steps'] = list(DEFAULT_STEPS)
                logger.warning(f'Removing {role} emptied the approval chain; reset to default steps')

        if rules['specific_approver_rule']['role'] == role:
            rules['specific_approver_rule']['role'] = CFO
            changed = True

        return rules, changed
