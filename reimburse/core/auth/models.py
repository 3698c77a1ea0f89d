"""User model for Flask-Login.

Session establishment (login forms, tokens, SSO) belongs to the host
application. This module only turns a stored user record into the
object Flask-Login exposes as `current_user`.
"""
from flask_login import UserMixin

from reimburse.core.roles.constants import ADMIN


class User(UserMixin):
    """User class for Flask-Login."""

    def __init__(self, user_data):
        self.id = user_data['id']
        self.email = user_data.get('email')
        self.name = user_data.get('name')
        self.roles = list(user_data.get('roles') or [])
        self.manager_id = user_data.get('manager_id')

    @property
    def is_admin(self):
        return ADMIN in self.roles

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'email': self.email,
            'roles': self.roles, 'manager_id': self.manager_id,
        }
