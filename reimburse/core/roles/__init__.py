"""Role registry module."""
from flask import Blueprint

roles_bp = Blueprint('roles', __name__)
