"""Approval engine module."""
from flask import Blueprint

approvals_bp = Blueprint('approvals', __name__)
