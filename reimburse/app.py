"""Flask application factory for the reimbursement approval service."""
import logging
import threading

from flask import Flask, jsonify
from flask_compress import Compress
from flask_login import LoginManager

from reimburse.config import AppConfig
from reimburse.core.approvals.engine import ApprovalEngine
from reimburse.core.auth.models import User
from reimburse.core.roles.registry import RoleRegistry
from reimburse.core.storage import PostgresStore, create_store
from reimburse.core.users.repositories import UserRepository
from reimburse.core.utils.logging_config import setup_logging
from reimburse.database import ping_db

app_logger = logging.getLogger('reimburse.app')

compress = Compress()


def create_app(config: AppConfig = None, store=None) -> Flask:
    """Build the app. `store` overrides the backend selected by config."""
    config = config or AppConfig.from_env()
    setup_logging(level=config.log_level, json_format=config.log_json)
    config.validate()

    app = Flask(__name__)

    # Secret key: required in production, dev fallback only when FLASK_DEBUG=true
    secret_key = config.secret_key
    if not secret_key:
        if config.debug:
            secret_key = 'dev-secret-key-for-local-only'
            app_logger.warning('Using development secret key, set FLASK_SECRET_KEY for production')
        else:
            raise RuntimeError('FLASK_SECRET_KEY environment variable is required')
    app.secret_key = secret_key

    # Session cookie hardening
    app.config['SESSION_COOKIE_SECURE'] = not config.debug
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    compress.init_app(app)

    store = store if store is not None else create_store(config)

    # Rule snapshots, user writes and role cascades share one lock
    config_lock = threading.RLock()
    user_repo = UserRepository(store, lock=config_lock)
    app.extensions['reimburse'] = {
        'config': config,
        'store': store,
        'users': user_repo,
        'engine': ApprovalEngine(store, enforce_eligibility=config.enforce_eligibility,
                                 config_lock=config_lock),
        'registry': RoleRegistry(store, config_lock=config_lock),
    }

    # ============== Flask-Login ==============

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login."""
        user_data = user_repo.get_by_id(user_id)
        return User(user_data) if user_data else None

    # ============== Blueprint Registrations ==============

    from reimburse.core.approvals import approvals_bp, routes as _approval_routes  # noqa: F401
    from reimburse.core.roles import roles_bp, routes as _role_routes  # noqa: F401
    from reimburse.core.users import users_bp, routes as _user_routes  # noqa: F401

    app.register_blueprint(approvals_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(users_bp)

    @app.route('/health')
    def health_check():
        """Health check endpoint for orchestrator probes."""
        checks = {}
        if isinstance(store, PostgresStore):
            try:
                checks['database'] = ping_db()
            except Exception as e:
                checks['database'] = False
                app_logger.error(f'Health check - database failed: {e}')
        else:
            checks['store'] = True

        healthy = all(checks.values())
        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'checks': checks,
            'service': 'reimburse',
        }), 200 if healthy else 503

    @app.after_request
    def add_cache_headers(response):
        if response.mimetype == 'application/json':
            response.headers['Cache-Control'] = 'no-store'
        return response

    app_logger.info(f'Reimburse app ready (store={type(store).__name__}, '
                    f'enforce_eligibility={config.enforce_eligibility})')
    return app
