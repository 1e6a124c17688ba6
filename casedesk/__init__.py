"""
Flask application factory.

Creates and configures the Flask app, binds the database store, registers all
blueprints.
"""
import atexit

from flask import Flask
from flask_cors import CORS


def create_app(store=None):
    """
    Create and configure the Flask application.

    Args:
        store: a casedesk.database.Store. When omitted one is built from
               DATABASE_URL and disposed at interpreter exit.
    """
    from casedesk.config import CORS_ORIGIN, MAX_CONTENT_LENGTH
    from casedesk.database import Store
    from casedesk.errors import register_error_handlers
    from casedesk.extensions import init_extensions
    from casedesk.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH
    app.json.ensure_ascii = False
    app.json.sort_keys = False

    CORS(
        app,
        resources={r'/*': {'origins': CORS_ORIGIN}},
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
        supports_credentials=False,
    )

    if store is None:
        store = Store()
        atexit.register(store.dispose)
    init_extensions(app, store)

    register_error_handlers(app)

    # Register blueprints
    from casedesk.routes.system import bp as system_bp
    from casedesk.routes.users import bp as users_bp
    from casedesk.routes.leads import bp as leads_bp
    from casedesk.routes.audit import bp as audit_bp
    from casedesk.routes.ai import bp as ai_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(ai_bp)

    return app
