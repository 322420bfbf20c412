"""Extension singletons for the dashboard API and the login wiring shared by every blueprint."""
from flask import jsonify
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

csrf = CSRFProtect()
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
# SESSION_PROTECTION in the app config takes precedence.
login_manager.session_protection = "strong"


@login_manager.user_loader
def load_user(user_id):
    from models import User  # Local import to avoid circular dependency

    if not user_id:
        return None
    return db.session.get(User, str(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    # The API has no login page to redirect to.
    return jsonify({"error": "Authentication required"}), 401


def init_extensions(app) -> None:
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
