import os
from flask import Flask
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from extensions import db, login_manager, init_extensions
from logger import configure_app_logging
from models import User
from utils import json_response
from ledger.exceptions import LedgerError


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_SECURE=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    # ------------------------------------------------------------------------------------------
    # LOGGING
    # ------------------------------------------------------------------------------------------
    configure_app_logging(app)

    # ------------------------------------------------------------------------------------------
    # SQLite file databases need their directory
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(database_uri.replace("sqlite:///", "", 1)) or ".", exist_ok=True)

    # ------------------------------------------------------------------------------------------
    # Initialize extensions
    # ------------------------------------------------------------------------------------------
    init_extensions(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return json_response(401, "Unauthorized", "User not authenticated")

    register_blueprints(app)
    register_error_handlers(app)

    from cli import register_commands
    register_commands(app)

    @app.route("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    return app


# ------------------------------------------------------------------------------------------------------------------------
# Register blueprints
# -----------------------------------------------------------------------------------------------------------------------
def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.profile import bp as profile_bp
    from blueprints.tasks import bp as tasks_bp
    from blueprints.team import bp as team_bp
    from blueprints.levels import bp as levels_bp
    from blueprints.withdrawals import bp as withdrawals_bp
    from blueprints.recharges import bp as recharges_bp
    from blueprints.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(levels_bp)
    app.register_blueprint(withdrawals_bp)
    app.register_blueprint(recharges_bp)
    app.register_blueprint(admin_bp)


# ------------------------------------------------------------------------------------------------------------------------
# Error handlers: every failure leaves as the JSON envelope
# ------------------------------------------------------------------------------------------------------------------------
def register_error_handlers(app):

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{error.title}: {error.message}")
        return json_response(error.status_code, error.title, error.message, error.data)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return json_response(error.code, error.name, error.description)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(error):
        db.session.rollback()
        app.logger.exception("Database error")
        return json_response(500, "Server Error", "A database error occurred. Please try again.")

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return json_response(500, "Server Error", "An unexpected error occurred.")


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(debug=app.config.get("DEBUG", False), host="0.0.0.0", port=port)
