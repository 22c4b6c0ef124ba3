# devlog/__init__.py

import os
import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate

# Carga variables de entorno (.env)
load_dotenv()

# Extensiones compartidas
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


def _require_secret_key() -> str:
    """Lee SECRET_KEY de entorno y exige mínimo 32 bytes."""
    secret = os.getenv("SECRET_KEY", "")
    if not secret or len(secret) < 32:
        raise RuntimeError(
            "SECRET_KEY no configurado o demasiado corto. "
            "Añade una clave segura al .env (mínimo 32 caracteres)."
        )
    return secret


def _configure_logging(app: Flask) -> None:
    """Logging simple y consistente."""
    level = logging.DEBUG if app.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)


def create_app(test_config: dict | None = None) -> Flask:
    """Factory principal de la aplicación."""
    app = Flask(__name__, instance_relative_config=True)

    os.makedirs(app.instance_path, exist_ok=True)

    # Store de documentos por defecto (SQLite en instance/devlog.db)
    db_path = os.path.join(app.instance_path, "devlog.db")
    default_db_uri = f"sqlite:///{db_path}"

    overrides = dict(test_config or {})

    app.config.from_mapping(
        SECRET_KEY=overrides.pop("SECRET_KEY", None) or _require_secret_key(),
        SQLALCHEMY_DATABASE_URI=os.getenv("SQLALCHEMY_DATABASE_URI", default_db_uri),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        JSON_SORT_KEYS=False,
        # Cookies y sesión seguras
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=os.getenv("FLASK_ENV", "").lower() != "development",
        PERMANENT_SESSION_LIFETIME=timedelta(days=7),
        MAX_CONTENT_LENGTH=1 * 1024 * 1024,
        # Diario: zona "local" para días/meses, color fijo del calendario, tamaño de recientes
        DEVLOG_TIMEZONE=os.getenv("DEVLOG_TIMEZONE", "UTC"),
        DEVLOG_CALENDAR_COLOR=os.getenv("DEVLOG_CALENDAR_COLOR", "#3b82f6"),
        DEVLOG_RECENT_LIMIT=int(os.getenv("DEVLOG_RECENT_LIMIT", "3")),
    )
    # Overrides (tests) antes de inicializar extensiones: el engine se crea en init_app
    app.config.update(overrides)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    _configure_logging(app)

    # ---------------------------------------------------------
    # MODELOS (importar para que Flask-Migrate los detecte)
    # ---------------------------------------------------------
    from devlog.models.user import User  # noqa: F401
    from devlog.models.document import Document  # noqa: F401

    # ---------------------------------------------------------
    # BLUEPRINTS
    # ---------------------------------------------------------
    try:
        from devlog.routes.auth import auth_routes
        app.register_blueprint(auth_routes)
    except Exception as e:
        app.logger.warning(f"[init] auth_routes: {e}")

    try:
        from devlog.routes.home import home_bp
        app.register_blueprint(home_bp)
    except Exception as e:
        app.logger.warning(f"[init] home_bp: {e}")

    try:
        from devlog.routes.projects import projects_bp
        app.register_blueprint(projects_bp)
    except Exception as e:
        app.logger.warning(f"[init] projects_bp: {e}")

    try:
        from devlog.routes.diaries import diaries_bp
        app.register_blueprint(diaries_bp)
    except Exception as e:
        app.logger.warning(f"[init] diaries_bp: {e}")

    # ---------------------------------------------------------
    # CLI (seed, export)
    # ---------------------------------------------------------
    try:
        from devlog.cli import register_cli
        register_cli(app)
    except Exception as e:
        app.logger.warning(f"[init] CLI: {e}")

    # ---------------------------------------------------------
    # Healthcheck y manejo de errores JSON
    # ---------------------------------------------------------
    from devlog.errors import DevlogError

    @app.get("/healthz")
    def _healthz():
        return {"status": "ok"}, 200

    @app.errorhandler(DevlogError)
    def _devlog_errors(err: DevlogError):
        return jsonify(err.to_dict()), err.http_status

    @app.errorhandler(400)
    @app.errorhandler(401)
    @app.errorhandler(403)
    @app.errorhandler(404)
    @app.errorhandler(405)
    @app.errorhandler(500)
    def _http_errors(err):
        if request.is_json or request.path.startswith("/api/"):
            code = getattr(err, "code", 500) or 500
            return jsonify(error_code="http_error", message=str(err)), code
        return err

    return app
