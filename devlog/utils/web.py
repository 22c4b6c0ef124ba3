# devlog/utils/web.py
"""Helpers compartidos por los blueprints de la API."""
import asyncio

from flask import current_app, request
from flask_login import current_user

from devlog.errors import NotAuthenticated
from devlog.services.session import SessionProvider, SessionUser
from devlog.utils.dates import get_timezone


def run(coro):
    """Ejecuta una corrutina del diario dentro del request (un bucle por llamada)."""
    return asyncio.run(coro)


def session_user() -> SessionUser:
    if not current_user.is_authenticated:
        raise NotAuthenticated()
    return SessionUser(id=str(current_user.id), email=current_user.email)


def request_session() -> SessionProvider:
    """Sesión ya resuelta con el usuario de Flask-Login."""
    return SessionProvider.for_user(session_user())


def view_settings() -> dict:
    cfg = current_app.config
    return {
        "tz": get_timezone(),
        "color": cfg.get("DEVLOG_CALENDAR_COLOR", "#3b82f6"),
        "recent_limit": int(cfg.get("DEVLOG_RECENT_LIMIT", 3)),
    }


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
