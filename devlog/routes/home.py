# devlog/routes/home.py
from flask import Blueprint, jsonify, request
from flask_login import login_required

from devlog.errors import ValidationFailure
from devlog.services.coordinators import HomeCoordinator
from devlog.store.documents import get_store
from devlog.utils.dates import parse_day
from devlog.utils.web import request_session, run, view_settings

home_bp = Blueprint("home", __name__, url_prefix="/api")


@home_bp.route("/home", methods=["GET"])
@login_required
def home():
    """
    Calendario + estadísticas + resumen del mes + recientes.
    ?project=<id|all> filtra los eventos; ?date=YYYY-MM-DD abre ese día.
    """
    date_str = request.args.get("date")
    day = parse_day(date_str) if date_str else None
    if date_str and day is None:
        raise ValidationFailure({"date": "Formato YYYY-MM-DD"})

    settings = view_settings()
    coordinator = HomeCoordinator(
        request_session(), get_store(),
        tz=settings["tz"], color=settings["color"], recent_limit=settings["recent_limit"],
    )

    async def _load():
        await coordinator.mount()
        coordinator.unmount()

    run(_load())
    if coordinator.error:
        raise coordinator.error

    coordinator.select_project(request.args.get("project"))
    if day:
        coordinator.select_date(day)
    return jsonify(coordinator.snapshot().to_dict()), 200
