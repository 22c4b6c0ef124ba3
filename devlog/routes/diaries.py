# devlog/routes/diaries.py
from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from devlog.errors import DiaryExistsToday, ValidationFailure
from devlog.services import journal
from devlog.services.aggregation import SORT_ORDERS
from devlog.services.coordinators import DiaryListCoordinator
from devlog.store.documents import get_store
from devlog.utils.web import json_body, request_session, run, session_user, view_settings

diaries_bp = Blueprint("diaries", __name__, url_prefix="/api")


@diaries_bp.route("/diaries", methods=["GET"])
@login_required
def list_diaries():
    """
    Lista plana de diarios de todos los proyectos (o de ?project=<id>),
    con búsqueda ?q= y orden ?sort=newest|oldest|title.
    """
    sort = request.args.get("sort", "newest")
    if sort not in SORT_ORDERS:
        raise ValidationFailure({"sort": f"Orden inválido. Usa: {', '.join(SORT_ORDERS)}"})

    coordinator = DiaryListCoordinator(
        request_session(), get_store(),
        tz=view_settings()["tz"], project_filter=request.args.get("project"),
    )

    async def _load():
        await coordinator.mount()
        coordinator.unmount()

    run(_load())
    if coordinator.error:
        raise coordinator.error

    coordinator.set_search(request.args.get("q"))
    coordinator.set_sort(sort)
    return jsonify(coordinator.snapshot().to_dict()), 200


@diaries_bp.route("/projects/<project_id>/diaries", methods=["POST"])
@login_required
def create_diary(project_id):
    """Un diario por proyecto y día: si ya existe responde 409 con su id."""
    uid = session_user().id
    store = get_store()
    tz = view_settings()["tz"]

    async def _create():
        diary_id = await journal.create_diary(store, uid, project_id, json_body(), tz=tz)
        return await journal.get_diary(store, uid, project_id, diary_id)

    try:
        diary = run(_create())
    except DiaryExistsToday as e:
        current_app.logger.info(f"[diaries] ya hay diario hoy en {project_id}: {e.diary_id}")
        raise
    return jsonify(diary=diary.to_dict()), 201


@diaries_bp.route("/projects/<project_id>/diaries/<diary_id>", methods=["GET"])
@login_required
def get_diary(project_id, diary_id):
    diary = run(journal.get_diary(get_store(), session_user().id, project_id, diary_id))
    return jsonify(diary=diary.to_dict()), 200


@diaries_bp.route("/projects/<project_id>/diaries/<diary_id>", methods=["PATCH"])
@login_required
def update_diary(project_id, diary_id):
    uid = session_user().id
    store = get_store()

    async def _update():
        diary = await journal.get_diary(store, uid, project_id, diary_id)
        applied = await journal.update_diary(store, uid, project_id, diary_id, json_body())
        return journal.apply_diary_fields(diary, applied)

    diary = run(_update())
    return jsonify(diary=diary.to_dict()), 200


@diaries_bp.route("/projects/<project_id>/diaries/<diary_id>", methods=["DELETE"])
@login_required
def delete_diary(project_id, diary_id):
    uid = session_user().id
    store = get_store()

    async def _delete():
        await journal.get_diary(store, uid, project_id, diary_id)
        await journal.delete_diary(store, uid, project_id, diary_id)

    run(_delete())
    return jsonify(message="Diario eliminado"), 200
