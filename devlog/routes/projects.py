# devlog/routes/projects.py
from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from devlog.services import journal
from devlog.services.coordinators import ProjectDetailCoordinator, ProjectManageCoordinator
from devlog.store.documents import get_store
from devlog.utils.web import json_body, request_session, run, session_user, view_settings

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


def _mounted_snapshot(coordinator):
    """Monta, carga una vez y desmonta. Los errores de carga suben al errorhandler."""
    async def _load():
        await coordinator.mount()
        coordinator.unmount()

    run(_load())
    if coordinator.error:
        raise coordinator.error
    return coordinator.snapshot().to_dict()


# -----------------------------------------------------------------------------#
# Gestión (lista + recuentos por estado)
# -----------------------------------------------------------------------------#
@projects_bp.route("", methods=["GET"])
@login_required
def list_projects():
    coordinator = ProjectManageCoordinator(request_session(), get_store(), tz=view_settings()["tz"])
    return jsonify(_mounted_snapshot(coordinator)), 200


@projects_bp.route("", methods=["POST"])
@login_required
def create_project():
    uid = session_user().id
    store = get_store()

    async def _create():
        project_id = await journal.create_project(store, uid, json_body())
        return await journal.get_project(store, uid, project_id)

    project = run(_create())
    return jsonify(project=project.to_dict()), 201


# -----------------------------------------------------------------------------#
# Detalle (timeline), edición y borrado
# -----------------------------------------------------------------------------#
@projects_bp.route("/<project_id>", methods=["GET"])
@login_required
def project_detail(project_id):
    coordinator = ProjectDetailCoordinator(
        request_session(), get_store(), project_id, tz=view_settings()["tz"]
    )
    return jsonify(_mounted_snapshot(coordinator)), 200


@projects_bp.route("/<project_id>", methods=["PATCH"])
@login_required
def update_project(project_id):
    uid = session_user().id
    store = get_store()

    async def _update():
        await journal.update_project(store, uid, project_id, json_body())
        return await journal.get_project(store, uid, project_id)

    project = run(_update())
    return jsonify(project=project.to_dict()), 200


@projects_bp.route("/<project_id>", methods=["DELETE"])
@login_required
def delete_project(project_id):
    uid = session_user().id
    store = get_store()

    async def _delete():
        # 404 si no existe; el borrado en sí es idempotente
        await journal.get_project(store, uid, project_id)
        await journal.delete_project(store, uid, project_id)

    run(_delete())
    current_app.logger.info(f"[projects] proyecto {project_id} eliminado; sus diarios no se borran")
    return jsonify(message="Proyecto eliminado"), 200
