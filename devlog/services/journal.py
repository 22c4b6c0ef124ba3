# devlog/services/journal.py
"""
Acceso a datos del diario: proyectos y diarios de un usuario en el store.

Todo va bajo users/{uid}/... ; el uid sale siempre de la sesión, nunca del
cliente. Los fallos del store se convierten aquí a la taxonomía de errores
(RemoteReadFailure / RemoteWriteFailure / NotFound).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple

from devlog.errors import (
    DiaryExistsToday,
    NotAuthenticated,
    NotFound,
    RemoteReadFailure,
    RemoteWriteFailure,
    ValidationFailure,
)
from devlog.store.documents import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    diaries_path,
    diary_path,
    project_path,
    projects_path,
)
from devlog.utils.dates import get_timezone, local_day, now_local

log = logging.getLogger(__name__)

PROJECT_STATUSES = ("planning", "in-progress", "done")
UNTITLED = "(sin título)"
UNNAMED_PROJECT = "(sin nombre)"

MAX_TITLE = 200
MAX_NAME = 120
MAX_TAG = 40
MAX_TAGS = 20


# -------------------------------------------------------------------
# Entidades
# -------------------------------------------------------------------
@dataclass
class Project:
    id: str
    name: str
    description: str = ""
    status: str = "planning"
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Troubleshooting:
    problem: str = ""
    solution: str = ""

    def is_empty(self) -> bool:
        return not (self.problem or self.solution)

    def to_dict(self) -> dict:
        return {"problem": self.problem, "solution": self.solution}


@dataclass
class Diary:
    id: str
    project_id: str
    title: str
    progress: str = ""
    troubleshooting: Troubleshooting = field(default_factory=Troubleshooting)
    retrospective: str = ""
    tags: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def has_troubleshooting(self) -> bool:
        return not self.troubleshooting.is_empty()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "progress": self.progress,
            "troubleshooting": self.troubleshooting.to_dict(),
            "retrospective": self.retrospective,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _str(v: Any) -> str:
    return v if isinstance(v, str) else ""


def project_from_doc(doc: DocumentSnapshot) -> Project:
    status = _str(doc.get("status"))
    return Project(
        id=doc.id,
        name=_str(doc.get("name")) or UNNAMED_PROJECT,
        description=_str(doc.get("description")),
        status=status if status in PROJECT_STATUSES else "planning",
        created_at=doc.get("createdAt"),
    )


def diary_from_doc(project_id: str, doc: DocumentSnapshot) -> Diary:
    ts = doc.get("troubleshooting") or {}
    if not isinstance(ts, dict):
        ts = {}
    tags = doc.get("tags") or []
    return Diary(
        id=doc.id,
        project_id=project_id,
        title=_str(doc.get("title")) or UNTITLED,
        progress=_str(doc.get("progress")),
        troubleshooting=Troubleshooting(_str(ts.get("problem")), _str(ts.get("solution"))),
        retrospective=_str(doc.get("retrospective")),
        tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
        created_at=doc.get("createdAt"),
    )


# -------------------------------------------------------------------
# Validación (antes de cualquier llamada remota)
# -------------------------------------------------------------------
def _clean_tags(raw: Any, errors: Dict[str, str]) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        errors["tags"] = "Las etiquetas deben ser una lista"
        return []
    tags = []
    for t in raw:
        if not isinstance(t, str):
            errors["tags"] = "Cada etiqueta debe ser texto"
            return []
        t = t.strip()
        if not t:
            continue
        if len(t) > MAX_TAG:
            errors["tags"] = f"Máximo {MAX_TAG} caracteres por etiqueta"
            return []
        tags.append(t)  # orden de entrada, se admiten duplicados
    if len(tags) > MAX_TAGS:
        errors["tags"] = f"Máximo {MAX_TAGS} etiquetas"
    return tags


def validate_project(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Devuelve los campos limpios o lanza ValidationFailure."""
    data = data or {}
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    if "name" in data or not partial:
        name = _str(data.get("name")).strip()
        if not name:
            errors["name"] = "El nombre es obligatorio"
        elif len(name) > MAX_NAME:
            errors["name"] = f"Máximo {MAX_NAME} caracteres"
        cleaned["name"] = name

    if "description" in data or not partial:
        cleaned["description"] = _str(data.get("description")).strip()

    if "status" in data or not partial:
        status = (_str(data.get("status")) or ("" if partial else "planning")).strip().lower()
        if status not in PROJECT_STATUSES:
            errors["status"] = f"Estado inválido. Permitidos: {', '.join(PROJECT_STATUSES)}"
        cleaned["status"] = status

    if partial and not cleaned:
        errors["_"] = "No hay campos que actualizar"
    if errors:
        raise ValidationFailure(errors)
    return cleaned


def validate_diary(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Campos permitidos: title, progress, troubleshooting{problem, solution},
    retrospective, tags. El título es obligatorio al crear.
    """
    data = data or {}
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    if "title" in data or not partial:
        title = _str(data.get("title")).strip()
        if not title:
            errors["title"] = "El título es obligatorio"
        elif len(title) > MAX_TITLE:
            errors["title"] = f"Máximo {MAX_TITLE} caracteres"
        cleaned["title"] = title

    for key in ("progress", "retrospective"):
        if key in data or not partial:
            cleaned[key] = _str(data.get(key)).strip()

    if "troubleshooting" in data or not partial:
        ts = data.get("troubleshooting") or {}
        if not isinstance(ts, dict):
            errors["troubleshooting"] = "Formato inválido: {problem, solution}"
            ts = {}
        if partial:
            # merge por subcampo: lo que no llega no se toca en el store
            for key in ("problem", "solution"):
                if key in ts:
                    cleaned[f"troubleshooting.{key}"] = _str(ts.get(key)).strip()
        else:
            cleaned["troubleshooting"] = {
                "problem": _str(ts.get("problem")).strip(),
                "solution": _str(ts.get("solution")).strip(),
            }

    if "tags" in data or not partial:
        cleaned["tags"] = _clean_tags(data.get("tags"), errors)

    if partial and not cleaned:
        errors["_"] = "No hay campos que actualizar"
    if errors:
        raise ValidationFailure(errors)
    return cleaned


# -------------------------------------------------------------------
# Helpers de errores
# -------------------------------------------------------------------
def _require_user(user_id) -> str:
    if not user_id:
        raise NotAuthenticated()
    return str(user_id)


async def _read(aw, what: str):
    try:
        return await aw
    except StoreError as e:
        log.error(f"[journal] lectura {what}: {e}")
        raise RemoteReadFailure() from e


async def _write(aw, what: str):
    try:
        return await aw
    except DocumentNotFound as e:
        raise NotFound() from e
    except StoreError as e:
        log.error(f"[journal] escritura {what}: {e}")
        raise RemoteWriteFailure() from e


# -------------------------------------------------------------------
# Proyectos
# -------------------------------------------------------------------
async def list_projects(store: DocumentStore, user_id) -> List[Project]:
    uid = _require_user(user_id)
    docs = await _read(store.list(projects_path(uid)), "proyectos")
    return [project_from_doc(d) for d in docs]


def subscribe_projects(store: DocumentStore, user_id,
                       listener: Callable[[List[Project]], None]) -> Callable[[], None]:
    """Lista de proyectos en vivo: el listener recibe la lista tras cada cambio."""
    uid = _require_user(user_id)
    try:
        return store.subscribe(
            projects_path(uid),
            lambda docs: listener([project_from_doc(d) for d in docs]),
        )
    except StoreError as e:
        log.error(f"[journal] suscripción proyectos: {e}")
        raise RemoteReadFailure() from e


async def get_project(store: DocumentStore, user_id, project_id: str) -> Project:
    uid = _require_user(user_id)
    doc = await _read(store.get(project_path(uid, project_id)), f"proyecto {project_id}")
    if doc is None:
        raise NotFound("El proyecto no existe.")
    return project_from_doc(doc)


async def create_project(store: DocumentStore, user_id, data: Dict[str, Any]) -> str:
    uid = _require_user(user_id)
    fields = validate_project(data)
    fields["createdAt"] = SERVER_TIMESTAMP
    project_id = await _write(store.add(projects_path(uid), fields), "crear proyecto")
    log.info(f"[journal] proyecto creado user={uid} project={project_id}")
    return project_id


async def update_project(store: DocumentStore, user_id, project_id: str,
                         data: Dict[str, Any]) -> Dict[str, Any]:
    uid = _require_user(user_id)
    fields = validate_project(data, partial=True)
    await _write(store.update(project_path(uid, project_id), fields), f"proyecto {project_id}")
    return fields


async def delete_project(store: DocumentStore, user_id, project_id: str) -> None:
    """
    Borra el documento del proyecto. Sus diarios NO se borran en cascada:
    quedan huérfanos en el store, pero ninguna vista los lista ya.
    """
    uid = _require_user(user_id)
    await _write(store.delete(project_path(uid, project_id)), f"borrar proyecto {project_id}")
    log.info(f"[journal] proyecto borrado user={uid} project={project_id}")


# -------------------------------------------------------------------
# Diarios
# -------------------------------------------------------------------
async def list_diaries(store: DocumentStore, user_id, project_id: str) -> List[Diary]:
    """Diarios de un proyecto, del más reciente al más antiguo."""
    uid = _require_user(user_id)
    docs = await _read(
        store.list(diaries_path(uid, project_id), order_by="createdAt", descending=True),
        f"diarios de {project_id}",
    )
    return [diary_from_doc(project_id, d) for d in docs]


async def list_all_diaries(store: DocumentStore, user_id,
                           projects: Optional[List[Project]] = None) -> List[Tuple[Project, List[Diary]]]:
    """
    Diarios de todos los proyectos. Las lecturas por proyecto se lanzan a la
    vez y se esperan todas (gather) antes de devolver nada.
    """
    if projects is None:
        projects = await list_projects(store, user_id)
    per_project = await asyncio.gather(*(list_diaries(store, user_id, p.id) for p in projects))
    return list(zip(projects, per_project))


async def get_diary(store: DocumentStore, user_id, project_id: str, diary_id: str) -> Diary:
    uid = _require_user(user_id)
    doc = await _read(store.get(diary_path(uid, project_id, diary_id)), f"diario {diary_id}")
    if doc is None:
        raise NotFound("No se ha encontrado el diario.")
    return diary_from_doc(project_id, doc)


async def find_today_diary(store: DocumentStore, user_id, project_id: str,
                           today: Optional[date] = None,
                           tz: Optional[tzinfo] = None) -> Optional[Diary]:
    """Diario ya escrito hoy (día local) en ese proyecto, si lo hay."""
    tz = tz or get_timezone()
    today = today or now_local(tz).date()
    for diary in await list_diaries(store, user_id, project_id):
        if diary.created_at and local_day(diary.created_at, tz) == today:
            return diary
    return None


async def create_diary(store: DocumentStore, user_id, project_id: str, data: Dict[str, Any],
                       today: Optional[date] = None, tz: Optional[tzinfo] = None) -> str:
    """
    Crea un diario. Si ya hay uno hoy en ese proyecto lanza DiaryExistsToday
    con su id: el cliente debe ir a editarlo en vez de duplicar.
    """
    uid = _require_user(user_id)
    if not project_id:
        raise ValidationFailure({"project_id": "Selecciona un proyecto"})
    fields = validate_diary(data)

    await get_project(store, uid, project_id)
    existing = await find_today_diary(store, uid, project_id, today=today, tz=tz)
    if existing is not None:
        raise DiaryExistsToday(project_id, existing.id)

    fields["createdAt"] = SERVER_TIMESTAMP
    diary_id = await _write(store.add(diaries_path(uid, project_id), fields), "crear diario")
    log.info(f"[journal] diario creado user={uid} project={project_id} diary={diary_id}")
    return diary_id


async def update_diary(store: DocumentStore, user_id, project_id: str, diary_id: str,
                       data: Dict[str, Any]) -> Dict[str, Any]:
    """Actualiza (merge parcial) y devuelve los campos limpios aplicados."""
    uid = _require_user(user_id)
    fields = validate_diary(data, partial=True)
    await _write(store.update(diary_path(uid, project_id, diary_id), fields), f"diario {diary_id}")
    return fields


async def delete_diary(store: DocumentStore, user_id, project_id: str, diary_id: str) -> None:
    uid = _require_user(user_id)
    await _write(store.delete(diary_path(uid, project_id, diary_id)), f"borrar diario {diary_id}")
    log.info(f"[journal] diario borrado user={uid} project={project_id} diary={diary_id}")


def apply_diary_fields(diary: Diary, fields: Dict[str, Any]) -> Diary:
    """
    Copia de `diary` con los campos (ya validados) aplicados. Acepta el mapa
    troubleshooting completo o sus subcampos "troubleshooting.problem/solution".
    """
    ts = diary.troubleshooting
    if fields.get("troubleshooting") is not None:
        full = fields["troubleshooting"]
        ts = Troubleshooting(full.get("problem", ""), full.get("solution", ""))
    ts = Troubleshooting(
        fields.get("troubleshooting.problem", ts.problem),
        fields.get("troubleshooting.solution", ts.solution),
    )
    return Diary(
        id=diary.id,
        project_id=diary.project_id,
        title=fields.get("title", diary.title) or UNTITLED,
        progress=fields.get("progress", diary.progress),
        troubleshooting=ts,
        retrospective=fields.get("retrospective", diary.retrospective),
        tags=list(fields.get("tags", diary.tags)),
        created_at=diary.created_at,
    )
