# devlog/services/coordinators.py
"""
Coordinadores de estado por página (home/calendario, lista de diarios,
detalle de proyecto, gestión de proyectos, escritura de diario).

Cada uno es una máquina de estados independiente:

    idle -> loading -> ready (-> selected -> editing) -> ready
               |
               +-> error

Reglas comunes:
  - Se carga al montar o cuando aparece la identidad, una sola vez por
    (usuario, filtro). refresh() fuerza una lectura nueva.
  - Las escrituras van en dos fases: primero la remota (await) y, solo si
    ha ido bien, el parche local sobre los datos derivados.
  - Filtro, búsqueda y orden se recalculan en local, sin leer del store.
  - Una respuesta que llega para un elemento que ya no es el seleccionado,
    o después de desmontar la vista, se descarta.
  - Los errores de las llamadas remotas se quedan en `error` (visible); no
    se propagan ni se reintentan solos.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Set, Tuple

from devlog.errors import DevlogError, DiaryExistsToday, NotFound, ValidationFailure
from devlog.services import journal
from devlog.services.aggregation import (
    ALL_PROJECTS,
    DEFAULT_COLOR,
    RECENT_LIMIT,
    SORT_ORDERS,
    CalendarView,
    DiarySummary,
    build_calendar_and_stats,
    build_events,
    build_flat_diary_list,
    compute_stats,
    events_for_project,
    events_on,
    filter_entries,
    recent_entries,
    sort_entries,
    summarize_diary,
)
from devlog.services.journal import Diary, Project
from devlog.services.session import SessionProvider, SessionUser
from devlog.services.summary import monthly_summary_message
from devlog.store.documents import DocumentStore
from devlog.utils.dates import get_timezone, local_day, now_local

log = logging.getLogger(__name__)


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SELECTED = "selected"
    EDITING = "editing"
    ERROR = "error"


@dataclass
class ViewSnapshot:
    status: ViewStatus
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        return {"status": self.status.value, "data": self.data, "error": self.error}


# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class ViewCoordinator:
    """Ciclo de vida, carga única por clave y guardas de respuestas obsoletas."""

    name = "view"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 tz: Optional[tzinfo] = None):
        self.session = session
        self.store = store
        self.tz = tz or get_timezone()
        self.status = ViewStatus.IDLE
        self.error: Optional[DevlogError] = None

        self._mounted = False
        self._generation = 0
        self._loaded_keys: Set[Hashable] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe_session: Optional[Callable[[], None]] = session.subscribe(self._on_identity)

    # ---- ciclo de vida ----
    async def mount(self) -> None:
        self._mounted = True
        if self._unsubscribe_session is None:
            self._unsubscribe_session = self.session.subscribe(self._on_identity)
        if self.session.current_user() is not None:
            await self.ensure_loaded()

    def unmount(self) -> None:
        """A partir de aquí las respuestas pendientes se ignoran."""
        self._mounted = False
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def settle(self) -> None:
        """Espera las cargas lanzadas por cambios de identidad."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def invalidate(self) -> None:
        """Olvida todo lo cargado (cambio de usuario o sign-out)."""
        self._generation += 1
        self._loaded_keys.clear()
        self.status = ViewStatus.IDLE
        self.error = None
        self._reset()

    def _on_identity(self, user: Optional[SessionUser]) -> None:
        self.invalidate()
        if user is None or not self._mounted:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # sin bucle en marcha: cargará en el próximo mount/ensure_loaded
            return
        task = loop.create_task(self.ensure_loaded())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ---- carga ----
    def _uid(self) -> Optional[str]:
        user = self.session.current_user()
        return user.id if user else None

    def load_key(self) -> Hashable:
        return (self._uid(), self._filter_key())

    async def ensure_loaded(self) -> None:
        """Carga si esta (usuario, filtro) no se ha pedido nunca."""
        if self._uid() is None:
            return
        key = self.load_key()
        if key in self._loaded_keys:
            return
        await self._load(key)

    async def refresh(self) -> None:
        if self._uid() is None:
            return
        await self._load(self.load_key())

    async def _load(self, key: Hashable) -> None:
        self._loaded_keys.add(key)
        generation = self._generation
        self.status = ViewStatus.LOADING
        self.error = None
        try:
            result = await self._fetch(self._uid())
        except DevlogError as e:
            if not self._is_current(generation):
                self._drop(key, generation)
                return
            self._loaded_keys.discard(key)
            self._fail(e, status=ViewStatus.ERROR)
            return
        if not self._is_current(generation):
            self._drop(key, generation)
            return
        self._apply(key, result)
        if self.status == ViewStatus.LOADING:
            self.status = ViewStatus.READY

    def _drop(self, key: Hashable, generation: int) -> None:
        """Respuesta descartada. Si solo se desmontó la vista, la clave se vuelve a cargar al montar."""
        log.debug(f"[{self.name}] carga descartada (vista desmontada o usuario cambiado)")
        if generation == self._generation:
            self._loaded_keys.discard(key)
            self.status = ViewStatus.IDLE

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    def _fail(self, err: DevlogError, status: Optional[ViewStatus] = None) -> None:
        log.error(f"[{self.name}] {err.error_code}: {err.message}")
        self.error = err
        if status is not None:
            self.status = status

    def clear_error(self) -> None:
        self.error = None

    # ---- a implementar por cada vista ----
    def _filter_key(self) -> Hashable:
        return None

    async def _fetch(self, user_id: str) -> Any:
        raise NotImplementedError

    def _apply(self, key: Hashable, result: Any) -> None:
        raise NotImplementedError

    def _reset(self) -> None:
        pass

    def snapshot(self) -> ViewSnapshot:
        return ViewSnapshot(
            status=self.status,
            data=self._data(),
            error=self.error.to_dict() if self.error else None,
        )

    def _data(self) -> Dict[str, Any]:
        return {}


class DiaryDetailMixin:
    """
    Selección de un diario (lectura puntual del detalle), edición y borrado.
    La vista que lo usa implementa _patch_diary y _remove_diary.
    """

    selected: Optional[Diary] = None
    _pending_detail: Optional[Tuple[str, str]] = None
    _detail_seq: int = 0

    def _reset_detail(self) -> None:
        self.selected = None
        self._pending_detail = None
        self._detail_seq += 1

    @property
    def detail_loading(self) -> bool:
        return self._pending_detail is not None

    async def select(self, project_id: str, diary_id: str) -> None:
        target = (project_id, diary_id)
        self._detail_seq += 1
        seq = self._detail_seq
        generation = self._generation
        self._pending_detail = target
        self.error = None
        try:
            diary = await journal.get_diary(self.store, self._uid(), project_id, diary_id)
        except DevlogError as e:
            if self._detail_is_stale(seq, target, generation):
                return
            self._pending_detail = None
            self.selected = None
            self.status = ViewStatus.READY
            self._fail(e)
            return
        if self._detail_is_stale(seq, target, generation):
            log.debug(f"[{self.name}] detalle {diary_id} descartado (obsoleto)")
            return
        self._pending_detail = None
        self.selected = diary
        self.status = ViewStatus.SELECTED

    def _detail_is_stale(self, seq: int, target: Tuple[str, str], generation: int) -> bool:
        return (
            not self._is_current(generation)
            or seq != self._detail_seq
            or self._pending_detail != target
        )

    def close_detail(self) -> None:
        self._reset_detail()
        self.status = ViewStatus.READY

    def start_edit(self) -> None:
        if self.selected is None:
            return
        self.status = ViewStatus.EDITING

    def cancel_edit(self) -> None:
        if self.status == ViewStatus.EDITING:
            self.status = ViewStatus.SELECTED

    async def submit_edit(self, fields: Dict[str, Any]) -> bool:
        """
        Fase 1: escritura remota. Fase 2 (solo si fue bien): parche local.
        Si falla, el estado local queda igual y se puede reenviar.
        """
        diary = self.selected
        if diary is None:
            return False
        try:
            applied = await journal.update_diary(
                self.store, self._uid(), diary.project_id, diary.id, fields
            )
        except DevlogError as e:
            self._fail(e)
            return False
        updated = journal.apply_diary_fields(diary, applied)
        if self.selected is not None and self.selected.id == diary.id:
            self.selected = updated
            self.status = ViewStatus.SELECTED
        self._patch_diary(updated)
        self.error = None
        return True

    async def delete_selected(self) -> bool:
        diary = self.selected
        if diary is None:
            return False
        return await self.delete_diary(diary.project_id, diary.id)

    async def delete_diary(self, project_id: str, diary_id: str) -> bool:
        """Borrado remoto primero; si va bien se quita de todas las colecciones locales."""
        try:
            await journal.delete_diary(self.store, self._uid(), project_id, diary_id)
        except DevlogError as e:
            self._fail(e)
            return False
        if self.selected is not None and self.selected.id == diary_id:
            self._reset_detail()
            self.status = ViewStatus.READY
        self._remove_diary(project_id, diary_id)
        self.error = None
        return True

    def _detail_data(self) -> Dict[str, Any]:
        return {
            "selected": self.selected.to_dict() if self.selected else None,
            "detail_loading": self.detail_loading,
            "editing": self.status == ViewStatus.EDITING,
        }

    def _patch_diary(self, diary: Diary) -> None:
        raise NotImplementedError

    def _remove_diary(self, project_id: str, diary_id: str) -> None:
        raise NotImplementedError


def _patch_summary(entry: DiarySummary, diary: Diary) -> DiarySummary:
    return DiarySummary(
        id=entry.id,
        project_id=entry.project_id,
        project_name=entry.project_name,
        title=diary.title,
        progress=diary.progress,
        tags=list(diary.tags),
        created_at=entry.created_at,
        day=entry.day,
        has_troubleshooting=diary.has_troubleshooting,
    )


def _same(entry: DiarySummary, project_id: str, diary_id: str) -> bool:
    return entry.id == diary_id and entry.project_id == project_id


# -------------------------------------------------------------------
# Home / calendario
# -------------------------------------------------------------------
class HomeCoordinator(DiaryDetailMixin, ViewCoordinator):
    """Calendario, estadísticas, resumen del mes, recientes y detalle."""

    name = "home"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 tz: Optional[tzinfo] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 color: str = DEFAULT_COLOR,
                 recent_limit: int = RECENT_LIMIT):
        super().__init__(session, store, tz)
        self._clock = clock or (lambda: now_local(self.tz))
        self.color = color
        self.recent_limit = recent_limit
        self.view: Optional[CalendarView] = None
        self.project_filter = ALL_PROJECTS
        self.selected_date: Optional[date] = None

    def _reset(self) -> None:
        self.view = None
        self.selected_date = None
        self._reset_detail()

    async def _fetch(self, user_id: str) -> CalendarView:
        return await build_calendar_and_stats(
            self.store, user_id,
            now=self._clock(), tz=self.tz,
            color=self.color, recent_limit=self.recent_limit,
        )

    def _apply(self, key: Hashable, result: CalendarView) -> None:
        self.view = result
        if self.project_filter != ALL_PROJECTS and not any(
            p.id == self.project_filter for p in result.projects
        ):
            self.project_filter = ALL_PROJECTS

    # ---- acciones puras ----
    def select_project(self, project_id: Optional[str]) -> None:
        self.project_filter = project_id or ALL_PROJECTS

    def select_date(self, day: date) -> None:
        self.selected_date = day

    def close_date(self) -> None:
        self.selected_date = None

    @property
    def events(self):
        return events_for_project(self.view.events, self.project_filter) if self.view else []

    @property
    def date_events(self):
        if self.view is None or self.selected_date is None:
            return []
        return events_on(self.view.events, self.selected_date)

    # ---- parches locales ----
    def _rebuild(self, entries: List[DiarySummary], projects: Optional[List[Project]] = None) -> None:
        view = self.view
        projects = view.projects if projects is None else projects
        today = local_day(view.fetched_at, self.tz)
        self.view = CalendarView(
            projects=projects,
            entries=entries,
            events=build_events(entries, view.color),
            stats=compute_stats(entries, len(projects), today),
            recent=recent_entries(entries, self.recent_limit),
            fetched_at=view.fetched_at,
            color=view.color,
            tz=view.tz,
        )

    def _patch_diary(self, diary: Diary) -> None:
        if self.view is None:
            return
        entries = [
            _patch_summary(e, diary) if _same(e, diary.project_id, diary.id) else e
            for e in self.view.entries
        ]
        self._rebuild(entries)

    def _remove_diary(self, project_id: str, diary_id: str) -> None:
        if self.view is None:
            return
        self._rebuild([e for e in self.view.entries if not _same(e, project_id, diary_id)])

    def _data(self) -> Dict[str, Any]:
        view = self.view
        data: Dict[str, Any] = {
            "project_filter": self.project_filter,
            "projects": [{"id": p.id, "name": p.name} for p in view.projects] if view else [],
            "events": [ev.to_dict() for ev in self.events],
            "stats": view.stats.to_dict() if view else None,
            "summary": monthly_summary_message(view.stats) if view else None,
            "recent": [e.to_dict() for e in view.recent] if view else [],
            "selected_date": self.selected_date.isoformat() if self.selected_date else None,
            "date_events": [ev.to_dict() for ev in self.date_events],
        }
        data.update(self._detail_data())
        return data


# -------------------------------------------------------------------
# Lista de diarios
# -------------------------------------------------------------------
class DiaryListCoordinator(DiaryDetailMixin, ViewCoordinator):
    """
    Lista plana con filtro de proyecto, búsqueda y orden. Cada valor de
    filtro de proyecto se lee una vez; lo demás es recálculo local.
    """

    name = "diary_list"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 tz: Optional[tzinfo] = None, project_filter: Optional[str] = None):
        super().__init__(session, store, tz)
        self.project_filter = project_filter or ALL_PROJECTS
        self.search = ""
        self.sort_order = "newest"
        self.projects: Optional[List[Project]] = None
        self._lists: Dict[str, List[DiarySummary]] = {}
        self._reload_projects = False

    def _reset(self) -> None:
        self.projects = None
        self._reload_projects = False
        self._lists = {}
        self._reset_detail()

    def _filter_key(self) -> Hashable:
        return self.project_filter

    async def refresh(self) -> None:
        """Relee también la lista de proyectos (altas y bajas desde la última carga)."""
        self._reload_projects = True
        await super().refresh()

    async def _fetch(self, user_id: str):
        project_filter = self.project_filter
        full = self._reload_projects or self.projects is None
        if full:
            projects = await journal.list_projects(self.store, user_id)
        else:
            projects = self.projects
        entries = await build_flat_diary_list(
            self.store, user_id, project_filter, tz=self.tz, projects=projects
        )
        return projects, entries, full

    def _apply(self, key: Hashable, result) -> None:
        projects, entries, full = result
        if full:
            # las listas de otros filtros se leyeron con la lista de proyectos anterior
            self._reload_projects = False
            self._lists = {}
            self._loaded_keys.clear()
            self._loaded_keys.add(key)
        self.projects = projects
        _, project_filter = key
        self._lists[project_filter] = entries

    # ---- acciones ----
    async def set_project_filter(self, project_id: Optional[str]) -> None:
        """Solo lee del store si ese filtro no se ha cargado nunca."""
        self.project_filter = project_id or ALL_PROJECTS
        if self.project_filter in self._lists:
            self.status = ViewStatus.READY if self.selected is None else self.status
            return
        await self.ensure_loaded()

    def set_search(self, term: Optional[str]) -> None:
        self.search = term or ""

    def set_sort(self, order: str) -> None:
        if order not in SORT_ORDERS:
            self._fail(ValidationFailure({"sort": f"Orden inválido. Usa: {', '.join(SORT_ORDERS)}"}))
            return
        self.sort_order = order

    @property
    def visible(self) -> List[DiarySummary]:
        entries = self._lists.get(self.project_filter, [])
        return sort_entries(filter_entries(entries, self.search), self.sort_order)

    # ---- parches locales ----
    def _patch_diary(self, diary: Diary) -> None:
        for key, entries in self._lists.items():
            self._lists[key] = [
                _patch_summary(e, diary) if _same(e, diary.project_id, diary.id) else e
                for e in entries
            ]

    def _remove_diary(self, project_id: str, diary_id: str) -> None:
        for key, entries in self._lists.items():
            self._lists[key] = [e for e in entries if not _same(e, project_id, diary_id)]

    def _data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "projects": [{"id": p.id, "name": p.name} for p in (self.projects or [])],
            "project_filter": self.project_filter,
            "search": self.search,
            "sort": self.sort_order,
            "diaries": [e.to_dict() for e in self.visible],
        }
        data.update(self._detail_data())
        return data


# -------------------------------------------------------------------
# Detalle de proyecto (timeline)
# -------------------------------------------------------------------
class ProjectDetailCoordinator(DiaryDetailMixin, ViewCoordinator):
    name = "project_detail"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 project_id: str, tz: Optional[tzinfo] = None):
        super().__init__(session, store, tz)
        self.project_id = project_id
        self.project: Optional[Project] = None
        self.timeline: List[DiarySummary] = []

    def _reset(self) -> None:
        self.project = None
        self.timeline = []
        self._reset_detail()

    def _filter_key(self) -> Hashable:
        return self.project_id

    async def _fetch(self, user_id: str):
        project, diaries = await asyncio.gather(
            journal.get_project(self.store, user_id, self.project_id),
            journal.list_diaries(self.store, user_id, self.project_id),
        )
        return project, diaries

    def _apply(self, key: Hashable, result) -> None:
        project, diaries = result
        self.project = project
        self.timeline = [
            s for s in (summarize_diary(d, project, self.tz) for d in diaries) if s is not None
        ]

    def _patch_diary(self, diary: Diary) -> None:
        self.timeline = [
            _patch_summary(e, diary) if _same(e, diary.project_id, diary.id) else e
            for e in self.timeline
        ]

    def _remove_diary(self, project_id: str, diary_id: str) -> None:
        self.timeline = [e for e in self.timeline if not _same(e, project_id, diary_id)]

    def _data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "project": self.project.to_dict() if self.project else None,
            "timeline": [e.to_dict() for e in self.timeline],
        }
        data.update(self._detail_data())
        return data


# -------------------------------------------------------------------
# Gestión de proyectos
# -------------------------------------------------------------------
class ProjectManageCoordinator(ViewCoordinator):
    """
    Lista de proyectos en vivo (suscripción al store): los recuentos se
    mantienen sin recargar a mano. Alta, edición de descripción/estado y borrado.
    """

    name = "project_manage"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 tz: Optional[tzinfo] = None):
        super().__init__(session, store, tz)
        self.projects: List[Project] = []
        self.editing: Optional[Project] = None
        self._unsubscribe_projects: Optional[Callable[[], None]] = None

    def _reset(self) -> None:
        self._stop_live()
        self.projects = []
        self.editing = None

    def unmount(self) -> None:
        super().unmount()
        self._stop_live()

    def _stop_live(self) -> None:
        if self._unsubscribe_projects is not None:
            self._unsubscribe_projects()
            self._unsubscribe_projects = None

    async def _fetch(self, user_id: str):
        self._stop_live()
        generation = self._generation

        def _on_projects(projects: List[Project]) -> None:
            if self._is_current(generation):
                self.projects = projects

        self._unsubscribe_projects = journal.subscribe_projects(self.store, user_id, _on_projects)
        return None

    def _apply(self, key: Hashable, result) -> None:
        pass

    # ---- acciones ----
    async def create_project(self, data: Dict[str, Any]) -> Optional[str]:
        try:
            return await journal.create_project(self.store, self._uid(), data)
        except DevlogError as e:
            self._fail(e)
            return None

    def open_edit(self, project_id: str) -> None:
        project = next((p for p in self.projects if p.id == project_id), None)
        if project is None:
            self._fail(NotFound("El proyecto no existe."))
            return
        self.editing = project
        self.status = ViewStatus.EDITING

    def cancel_edit(self) -> None:
        self.editing = None
        self.status = ViewStatus.READY

    async def save_edit(self, fields: Dict[str, Any]) -> bool:
        project = self.editing
        if project is None:
            return False
        try:
            applied = await journal.update_project(self.store, self._uid(), project.id, fields)
        except DevlogError as e:
            self._fail(e)
            return False
        self.projects = [
            Project(
                id=p.id,
                name=applied.get("name", p.name),
                description=applied.get("description", p.description),
                status=applied.get("status", p.status),
                created_at=p.created_at,
            ) if p.id == project.id else p
            for p in self.projects
        ]
        self.editing = None
        self.status = ViewStatus.READY
        self.error = None
        return True

    async def delete_project(self, project_id: str) -> bool:
        try:
            await journal.delete_project(self.store, self._uid(), project_id)
        except DevlogError as e:
            self._fail(e)
            return False
        self.projects = [p for p in self.projects if p.id != project_id]
        if self.editing is not None and self.editing.id == project_id:
            self.editing = None
            self.status = ViewStatus.READY
        self.error = None
        return True

    @property
    def counts(self) -> Dict[str, int]:
        counts = {status: 0 for status in journal.PROJECT_STATUSES}
        for p in self.projects:
            counts[p.status] = counts.get(p.status, 0) + 1
        counts["total"] = len(self.projects)
        return counts

    def _data(self) -> Dict[str, Any]:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "counts": self.counts,
            "editing": self.editing.to_dict() if self.editing else None,
        }


# -------------------------------------------------------------------
# Escritura de diario (formulario en 4 pasos)
# -------------------------------------------------------------------
STEP_TITLES = ("Proyecto y título", "Progreso de hoy", "Troubleshooting", "Retrospectiva")


class DiaryWriteCoordinator(ViewCoordinator):
    """
    Alta en cuatro pasos o edición directa de un diario existente.
    Si hoy ya hay un diario en el proyecto, no se crea otro: queda
    `existing` apuntando a él y edit_existing() pasa a editarlo.
    """

    name = "diary_write"

    def __init__(self, session: SessionProvider, store: DocumentStore,
                 tz: Optional[tzinfo] = None,
                 project_id: Optional[str] = None,
                 edit_diary: Optional[Diary] = None,
                 today: Optional[Callable[[], date]] = None):
        super().__init__(session, store, tz)
        self._today = today or (lambda: now_local(self.tz).date())
        self.projects: List[Project] = []
        self.step = 1
        self.edit_diary = edit_diary
        self.project_id = edit_diary.project_id if edit_diary else (project_id or "")
        self.draft: Dict[str, Any] = _empty_draft()
        if edit_diary is not None:
            self.draft = _draft_from(edit_diary)
        self.existing: Optional[Tuple[str, str]] = None
        self.saved_id: Optional[str] = None

    @property
    def is_edit(self) -> bool:
        return self.edit_diary is not None

    async def _fetch(self, user_id: str):
        return await journal.list_projects(self.store, user_id)

    def _apply(self, key: Hashable, result) -> None:
        self.projects = result

    def _reset(self) -> None:
        self.projects = []

    # ---- formulario ----
    def select_project(self, project_id: str) -> None:
        self.project_id = project_id or ""

    def set_field(self, name: str, value: Any) -> None:
        if name in ("problem", "solution"):
            ts = dict(self.draft["troubleshooting"])
            ts[name] = value
            self.draft["troubleshooting"] = ts
        elif name in self.draft:
            self.draft[name] = value
        else:
            raise KeyError(name)

    def next_step(self) -> bool:
        if self.step == 1:
            errors = self._step_one_errors()
            if errors:
                self._fail(ValidationFailure(errors))
                return False
        self.error = None
        self.step = min(self.step + 1, len(STEP_TITLES))
        return True

    def prev_step(self) -> None:
        self.step = max(self.step - 1, 1)

    def _step_one_errors(self) -> Dict[str, str]:
        errors = {}
        if not self.project_id:
            errors["project_id"] = "Selecciona un proyecto"
        if not str(self.draft.get("title") or "").strip():
            errors["title"] = "El título es obligatorio"
        return errors

    async def submit(self) -> bool:
        """Guarda: update en modo edición, alta (con la regla de un diario por día) si no."""
        errors = self._step_one_errors()
        if errors:
            self._fail(ValidationFailure(errors))
            return False
        self.existing = None
        try:
            if self.is_edit:
                applied = await journal.update_diary(
                    self.store, self._uid(), self.edit_diary.project_id, self.edit_diary.id, self.draft
                )
                self.edit_diary = journal.apply_diary_fields(self.edit_diary, applied)
                self.saved_id = self.edit_diary.id
            else:
                self.saved_id = await journal.create_diary(
                    self.store, self._uid(), self.project_id, self.draft,
                    today=self._today(), tz=self.tz,
                )
        except DiaryExistsToday as e:
            self.existing = (e.project_id, e.diary_id)
            self._fail(e)
            return False
        except DevlogError as e:
            self._fail(e)
            return False
        self.error = None
        return True

    async def edit_existing(self) -> bool:
        """Tras DiaryExistsToday: carga ese diario y pasa a modo edición."""
        if self.existing is None:
            return False
        project_id, diary_id = self.existing
        try:
            diary = await journal.get_diary(self.store, self._uid(), project_id, diary_id)
        except DevlogError as e:
            self._fail(e)
            return False
        self.edit_diary = diary
        self.project_id = diary.project_id
        self.draft = _draft_from(diary)
        self.existing = None
        self.error = None
        self.status = ViewStatus.EDITING
        return True

    def _data(self) -> Dict[str, Any]:
        return {
            "projects": [{"id": p.id, "name": p.name} for p in self.projects],
            "project_id": self.project_id,
            "step": self.step,
            "step_title": STEP_TITLES[self.step - 1],
            "is_edit": self.is_edit,
            "draft": dict(self.draft),
            "existing": {"project_id": self.existing[0], "diary_id": self.existing[1]} if self.existing else None,
            "saved_id": self.saved_id,
        }


def _empty_draft() -> Dict[str, Any]:
    return {
        "title": "",
        "progress": "",
        "troubleshooting": {"problem": "", "solution": ""},
        "retrospective": "",
        "tags": [],
    }


def _draft_from(diary: Diary) -> Dict[str, Any]:
    return {
        "title": diary.title,
        "progress": diary.progress,
        "troubleshooting": diary.troubleshooting.to_dict(),
        "retrospective": diary.retrospective,
        "tags": list(diary.tags),
    }
