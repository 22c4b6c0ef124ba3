# devlog/services/aggregation.py
"""
Motor de agregación: junta los diarios de todos los proyectos de un usuario
y deriva de ellos
  - eventos de calendario (uno por diario con createdAt),
  - estadísticas resumen (totales y "este mes"),
  - la vista previa de recientes,
  - la lista plana con búsqueda, filtro y orden.

Todo lo derivado es función pura de los datos leídos: no se persiste ni se
cachea más allá de la página que lo usa.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple

from devlog.services.journal import (
    Diary,
    Project,
    get_project,
    list_all_diaries,
    list_diaries,
    list_projects,
)
from devlog.store.documents import DocumentStore
from devlog.utils.dates import get_timezone, local_day, now_local, same_month

DEFAULT_COLOR = "#3b82f6"
RECENT_LIMIT = 3
ALL_PROJECTS = "all"
SORT_ORDERS = ("newest", "oldest", "title")


@dataclass
class DiarySummary:
    """Lo que llevan las vistas agregadas de cada diario (sin cuerpo completo)."""
    id: str
    project_id: str
    project_name: str
    title: str
    progress: str
    tags: List[str]
    created_at: datetime
    day: date
    has_troubleshooting: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "title": self.title,
            "progress": self.progress,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "date": self.day.isoformat(),
        }


@dataclass
class CalendarEvent:
    diary_id: str
    title: str
    date: date
    color: str
    project_id: str
    project_name: str

    def to_dict(self) -> dict:
        return {
            "id": self.diary_id,
            "title": self.title,
            "date": self.date.isoformat(),
            "color": self.color,
            "project_id": self.project_id,
            "project_name": self.project_name,
        }


@dataclass
class SummaryStats:
    diary_count: int = 0
    troubleshooting_count: int = 0
    project_count: int = 0
    this_month_diary_count: int = 0
    this_month_trouble_count: int = 0

    def to_dict(self) -> dict:
        return {
            "diary_count": self.diary_count,
            "troubleshooting_count": self.troubleshooting_count,
            "project_count": self.project_count,
            "this_month_diary_count": self.this_month_diary_count,
            "this_month_trouble_count": self.this_month_trouble_count,
        }


@dataclass
class CalendarView:
    projects: List[Project]
    entries: List[DiarySummary]
    events: List[CalendarEvent]
    stats: SummaryStats
    recent: List[DiarySummary]
    fetched_at: datetime
    color: str = DEFAULT_COLOR
    tz: Optional[tzinfo] = field(default=None, repr=False)


# -------------------------------------------------------------------
# Derivaciones puras
# -------------------------------------------------------------------
def summarize_diary(diary: Diary, project: Project, tz: Optional[tzinfo] = None) -> Optional[DiarySummary]:
    """None si el diario no tiene createdAt (aún sin timestamp del servidor)."""
    if diary.created_at is None:
        return None
    return DiarySummary(
        id=diary.id,
        project_id=project.id,
        project_name=project.name,
        title=diary.title,
        progress=diary.progress,
        tags=list(diary.tags),
        created_at=diary.created_at,
        day=local_day(diary.created_at, tz),
        has_troubleshooting=diary.has_troubleshooting,
    )


def collect_entries(per_project: Iterable[Tuple[Project, List[Diary]]],
                    tz: Optional[tzinfo] = None) -> List[DiarySummary]:
    """Aplana en orden de lectura (proyecto a proyecto, recientes primero)."""
    entries = []
    for project, diaries in per_project:
        for diary in diaries:
            s = summarize_diary(diary, project, tz)
            if s is not None:
                entries.append(s)
    return entries


def build_events(entries: Iterable[DiarySummary], color: str = DEFAULT_COLOR) -> List[CalendarEvent]:
    return [
        CalendarEvent(
            diary_id=e.id,
            title=e.title,
            date=e.day,
            color=color,
            project_id=e.project_id,
            project_name=e.project_name,
        )
        for e in entries
    ]


def compute_stats(entries: Iterable[DiarySummary], project_count: int, today: date) -> SummaryStats:
    """Un único recorrido. 'Este mes' = mes/año de `today`."""
    stats = SummaryStats(project_count=project_count)
    for e in entries:
        stats.diary_count += 1
        if e.has_troubleshooting:
            stats.troubleshooting_count += 1
        if same_month(e.day, today):
            stats.this_month_diary_count += 1
            if e.has_troubleshooting:
                stats.this_month_trouble_count += 1
    return stats


def recent_entries(entries: Sequence[DiarySummary], limit: int = RECENT_LIMIT) -> List[DiarySummary]:
    """Los `limit` más recientes por día; empates en orden de lectura (sort estable)."""
    return sorted(entries, key=lambda e: e.day, reverse=True)[:limit]


def filter_entries(entries: Sequence[DiarySummary], term: Optional[str]) -> List[DiarySummary]:
    """
    Subcadena sin distinguir mayúsculas en título, progreso o alguna etiqueta.
    Término vacío = lista intacta. Conserva el orden.
    """
    needle = (term or "").strip().casefold()
    if not needle:
        return list(entries)
    return [
        e for e in entries
        if needle in e.title.casefold()
        or needle in e.progress.casefold()
        or any(needle in t.casefold() for t in e.tags)
    ]


def sort_entries(entries: Sequence[DiarySummary], order: str = "newest") -> List[DiarySummary]:
    if order == "oldest":
        return sorted(entries, key=lambda e: e.created_at)
    if order == "title":
        return sorted(entries, key=lambda e: e.title.casefold())
    return sorted(entries, key=lambda e: e.created_at, reverse=True)


def events_for_project(events: Sequence[CalendarEvent], project_id: Optional[str]) -> List[CalendarEvent]:
    if not project_id or project_id == ALL_PROJECTS:
        return list(events)
    return [ev for ev in events if ev.project_id == project_id]


def events_on(events: Sequence[CalendarEvent], day: date) -> List[CalendarEvent]:
    return [ev for ev in events if ev.date == day]


# -------------------------------------------------------------------
# Operaciones con lectura
# -------------------------------------------------------------------
async def build_calendar_and_stats(store: DocumentStore, user_id,
                                   now: Optional[datetime] = None,
                                   tz: Optional[tzinfo] = None,
                                   color: str = DEFAULT_COLOR,
                                   recent_limit: int = RECENT_LIMIT) -> CalendarView:
    """
    Calendario + estadísticas + proyectos + recientes del usuario.
    Los errores de lectura suben tal cual: no hay resultado parcial.
    """
    tz = tz or get_timezone()
    now = now or now_local(tz)
    projects = await list_projects(store, user_id)
    per_project = await list_all_diaries(store, user_id, projects)

    entries = collect_entries(per_project, tz)
    today = local_day(now, tz)
    return CalendarView(
        projects=projects,
        entries=entries,
        events=build_events(entries, color),
        stats=compute_stats(entries, len(projects), today),
        recent=recent_entries(entries, recent_limit),
        fetched_at=now,
        color=color,
        tz=tz,
    )


async def build_flat_diary_list(store: DocumentStore, user_id,
                                project_filter: Optional[str] = None,
                                tz: Optional[tzinfo] = None,
                                projects: Optional[List[Project]] = None) -> List[DiarySummary]:
    """
    Lista plana, más recientes primero. Sin filtro (o "all") recorre todos
    los proyectos; con filtro solo lee ese proyecto.
    `projects` evita releer la lista de proyectos si el llamante ya la tiene.
    """
    tz = tz or get_timezone()
    if project_filter and project_filter != ALL_PROJECTS:
        project = next((p for p in projects or [] if p.id == project_filter), None)
        if project is None:
            project = await get_project(store, user_id, project_filter)
        per_project = [(project, await list_diaries(store, user_id, project.id))]
    else:
        per_project = await list_all_diaries(store, user_id, projects)
    return sort_entries(collect_entries(per_project, tz), "newest")
