# tests/test_aggregation.py

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from devlog import create_app, db
from devlog.services.aggregation import (
    DiarySummary,
    SummaryStats,
    build_calendar_and_stats,
    build_flat_diary_list,
    compute_stats,
    filter_entries,
    recent_entries,
    sort_entries,
)
from devlog.services.summary import monthly_summary_message
from devlog.store.documents import DocumentStore, diaries_path, projects_path

UID = "1"
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def at(y, m, d, h=10):
    return datetime(y, m, d, h, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app({
        "SECRET_KEY": "x" * 32,
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def store(app):
    return DocumentStore()

def add_project(store, name):
    return asyncio.run(store.add(projects_path(UID), {"name": name, "status": "in-progress"}))

def add_diary(store, pid, title, created_at, problem="", tags=None):
    data = {
        "title": title,
        "progress": f"progreso de {title}",
        "troubleshooting": {"problem": problem, "solution": ""},
        "tags": tags or [],
    }
    if created_at is not None:
        data["createdAt"] = created_at
    return asyncio.run(store.add(diaries_path(UID, pid), data))


@pytest.fixture
def seeded(store):
    web = add_project(store, "Web")
    bot = add_project(store, "Bot")
    ids = {
        "d1": add_diary(store, web, "Login", at(2025, 6, 3), problem="CORS", tags=["Backend"]),
        "d2": add_diary(store, web, "Maqueta", at(2025, 5, 20)),
        "d3": add_diary(store, bot, "Comandos", at(2025, 6, 10), tags=["bot"]),
        # Sin createdAt: no existe para las vistas agregadas
        "d4": add_diary(store, bot, "Borrador", None),
    }
    return web, bot, ids


# -------------------- calendario + estadísticas --------------------
def test_calendar_and_stats(store, seeded):
    web, bot, ids = seeded
    view = asyncio.run(build_calendar_and_stats(store, UID, now=NOW, tz=timezone.utc, color="#123456"))

    assert view.stats == SummaryStats(
        diary_count=3,
        troubleshooting_count=1,
        project_count=2,
        this_month_diary_count=2,
        this_month_trouble_count=1,
    )
    assert {ev.diary_id for ev in view.events} == {ids["d1"], ids["d2"], ids["d3"]}
    assert all(ev.color == "#123456" for ev in view.events)
    by_id = {ev.diary_id: ev for ev in view.events}
    assert by_id[ids["d3"]].date == date(2025, 6, 10)
    assert by_id[ids["d3"]].project_name == "Bot"

    assert [e.id for e in view.recent] == [ids["d3"], ids["d1"], ids["d2"]]

def test_stats_match_a_full_scan(store, seeded):
    view = asyncio.run(build_calendar_and_stats(store, UID, now=NOW, tz=timezone.utc))
    today = NOW.date()
    entries = view.entries
    assert view.stats.diary_count == len(entries)
    assert view.stats.troubleshooting_count == sum(1 for e in entries if e.has_troubleshooting)
    assert view.stats.this_month_diary_count == sum(
        1 for e in entries if (e.day.year, e.day.month) == (today.year, today.month)
    )

def test_empty_user(store):
    view = asyncio.run(build_calendar_and_stats(store, UID, now=NOW, tz=timezone.utc))
    assert view.events == []
    assert view.recent == []
    assert view.stats == SummaryStats()
    assert monthly_summary_message(view.stats).startswith("🗓")

def test_day_uses_configured_timezone(store):
    pid = add_project(store, "Web")
    # 23:30 UTC del 30 de junio = 1 de julio en UTC+2
    add_diary(store, pid, "Tarde", datetime(2025, 6, 30, 23, 30, tzinfo=timezone.utc))
    plus2 = timezone(timedelta(hours=2))
    view = asyncio.run(build_calendar_and_stats(
        store, UID, now=datetime(2025, 7, 1, 9, 0, tzinfo=plus2), tz=plus2,
    ))
    assert view.events[0].date == date(2025, 7, 1)
    assert view.stats.this_month_diary_count == 1

def test_recent_limit(store, seeded):
    view = asyncio.run(build_calendar_and_stats(store, UID, now=NOW, tz=timezone.utc, recent_limit=1))
    assert len(view.recent) == 1


# -------------------- lista plana --------------------
def test_flat_list_all_projects_newest_first(store, seeded):
    web, bot, ids = seeded
    entries = asyncio.run(build_flat_diary_list(store, UID, tz=timezone.utc))
    assert [e.id for e in entries] == [ids["d3"], ids["d1"], ids["d2"]]

def test_flat_list_single_project(store, seeded):
    web, bot, ids = seeded
    entries = asyncio.run(build_flat_diary_list(store, UID, web, tz=timezone.utc))
    assert [e.id for e in entries] == [ids["d1"], ids["d2"]]
    assert all(e.project_name == "Web" for e in entries)


def _entry(id, title, day, tags=(), progress=""):
    created = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return DiarySummary(
        id=id, project_id="p", project_name="P", title=title, progress=progress,
        tags=list(tags), created_at=created, day=day, has_troubleshooting=False,
    )

def test_filter_is_case_insensitive_over_title_progress_and_tags():
    entries = [
        _entry("a", "Arreglar login", date(2025, 6, 1)),
        _entry("b", "Otro", date(2025, 6, 2), tags=["Backend"]),
        _entry("c", "Nada", date(2025, 6, 3), progress="Tests de LOGIN"),
    ]
    assert [e.id for e in filter_entries(entries, "login")] == ["a", "c"]
    assert [e.id for e in filter_entries(entries, "backend")] == ["b"]
    assert filter_entries(entries, "   ") == entries

def test_sort_orders():
    entries = [
        _entry("a", "beta", date(2025, 6, 2)),
        _entry("b", "Alfa", date(2025, 6, 3)),
        _entry("c", "gamma", date(2025, 6, 1)),
    ]
    assert [e.id for e in sort_entries(entries, "newest")] == ["b", "a", "c"]
    assert [e.id for e in sort_entries(entries, "oldest")] == ["c", "a", "b"]
    assert [e.id for e in sort_entries(entries, "title")] == ["b", "a", "c"]

def test_recent_ties_keep_read_order():
    same_day = date(2025, 6, 1)
    entries = [_entry("a", "x", same_day), _entry("b", "y", same_day), _entry("c", "z", date(2025, 5, 1))]
    assert [e.id for e in recent_entries(entries, 2)] == ["a", "b"]

def test_compute_stats_month_boundary():
    entries = [_entry("a", "x", date(2025, 5, 31)), _entry("b", "y", date(2025, 6, 1))]
    stats = compute_stats(entries, project_count=1, today=date(2025, 6, 15))
    assert stats.diary_count == 2
    assert stats.this_month_diary_count == 1


# -------------------- resumen del mes --------------------
@pytest.mark.parametrize("diaries, troubles, emoji", [
    (0, 0, "🗓"),
    (1, 0, "🌱"),
    (2, 1, "🌱"),
    (4, 0, "🔥"),
    (6, 2, "🌟"),
])
def test_monthly_summary_message(diaries, troubles, emoji):
    stats = SummaryStats(this_month_diary_count=diaries, this_month_trouble_count=troubles)
    assert monthly_summary_message(stats).startswith(emoji)

def test_monthly_summary_mentions_troubles():
    msg = monthly_summary_message(SummaryStats(this_month_diary_count=3, this_month_trouble_count=1))
    assert "1 troubleshooting!" in msg
