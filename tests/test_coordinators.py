# tests/test_coordinators.py

import asyncio
from datetime import date, datetime, timezone

import pytest
from devlog import create_app, db
from devlog.errors import RemoteWriteFailure
from devlog.services import journal
from devlog.services.coordinators import (
    DiaryListCoordinator,
    DiaryWriteCoordinator,
    HomeCoordinator,
    ProjectDetailCoordinator,
    ProjectManageCoordinator,
    ViewStatus,
)
from devlog.services.session import SessionProvider, SessionUser
from devlog.store.documents import DocumentStore, StoreError, diaries_path, projects_path

ADA = SessionUser(id="1", email="ada@devlog.io")
BOB = SessionUser(id="2", email="bob@devlog.io")
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class CountingStore(DocumentStore):
    """Cuenta las lecturas de colección para comprobar que no se relee."""
    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.list_calls = []

    async def list(self, collection, order_by=None, descending=False):
        self.list_calls.append(collection)
        return await super().list(collection, order_by, descending)


class SlowDetailStore(CountingStore):
    """La lectura de los documentos marcados tarda varias vueltas del bucle."""
    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.slow = set()

    async def get(self, path):
        if path.rsplit("/", 1)[-1] in self.slow:
            for _ in range(5):
                await asyncio.sleep(0)
        return await super().get(path)


class FailingWriteStore(CountingStore):
    fail_writes = False

    async def update(self, path, fields):
        if self.fail_writes:
            raise StoreError("sin conexión")
        return await super().update(path, fields)

    async def delete(self, path):
        if self.fail_writes:
            raise StoreError("sin conexión")
        return await super().delete(path)


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
    return FailingWriteStore(clock=lambda: NOW)

@pytest.fixture
def session():
    return SessionProvider.for_user(ADA)

def seed(store, uid="1"):
    """Dos proyectos: Web (2 diarios, uno con troubleshooting) y Bot (1 diario)."""
    async def _seed():
        web = await store.add(projects_path(uid), {"name": "Web", "status": "in-progress"})
        bot = await store.add(projects_path(uid), {"name": "Bot", "status": "planning"})
        d1 = await store.add(diaries_path(uid, web), {
            "title": "Login", "progress": "OAuth",
            "troubleshooting": {"problem": "CORS", "solution": "cabeceras"},
            "tags": ["backend"], "createdAt": datetime(2025, 6, 3, tzinfo=timezone.utc),
        })
        d2 = await store.add(diaries_path(uid, web), {
            "title": "Maqueta", "createdAt": datetime(2025, 5, 20, tzinfo=timezone.utc),
        })
        d3 = await store.add(diaries_path(uid, bot), {
            "title": "Comandos", "createdAt": datetime(2025, 6, 10, tzinfo=timezone.utc),
        })
        return web, bot, d1, d2, d3
    return asyncio.run(_seed())

def home(session, store):
    return HomeCoordinator(session, store, tz=timezone.utc, clock=lambda: NOW)


# -------------------- home --------------------
def test_home_loads_once_per_user(session, store):
    seed(store)
    c = home(session, store)

    async def scenario():
        await c.mount()
        reads = len(store.list_calls)
        await c.ensure_loaded()
        await c.ensure_loaded()
        return reads

    reads = asyncio.run(scenario())
    assert c.status == ViewStatus.READY
    assert len(store.list_calls) == reads
    snap = c.snapshot().to_dict()
    assert snap["data"]["stats"]["diary_count"] == 3
    assert len(snap["data"]["recent"]) == 3

def test_home_refresh_rereads(session, store):
    seed(store)
    c = home(session, store)

    async def scenario():
        await c.mount()
        before = len(store.list_calls)
        await c.refresh()
        return before

    before = asyncio.run(scenario())
    assert len(store.list_calls) > before

def test_home_project_filter_and_date_are_local(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = home(session, store)
    asyncio.run(c.mount())
    reads = len(store.list_calls)

    c.select_project(bot)
    assert [ev.diary_id for ev in c.events] == [d3]
    c.select_project(None)
    assert len(c.events) == 3

    c.select_date(date(2025, 6, 3))
    assert [ev.diary_id for ev in c.date_events] == [d1]
    c.close_date()
    assert c.date_events == []
    assert len(store.list_calls) == reads

def test_stale_detail_response_is_discarded(session, app):
    store = SlowDetailStore(clock=lambda: NOW)
    web, bot, d1, d2, d3 = seed(store)
    store.slow.add(d1)
    c = home(session, store)

    async def scenario():
        await c.mount()
        # se pide d1 (lento) y enseguida d2: gana la última selección
        await asyncio.gather(c.select(web, d1), c.select(web, d2))

    asyncio.run(scenario())
    assert c.status == ViewStatus.SELECTED
    assert c.selected.id == d2

def test_edit_patches_locally_only_after_remote_success(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = home(session, store)

    async def failing_edit():
        await c.mount()
        await c.select(web, d1)
        c.start_edit()
        store.fail_writes = True
        return await c.submit_edit({"title": "Login con Google"})

    assert asyncio.run(failing_edit()) is False
    assert c.status == ViewStatus.EDITING
    assert isinstance(c.error, RemoteWriteFailure)
    assert c.selected.title == "Login"
    assert {e.title for e in c.view.entries} == {"Login", "Maqueta", "Comandos"}

    store.fail_writes = False
    assert asyncio.run(c.submit_edit({"title": "Login con Google"})) is True
    assert c.status == ViewStatus.SELECTED
    assert c.error is None
    assert c.selected.title == "Login con Google"
    assert any(ev.title == "Login con Google" for ev in c.view.events)

def test_delete_removes_everywhere_and_recomputes_stats(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = home(session, store)

    async def scenario():
        await c.mount()
        await c.select(web, d1)
        return await c.delete_selected()

    assert asyncio.run(scenario()) is True
    assert c.selected is None
    assert c.status == ViewStatus.READY
    assert d1 not in {e.id for e in c.view.entries}
    assert d1 not in {ev.diary_id for ev in c.view.events}
    assert c.view.stats.diary_count == 2
    assert c.view.stats.troubleshooting_count == 0

def test_failed_delete_keeps_local_state(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = home(session, store)
    asyncio.run(c.mount())
    store.fail_writes = True
    assert asyncio.run(c.delete_diary(web, d1)) is False
    assert c.view.stats.diary_count == 3

def test_response_after_unmount_is_ignored(session, store):
    seed(store)
    c = home(session, store)

    async def scenario():
        task = asyncio.create_task(c.mount())
        await asyncio.sleep(0)  # la carga queda esperando al store
        c.unmount()
        await task

    asyncio.run(scenario())
    assert c.view is None
    assert c.status == ViewStatus.IDLE

    # al volver a montar se carga de nuevo
    asyncio.run(c.mount())
    assert c.status == ViewStatus.READY
    assert c.view.stats.diary_count == 3

def test_sign_out_invalidates_and_new_user_reloads(session, store):
    seed(store, uid="1")
    seed(store, uid="2")
    c = home(session, store)

    async def scenario():
        await c.mount()
        await session.sign_out()
        assert c.view is None
        assert c.status == ViewStatus.IDLE
        session.sign_in(BOB)
        await c.settle()

    asyncio.run(scenario())
    assert c.status == ViewStatus.READY
    assert c.view.stats.diary_count == 3
    assert store.list_calls[-1].startswith("users/2/")


# -------------------- lista de diarios --------------------
def test_diary_list_fetches_each_project_filter_once(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = DiaryListCoordinator(session, store, tz=timezone.utc)

    async def scenario():
        await c.mount()
        assert [e.id for e in c.visible] == [d3, d1, d2]
        await c.set_project_filter(web)
        after_web = len(store.list_calls)
        await c.set_project_filter(None)
        await c.set_project_filter(web)
        return after_web

    after_web = asyncio.run(scenario())
    assert len(store.list_calls) == after_web
    assert [e.id for e in c.visible] == [d1, d2]

def test_diary_list_search_and_sort_are_local(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = DiaryListCoordinator(session, store, tz=timezone.utc)
    asyncio.run(c.mount())
    reads = len(store.list_calls)

    c.set_search("BACKEND")
    assert [e.id for e in c.visible] == [d1]
    c.set_search("")
    c.set_sort("oldest")
    assert [e.id for e in c.visible] == [d2, d1, d3]
    c.set_sort("title")
    assert [e.title for e in c.visible] == ["Comandos", "Login", "Maqueta"]
    assert len(store.list_calls) == reads

def test_diary_list_edit_patches_every_cached_filter(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = DiaryListCoordinator(session, store, tz=timezone.utc)

    async def scenario():
        await c.mount()
        await c.set_project_filter(web)
        await c.select(web, d2)
        c.start_edit()
        await c.submit_edit({"title": "Maqueta v2"})
        await c.set_project_filter(None)

    asyncio.run(scenario())
    assert "Maqueta v2" in [e.title for e in c.visible]

def test_diary_list_refresh_rereads_projects(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = DiaryListCoordinator(session, store, tz=timezone.utc)

    async def scenario():
        await c.mount()
        await c.set_project_filter(bot)
        await c.set_project_filter(None)
        await journal.delete_project(store, ADA.id, web)
        await journal.delete_project(store, ADA.id, bot)
        new = await store.add(projects_path("1"), {"name": "New"})
        await store.add(diaries_path("1", new), {
            "title": "Fresh", "createdAt": datetime(2025, 6, 14, tzinfo=timezone.utc),
        })
        await c.refresh()
        return new

    new = asyncio.run(scenario())
    assert c.status == ViewStatus.READY
    assert [e.title for e in c.visible] == ["Fresh"]
    assert [p.name for p in c.projects] == ["New"]

    # el filtro de un proyecto borrado ya no sale de la caché
    asyncio.run(c.set_project_filter(bot))
    assert c.status == ViewStatus.ERROR
    assert c.error.error_code == "not_found"
    assert c.visible == []

    asyncio.run(c.set_project_filter(new))
    assert [e.title for e in c.visible] == ["Fresh"]



# -------------------- detalle de proyecto --------------------
def test_project_detail_timeline(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = ProjectDetailCoordinator(session, store, web, tz=timezone.utc)
    asyncio.run(c.mount())
    data = c.snapshot().to_dict()["data"]
    assert data["project"]["name"] == "Web"
    assert [e["id"] for e in data["timeline"]] == [d1, d2]

def test_project_detail_missing_project_is_an_error(session, store):
    seed(store)
    c = ProjectDetailCoordinator(session, store, "nope", tz=timezone.utc)
    asyncio.run(c.mount())
    assert c.status == ViewStatus.ERROR
    assert c.snapshot().to_dict()["error"]["error_code"] == "not_found"

def test_project_detail_edit_and_delete(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = ProjectDetailCoordinator(session, store, web, tz=timezone.utc)

    async def scenario():
        await c.mount()
        await c.select(web, d1)
        c.start_edit()
        assert c.status == ViewStatus.EDITING
        ok = await c.submit_edit({"title": "Login OK", "troubleshooting": {"solution": "proxy"}})
        return ok

    assert asyncio.run(scenario()) is True
    assert c.status == ViewStatus.SELECTED
    assert [e.title for e in c.timeline] == ["Login OK", "Maqueta"]
    assert c.selected.troubleshooting.problem == "CORS"
    assert c.selected.troubleshooting.solution == "proxy"

    stored = asyncio.run(journal.get_diary(store, ADA.id, web, d1))
    assert stored.troubleshooting.problem == "CORS"
    assert stored.troubleshooting.solution == "proxy"

    c.cancel_edit()
    assert asyncio.run(c.delete_selected()) is True
    assert [e.id for e in c.timeline] == [d2]
    assert c.selected is None
    assert c.status == ViewStatus.READY

def test_project_detail_select_missing_diary(session, store):
    web, *_ = seed(store)
    c = ProjectDetailCoordinator(session, store, web, tz=timezone.utc)

    async def scenario():
        await c.mount()
        await c.select(web, "nope")

    asyncio.run(scenario())
    assert c.status == ViewStatus.READY
    assert c.selected is None
    assert c.error.error_code == "not_found"



# -------------------- gestión de proyectos --------------------
def test_project_manage_is_live(session, store):
    seed(store)
    c = ProjectManageCoordinator(session, store)

    async def scenario():
        await c.mount()
        await c.create_project({"name": "CLI", "status": "done"})

    asyncio.run(scenario())
    assert c.counts == {"planning": 1, "in-progress": 1, "done": 1, "total": 3}

    c.unmount()
    asyncio.run(store.add(projects_path("1"), {"name": "Fuera"}))
    assert c.counts["total"] == 3

def test_project_manage_edit_and_delete(session, store):
    web, bot, d1, d2, d3 = seed(store)
    c = ProjectManageCoordinator(session, store)

    async def scenario():
        await c.mount()
        c.open_edit(bot)
        ok = await c.save_edit({"status": "done"})
        deleted = await c.delete_project(web)
        return ok, deleted

    assert asyncio.run(scenario()) == (True, True)
    assert [(p.name, p.status) for p in c.projects] == [("Bot", "done")]
    assert c.editing is None

def test_project_manage_rejects_bad_status(session, store):
    web, *_ = seed(store)
    c = ProjectManageCoordinator(session, store)

    async def scenario():
        await c.mount()
        c.open_edit(web)
        return await c.save_edit({"status": "archived"})

    assert asyncio.run(scenario()) is False
    assert c.status == ViewStatus.EDITING
    assert "status" in c.error.fields


# -------------------- escritura de diario --------------------
def writer(session, store, **kw):
    return DiaryWriteCoordinator(session, store, tz=timezone.utc, today=lambda: NOW.date(), **kw)

def test_write_wizard_validates_first_step(session, store):
    web, *_ = seed(store)
    c = writer(session, store)
    asyncio.run(c.mount())

    assert c.next_step() is False
    assert set(c.error.fields) == {"project_id", "title"}

    c.select_project(web)
    c.set_field("title", "Hoy")
    assert c.next_step() is True
    assert c.step == 2
    c.prev_step()
    c.prev_step()
    assert c.step == 1

def test_write_creates_then_diverts_to_existing_today(session, store):
    web, *_ = seed(store)
    first = writer(session, store, project_id=web)
    first.set_field("title", "Primero")
    first.set_field("problem", "Tests lentos")

    second = writer(session, store, project_id=web)
    second.set_field("title", "Segundo")

    async def scenario():
        await first.mount()
        assert await first.submit() is True
        await second.mount()
        assert await second.submit() is False
        return await second.edit_existing()

    assert asyncio.run(scenario()) is True
    assert second.is_edit
    assert second.edit_diary.id == first.saved_id
    assert second.draft["title"] == "Primero"
    assert second.draft["troubleshooting"]["problem"] == "Tests lentos"


# -------------------- escenario completo --------------------
def test_website_setup_scenario(session, store):
    async def create():
        pid = await journal.create_project(store, ADA.id, {"name": "Website", "status": "planning"})
        did = await journal.create_diary(
            store, ADA.id, pid, {"title": "Setup", "progress": "Initialized repo"},
            today=NOW.date(), tz=timezone.utc,
        )
        return pid, did

    pid, did = asyncio.run(create())
    # Otro usuario escribiendo a la vez no cuenta en las estadísticas
    seed(store, uid="2")

    c = home(session, store)
    asyncio.run(c.mount())
    assert [(ev.title, ev.project_id) for ev in c.view.events] == [("Setup", pid)]
    assert c.view.stats.diary_count == 1
    assert c.view.stats.troubleshooting_count == 0

    reads = len(store.list_calls)

    async def add_troubleshooting():
        await c.select(pid, did)
        c.start_edit()
        return await c.submit_edit({
            "troubleshooting": {"problem": "build fails", "solution": "pin dependency"},
        })

    assert asyncio.run(add_troubleshooting()) is True
    assert c.view.stats.troubleshooting_count == 1
    assert len(store.list_calls) == reads

    assert asyncio.run(c.delete_selected()) is True
    assert c.view.stats.diary_count == 0

    detail = ProjectDetailCoordinator(session, store, pid, tz=timezone.utc)
    asyncio.run(detail.mount())
    assert detail.timeline == []
