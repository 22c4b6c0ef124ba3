# tests/test_document_store.py

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from devlog import create_app, db
from devlog.store.documents import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentStore,
    collection_path,
    diaries_path,
    diary_path,
    document_path,
    project_path,
    projects_path,
)

T0 = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Reloj controlable para el timestamp del servidor."""
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def tick(self, **kw):
        self.now = self.now + timedelta(**kw)


@pytest.fixture
def app():
    app = create_app({
        "SECRET_KEY": "x" * 32,
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "WTF_CSRF_ENABLED": False,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def clock():
    return Clock()

@pytest.fixture
def store(app, clock):
    return DocumentStore(clock=clock)


def test_paths():
    assert projects_path(1) == "users/1/projects"
    assert project_path("1", "p") == "users/1/projects/p"
    assert diaries_path("1", "p") == "users/1/projects/p/diaries"
    assert diary_path("1", "p", "d") == "users/1/projects/p/diaries/d"
    with pytest.raises(ValueError):
        collection_path("users", "1")
    with pytest.raises(ValueError):
        document_path("users")
    with pytest.raises(ValueError):
        project_path("1", "a/b")

def test_add_and_get_with_server_timestamp(store):
    coll = projects_path("1")
    doc_id = asyncio.run(store.add(coll, {"name": "Web", "createdAt": SERVER_TIMESTAMP}))
    snap = asyncio.run(store.get(f"{coll}/{doc_id}"))
    assert snap.id == doc_id
    assert snap.get("name") == "Web"
    assert snap.get("createdAt") == T0

def test_get_missing_returns_none(store):
    assert asyncio.run(store.get(project_path("1", "nope"))) is None

def test_list_order_by_skips_docs_without_field(store, clock):
    coll = diaries_path("1", "p")

    async def seed():
        await store.add(coll, {"title": "viejo", "createdAt": SERVER_TIMESTAMP})
        clock.tick(days=1)
        await store.add(coll, {"title": "nuevo", "createdAt": SERVER_TIMESTAMP})
        await store.add(coll, {"title": "sin fecha"})

    asyncio.run(seed())
    ordered = asyncio.run(store.list(coll, order_by="createdAt", descending=True))
    assert [s.get("title") for s in ordered] == ["nuevo", "viejo"]
    # Sin order_by salen todos
    assert len(asyncio.run(store.list(coll))) == 3

def test_update_merges_and_supports_dotted_keys(store):
    coll = diaries_path("1", "p")
    doc_id = asyncio.run(store.add(coll, {
        "title": "A",
        "troubleshooting": {"problem": "p", "solution": "s"},
    }))
    path = f"{coll}/{doc_id}"
    asyncio.run(store.update(path, {"title": "B", "troubleshooting.solution": "s2"}))
    snap = asyncio.run(store.get(path))
    assert snap.get("title") == "B"
    assert snap.get("troubleshooting") == {"problem": "p", "solution": "s2"}

def test_update_missing_document_fails(store):
    with pytest.raises(DocumentNotFound):
        asyncio.run(store.update(project_path("1", "nope"), {"name": "x"}))

def test_delete_is_idempotent_and_does_not_cascade(store):
    pid = asyncio.run(store.add(projects_path("1"), {"name": "Web"}))
    asyncio.run(store.add(diaries_path("1", pid), {"title": "d"}))

    asyncio.run(store.delete(project_path("1", pid)))
    asyncio.run(store.delete(project_path("1", pid)))

    assert asyncio.run(store.get(project_path("1", pid))) is None
    # Los diarios siguen ahí, huérfanos
    assert len(asyncio.run(store.list(diaries_path("1", pid)))) == 1

def test_subscribe_notifies_now_and_after_writes(store):
    coll = projects_path("1")
    seen = []
    unsubscribe = store.subscribe(coll, lambda docs: seen.append([d.get("name") for d in docs]))
    assert seen == [[]]

    pid = asyncio.run(store.add(coll, {"name": "Web"}))
    asyncio.run(store.update(project_path("1", pid), {"name": "Web 2"}))
    assert seen[-1] == ["Web 2"]
    assert len(seen) == 3

    unsubscribe()
    asyncio.run(store.delete(project_path("1", pid)))
    assert len(seen) == 3

def test_users_are_isolated(store):
    asyncio.run(store.add(projects_path("1"), {"name": "Mío"}))
    assert asyncio.run(store.list(projects_path("2"))) == []
