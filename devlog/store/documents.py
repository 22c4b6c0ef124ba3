# devlog/store/documents.py
"""
Cliente del store de documentos.

Todo se direcciona por ruta, con el esquema canónico del diario:

    users/{uid}/projects/{pid}/diaries/{did}

Las colecciones tienen un número impar de segmentos y los documentos un
número par. Cada operación es una corrutina (punto de suspensión): quien
lance varias a la vez debe unirlas con asyncio.gather antes de agregar.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from devlog import db
from devlog.models.document import Document

log = logging.getLogger(__name__)

_TS_KEY = "__datetime__"


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Centinela: el store pone la hora del servidor al escribir
SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(Exception):
    """Fallo del store (conexión, permisos, integridad)."""


class DocumentNotFound(StoreError):
    def __init__(self, path: str):
        super().__init__(f"documento no encontrado: {path}")
        self.path = path


Listener = Callable[[List["DocumentSnapshot"]], None]


@dataclass
class DocumentSnapshot:
    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


# -------------------------------------------------------------------
# Rutas
# -------------------------------------------------------------------
def _join(segments) -> str:
    parts = [str(s).strip("/") for s in segments]
    if any(not p or "/" in p for p in parts):
        raise ValueError(f"segmentos de ruta inválidos: {segments!r}")
    return "/".join(parts)


def collection_path(*segments) -> str:
    if len(segments) % 2 != 1:
        raise ValueError("una colección necesita un número impar de segmentos")
    return _join(segments)


def document_path(*segments) -> str:
    if not segments or len(segments) % 2 != 0:
        raise ValueError("un documento necesita un número par de segmentos")
    return _join(segments)


def projects_path(user_id) -> str:
    return collection_path("users", user_id, "projects")


def project_path(user_id, project_id) -> str:
    return document_path("users", user_id, "projects", project_id)


def diaries_path(user_id, project_id) -> str:
    return collection_path("users", user_id, "projects", project_id, "diaries")


def diary_path(user_id, project_id, diary_id) -> str:
    return document_path("users", user_id, "projects", project_id, "diaries", diary_id)


# -------------------------------------------------------------------
# Codificación de campos (fechas dentro del JSON)
# -------------------------------------------------------------------
def _encode(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        value = now
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_TS_KEY: value.astimezone(timezone.utc).isoformat()}
    if isinstance(value, dict):
        return {str(k): _encode(v, now) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v, now) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_TS_KEY}:
            return datetime.fromisoformat(value[_TS_KEY])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def _merge(current: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge parcial: claves de primer nivel reemplazan; "a.b" toca solo el
    subcampo b del mapa a. El resto queda intacto.
    """
    merged = dict(current)
    for key, value in fields.items():
        if "." not in key:
            merged[key] = value
            continue
        head, _, rest = key.partition(".")
        nested = merged.get(head)
        nested = dict(nested) if isinstance(nested, dict) else {}
        merged[head] = _merge(nested, {rest: value})
    return merged


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------
class DocumentStore:
    """
    Store de documentos sobre la tabla `documents` (Flask-SQLAlchemy).
    Necesita contexto de aplicación para usar db.session.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: Dict[str, List[tuple]] = {}

    # ---- lectura ----
    async def list(self, collection: str, order_by: Optional[str] = None,
                   descending: bool = False) -> List[DocumentSnapshot]:
        """
        Lista los documentos de una colección.
        Con order_by, los documentos sin ese campo (o a None) quedan fuera.
        """
        await asyncio.sleep(0)
        try:
            return self._list_sync(collection, order_by, descending)
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo listar {collection}: {e}") from e

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        await asyncio.sleep(0)
        try:
            row = Document.query.filter_by(path=path).first()
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo leer {path}: {e}") from e
        return self._snapshot(row) if row else None

    # ---- escritura ----
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Crea un documento con id asignado por el servidor. Devuelve el id."""
        await asyncio.sleep(0)
        doc_id = uuid.uuid4().hex[:20]
        path = f"{collection}/{doc_id}"
        row = Document(
            path=path,
            parent=collection,
            doc_id=doc_id,
            data=_encode(dict(data), self._clock()),
        )
        self._commit(lambda: db.session.add(row), path)
        self._notify(collection)
        return doc_id

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        """Actualiza campos (merge parcial). Falla si el documento no existe."""
        await asyncio.sleep(0)
        try:
            row = Document.query.filter_by(path=path).first()
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo leer {path}: {e}") from e
        if row is None:
            raise DocumentNotFound(path)

        encoded = _encode(dict(fields), self._clock())

        def _apply():
            # asignar un dict nuevo para que SQLAlchemy detecte el cambio
            row.data = _merge(row.data or {}, encoded)

        self._commit(_apply, path)
        self._notify(row.parent)

    async def delete(self, path: str) -> None:
        """Borra un documento. Idempotente. No borra subcolecciones."""
        await asyncio.sleep(0)
        try:
            row = Document.query.filter_by(path=path).first()
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo leer {path}: {e}") from e
        if row is None:
            return
        parent = row.parent
        self._commit(lambda: db.session.delete(row), path)
        self._notify(parent)

    # ---- suscripciones ----
    def subscribe(self, collection: str, listener: Listener,
                  order_by: Optional[str] = None, descending: bool = False) -> Callable[[], None]:
        """
        Notifica al listener con la colección completa: ahora mismo y tras
        cada escritura en ella. Devuelve la función para desuscribirse.
        """
        try:
            initial = self._list_sync(collection, order_by, descending)
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo suscribir a {collection}: {e}") from e
        entry = (listener, order_by, descending)
        self._listeners.setdefault(collection, []).append(entry)
        listener(initial)

        def _unsubscribe():
            entries = self._listeners.get(collection, [])
            if entry in entries:
                entries.remove(entry)

        return _unsubscribe

    # ---- internos ----
    def _list_sync(self, collection: str, order_by: Optional[str],
                   descending: bool) -> List[DocumentSnapshot]:
        rows = Document.query.filter_by(parent=collection).order_by(Document.id.asc()).all()
        snaps = [self._snapshot(r) for r in rows]
        if order_by:
            snaps = [s for s in snaps if s.data.get(order_by) is not None]
            snaps.sort(key=lambda s: s.data[order_by], reverse=descending)
        return snaps

    @staticmethod
    def _snapshot(row: Document) -> DocumentSnapshot:
        return DocumentSnapshot(id=row.doc_id, path=row.path, data=_decode(row.data or {}))

    @staticmethod
    def _commit(change: Callable[[], None], path: str) -> None:
        try:
            change()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f"no se pudo escribir {path}: {e}") from e

    def _notify(self, collection: str) -> None:
        for listener, order_by, descending in list(self._listeners.get(collection, [])):
            try:
                listener(self._list_sync(collection, order_by, descending))
            except Exception:
                log.exception(f"[store] listener de {collection} falló")


def get_store() -> DocumentStore:
    """Store compartido de la app (las suscripciones viven en él)."""
    store = current_app.extensions.get("devlog_store")
    if store is None:
        store = current_app.extensions["devlog_store"] = DocumentStore()
    return store
