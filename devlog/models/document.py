# devlog/models/document.py
from datetime import datetime
from devlog import db


class Document(db.Model):
    """
    Un documento del store, direccionado por ruta completa.
    Ej.: users/1/projects/abc/diaries/xyz  ->  parent = users/1/projects/abc/diaries
    """
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    path = db.Column(db.String(512), unique=True, nullable=False)
    # Ruta de la colección que lo contiene
    parent = db.Column(db.String(512), index=True, nullable=False)
    doc_id = db.Column(db.String(64), nullable=False)

    # Campos del documento (fechas codificadas, ver store.documents)
    data = db.Column(db.JSON, nullable=False, default=dict)

    # Orden de escritura dentro de la colección
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Document {self.path}>"
