# devlog/cli/seed.py
import asyncio
from datetime import timedelta

import click
from flask.cli import AppGroup
from werkzeug.security import generate_password_hash

from devlog import db
from devlog.models.user import User
from devlog.services import journal
from devlog.store.documents import DocumentStore, diaries_path
from devlog.utils.dates import now_local

seed_group = AppGroup("seed", help="Comandos de seed (datos de ejemplo)")

# ---- Proyectos de ejemplo, cada uno con diarios en días pasados ----
DEMO_PROJECTS = [
    {"name": "Portfolio web", "description": "Web personal con blog", "status": "in-progress",
     "diaries": [
         {"title": "Maquetación inicial", "progress": "Grid y tipografías",
          "tags": ["css", "layout"]},
         {"title": "Deploy", "progress": "Publicado en el hosting",
          "troubleshooting": {"problem": "Build fallaba en CI", "solution": "Fijar versión de Node"},
          "tags": ["deploy"]},
     ]},
    {"name": "Bot de Telegram", "description": "Avisos del tiempo", "status": "planning",
     "diaries": [
         {"title": "Idea y alcance", "progress": "Lista de comandos", "tags": ["bot"]},
     ]},
    {"name": "Curso de SQL", "description": "", "status": "done",
     "diaries": [
         {"title": "JOINs", "progress": "Ejercicios 1-20",
          "troubleshooting": {"problem": "LEFT JOIN duplicaba filas", "solution": "Agrupar antes"},
          "retrospective": "Repasar subconsultas", "tags": ["sql"]},
     ]},
]


def _get_or_create_user(email, password):
    user = User.query.filter_by(email=email).first()
    if user:
        return user, False
    user = User(email=email, password=generate_password_hash(password))
    db.session.add(user)
    db.session.commit()
    return user, True


async def _seed_user(store, uid):
    """Crea los proyectos demo; los diarios se fechan hacia atrás (uno por día)."""
    now = now_local()
    created = 0
    offset = 0
    for item in DEMO_PROJECTS:
        project_id = await journal.create_project(store, uid, item)
        for diary in item["diaries"]:
            fields = journal.validate_diary(diary)
            fields["createdAt"] = now - timedelta(days=offset)
            await store.add(diaries_path(uid, project_id), fields)
            offset += 1
            created += 1
    return len(DEMO_PROJECTS), created


@seed_group.command("demo")
@click.option("--email", default="demo@devlog.io", show_default=True,
              help="Email del usuario demo (se crea si no existe).")
@click.option("--password", default="demo1234", show_default=True,
              help="Contraseña del usuario demo si hay que crearlo.")
def seed_demo(email, password):
    """
    Crea un usuario demo con proyectos y diarios de ejemplo.
    Si el usuario ya tiene proyectos no hace nada (idempotente).
    """
    user, is_new = _get_or_create_user(email.strip().lower(), password)
    uid = str(user.id)
    store = DocumentStore()

    existing = asyncio.run(journal.list_projects(store, uid))
    if existing:
        click.secho(f"{email} ya tiene {len(existing)} proyectos. Nada que hacer.", fg="yellow")
        return

    projects, diaries = asyncio.run(_seed_user(store, uid))
    estado = "nuevo" if is_new else "existente"
    click.secho(f"Hecho. Usuario {estado}: {email}. Proyectos: {projects}, Diarios: {diaries}", fg="green")
