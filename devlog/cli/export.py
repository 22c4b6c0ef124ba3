# devlog/cli/export.py
import asyncio
import csv
import os
from datetime import datetime

import click
from flask.cli import AppGroup

from devlog.models.user import User
from devlog.services.journal import list_all_diaries
from devlog.store.documents import DocumentStore
from devlog.utils.dates import local_day

export_group = AppGroup("export", help="Comandos de exportación (CSV, etc.)")

FIELDS = ["date", "project", "title", "progress", "problem", "solution", "retrospective", "tags"]


@export_group.command("diaries")
@click.option("--email", required=True, help="Usuario cuyos diarios se exportan.")
@click.option("--to", "dest_path", default=None,
              help="Ruta destino del CSV (por defecto: instance/diaries_export_YYYYMMDD.csv)")
def export_diaries(email, dest_path):
    """
    Exporta todos los diarios de un usuario (todos sus proyectos) a CSV,
    del más reciente al más antiguo. Los diarios sin fecha no se exportan.
    """
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        click.secho(f"No existe el usuario: {email}", fg="red")
        return

    if not dest_path:
        ts = datetime.now().strftime("%Y%m%d")
        dest_path = os.path.join("instance", f"diaries_export_{ts}.csv")

    # Asegura carpeta destino
    folder = os.path.dirname(dest_path)
    if folder:
        os.makedirs(folder, exist_ok=True)

    per_project = asyncio.run(list_all_diaries(DocumentStore(), str(user.id)))
    rows = [(p, d) for p, diaries in per_project for d in diaries if d.created_at]
    rows.sort(key=lambda pd: pd[1].created_at, reverse=True)

    with open(dest_path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=FIELDS)
        writer.writeheader()
        for project, diary in rows:
            writer.writerow({
                "date": local_day(diary.created_at).isoformat(),
                "project": project.name,
                "title": diary.title,
                "progress": diary.progress,
                "problem": diary.troubleshooting.problem,
                "solution": diary.troubleshooting.solution,
                "retrospective": diary.retrospective,
                "tags": ",".join(diary.tags),
            })

    click.secho(f"Exportados {len(rows)} diarios a: {dest_path}", fg="green")
