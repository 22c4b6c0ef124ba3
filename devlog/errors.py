# devlog/errors.py
"""
Taxonomía de errores del diario.

Cada error lleva un `error_code` estable (el que ve el front) y el status HTTP
con el que lo devuelve la API. Los coordinadores los capturan y los convierten
en un mensaje visible; las rutas los dejan subir al errorhandler de la app.
"""
from typing import Any, Dict, Optional


class DevlogError(Exception):
    error_code = "devlog_error"
    http_status = 500
    default_message = "Ha ocurrido un error."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message}


class NotAuthenticated(DevlogError):
    error_code = "not_authenticated"
    http_status = 401
    default_message = "Necesitas iniciar sesión."


class NotFound(DevlogError):
    error_code = "not_found"
    http_status = 404
    default_message = "No se ha encontrado el elemento."


class ValidationFailure(DevlogError):
    error_code = "validation_error"
    http_status = 422
    default_message = "Revisa los campos del formulario."

    def __init__(self, fields: Optional[Dict[str, str]] = None, message: Optional[str] = None):
        super().__init__(message)
        self.fields = dict(fields or {})

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["fields"] = self.fields
        return d


class DiaryExistsToday(DevlogError):
    """Ya hay un diario hoy para ese proyecto: hay que ir a editarlo."""
    error_code = "diary_exists_today"
    http_status = 409
    default_message = "Hoy ya escribiste un diario en este proyecto. Puedes editarlo."

    def __init__(self, project_id: str, diary_id: str, message: Optional[str] = None):
        super().__init__(message)
        self.project_id = project_id
        self.diary_id = diary_id

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["project_id"] = self.project_id
        d["diary_id"] = self.diary_id
        return d


class RemoteWriteFailure(DevlogError):
    error_code = "remote_write_failure"
    http_status = 502
    default_message = "No se pudo guardar. Inténtalo de nuevo."


class RemoteReadFailure(DevlogError):
    error_code = "remote_read_failure"
    http_status = 502
    default_message = "No se pudieron cargar los datos."
