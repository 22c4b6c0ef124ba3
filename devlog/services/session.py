# devlog/services/session.py
"""
Proveedor de sesión: la identidad autenticada (o ninguna) y su ciclo de vida.

No es un global oculto: se crea una vez y se pasa a cada coordinador.
- init: resolve() resuelve la identidad de forma asíncrona (loading=True mientras tanto)
- teardown: sign_out() borra la identidad e invalida a todos los coordinadores suscritos
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str


Resolver = Callable[[], Awaitable[Optional[SessionUser]]]
SessionListener = Callable[[Optional[SessionUser]], None]


class SessionProvider:
    def __init__(self, resolver: Optional[Resolver] = None,
                 on_sign_out: Optional[Callable[[], Awaitable[None]]] = None):
        self._resolver = resolver
        self._on_sign_out = on_sign_out
        self._user: Optional[SessionUser] = None
        self._loading = resolver is not None
        self._listeners: List[SessionListener] = []

    @classmethod
    def for_user(cls, user: Optional[SessionUser]) -> "SessionProvider":
        """Sesión ya resuelta (p. ej. la del request actual)."""
        provider = cls()
        provider._user = user
        return provider

    # ---- interfaz consumida por los coordinadores ----
    def current_user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def loading(self) -> bool:
        return self._loading

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ---- ciclo de vida ----
    async def resolve(self) -> Optional[SessionUser]:
        """Resuelve la identidad y avisa a los suscriptores."""
        if self._resolver is None:
            self._loading = False
            return self._user
        self._loading = True
        try:
            user = await self._resolver()
        finally:
            self._loading = False
        self._set_user(user)
        return user

    def sign_in(self, user: SessionUser) -> None:
        self._set_user(user)

    async def sign_out(self) -> None:
        if self._on_sign_out is not None:
            await self._on_sign_out()
        log.info(f"[session] sign out user={self._user.id if self._user else None}")
        self._set_user(None)

    def _set_user(self, user: Optional[SessionUser]) -> None:
        changed = user != self._user
        self._user = user
        if not changed:
            return
        for listener in list(self._listeners):
            listener(user)
