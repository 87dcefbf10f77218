"""Estado de sesión y su máquina de estados.

`Session` es la única estructura con estado mutable del coordinador; se pasa
por referencia a los handlers del hilo de control. `SessionStateMachine` es
la única que cambia `Session.state`.

Transiciones:
    READY  -> PAUSED  al empezar un cambio de topología o un evento de energía
    PAUSED -> READY   solo como paso de la recreación programada
"""
from typing import Callable

from kumo.log import _log
from kumo.models import Asset, SessionState
from kumo.scheduler import SingleSlotTimer


class Session:
    def __init__(self, scheduler):
        self.state = SessionState.READY
        self.surfaces: list = []
        # Pantallas soltadas de emergencia, esperando release ordenado.
        self.retired: list = []
        self.pending_asset: Asset | None = None
        self.current_asset: Asset | None = None
        self.recreation = SingleSlotTimer(scheduler)

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def can_execute(self) -> bool:
        return self.state is SessionState.READY and bool(self.surfaces)


class SessionStateMachine:
    def __init__(self, session: Session, on_change: Callable[[SessionState], None] | None = None):
        self.session = session
        self._on_change = on_change

    def pause(self, reason: str) -> bool:
        """READY -> PAUSED. Devuelve False si ya estaba en PAUSED."""
        if self.session.state is not SessionState.READY:
            _log(f"Sesión: ya en {self.session.state.value}, se ignora '{reason}'")
            return False
        self.session.state = SessionState.PAUSED
        _log(f"Sesión: READY -> PAUSED ({reason})")
        self._notify()
        return True

    def mark_ready(self) -> None:
        if self.session.state is SessionState.READY:
            return
        self.session.state = SessionState.READY
        _log("Sesión: PAUSED -> READY")
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.session.state)
