"""Temporizadores del hilo de control.

Todo callback programado aquí corre en el hilo de Qt (el mismo que muta la
sesión), así que el estado compartido no necesita locks.
"""
from typing import Callable

from PySide6.QtCore import QObject, QTimer


class QtTimerHandle:
    def __init__(self, timer: QTimer):
        self._timer = timer

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None


class QtScheduler:
    """Programa callbacks con QTimer sobre el event loop de la aplicación."""

    def __init__(self, parent: QObject | None = None):
        self._parent = parent

    def _make_timer(self, interval_ms: int, callback: Callable[[], None], single_shot: bool) -> QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(single_shot)
        timer.setInterval(max(0, int(interval_ms)))
        handle = QtTimerHandle(timer)

        def _fire():
            if single_shot:
                handle.cancel()
            callback()

        timer.timeout.connect(_fire)
        timer.start()
        return handle

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> QtTimerHandle:
        return self._make_timer(delay_ms, callback, single_shot=True)

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> QtTimerHandle:
        return self._make_timer(interval_ms, callback, single_shot=False)


class SingleSlotTimer:
    """Un único timer pendiente como máximo: armar siempre cancela el anterior."""

    def __init__(self, scheduler):
        self._scheduler = scheduler
        self._handle = None

    @property
    def pending(self) -> bool:
        return self._handle is not None and self._handle.active

    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.cancel()

        def _fire():
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay_ms, _fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
