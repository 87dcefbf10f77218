"""Interfaz del motor de reproducción que usa cada Surface.

Las implementaciones garantizan que `on_error`, `on_stalled` y el callback de
`probe()` se invocan en el hilo de control.
"""
from typing import Callable

from kumo.models import Asset, ProbeResult


class EngineError(RuntimeError):
    pass


class PlaybackEngine:
    def __init__(self):
        self.on_error: Callable[[str], None] | None = None
        self.on_stalled: Callable[[], None] | None = None

    def _emit_error(self, message: str) -> None:
        if self.on_error is not None:
            self.on_error(message)

    def _emit_stalled(self) -> None:
        if self.on_stalled is not None:
            self.on_stalled()

    def detach_listeners(self) -> None:
        self.on_error = None
        self.on_stalled = None

    def attach(self, layer) -> None:
        raise NotImplementedError

    def probe(self, asset: Asset, callback: Callable[[ProbeResult], None]) -> None:
        """Carga metadatos de forma asíncrona y entrega un ProbeResult."""
        raise NotImplementedError

    def start(self, asset: Asset) -> None:
        """Inicia la reproducción en bucle de un asset ya validado."""
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def resume(self) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def release(self) -> None:
        raise NotImplementedError

    def rate(self) -> float:
        """Velocidad efectiva: 0.0 si no está reproduciendo."""
        raise NotImplementedError

    def position_ms(self) -> int:
        raise NotImplementedError

    def seek(self, position_ms: int) -> None:
        raise NotImplementedError

    def has_error(self) -> bool:
        raise NotImplementedError
