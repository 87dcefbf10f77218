"""Watchdog de reproducción por pantalla.

Ciclo de vida: IDLE -> VALIDATING -> PLAYING -> (FAILED | IDLE).

- Antes de arrancar el motor se valida la fuente (existe, legible, tamaño
  mínimo) y luego, de forma asíncrona, los metadatos (reproducible, duración
  finita y positiva).
- Un error del motor, o un stall que no se resuelve en la ventana de gracia,
  reporta un único fallo por intento de reproducción.
- Cada `health_check_interval_ms` se revisa el progreso: si la velocidad es
  > 0 pero la posición no cambió, se empuja la posición un poco hacia adelante
  (recuperación barata, sin destruir la pantalla). Si el empujón falla o no
  destraba la reproducción, se escala a fallo.
"""
import os
import math
from typing import Callable
from urllib.parse import urlparse

from kumo.engine import EngineError, PlaybackEngine
from kumo.log import _log
from kumo.models import Asset, ProbeResult, SurfaceState
from kumo.scheduler import SingleSlotTimer


def check_source(asset: Asset, min_bytes: int) -> str | None:
    """Devuelve el motivo de rechazo, o None si la fuente parece utilizable."""
    if asset.is_streaming:
        scheme = urlparse(asset.locator).scheme.lower()
        if scheme not in ("http", "https"):
            return f"URL de streaming inválida: {asset.locator}"
        return None

    path = asset.path
    if not path or not os.path.isfile(path) or not os.access(path, os.R_OK):
        return f"archivo no accesible: {path}"
    try:
        size = os.path.getsize(path)
    except OSError as e:
        return f"no se pudo leer el tamaño de {path}: {e}"
    if size < min_bytes:
        return f"archivo demasiado chico, probablemente incompleto: {os.path.basename(path)} ({size} bytes)"
    return None


def duration_is_valid(duration_ms) -> bool:
    if duration_ms is None:
        return False
    try:
        d = float(duration_ms)
    except (TypeError, ValueError):
        return False
    return math.isfinite(d) and d > 0


class PlaybackWatchdog:
    def __init__(
        self,
        engine: PlaybackEngine,
        scheduler,
        settings,
        on_failure: Callable[[Asset | None, str], None],
        on_started: Callable[[Asset], None] | None = None,
        label: str = "Pantalla",
    ):
        self.engine = engine
        self.settings = settings
        self.label = label
        self._scheduler = scheduler
        self._on_failure = on_failure
        self._on_started = on_started

        self.state = SurfaceState.IDLE
        self.asset: Asset | None = None
        self.failure_reported = False
        self.user_paused = False
        self.last_position: int | None = None
        self.nudge_count = 0
        self._nudge_target: int | None = None
        self._generation = 0

        self._stall_timer = SingleSlotTimer(scheduler)
        self._health_handle = None

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self, asset: Asset) -> None:
        """Arranca un intento de reproducción: IDLE -> VALIDATING."""
        self._disarm()
        self._generation += 1
        self.asset = asset
        self.failure_reported = False
        self.user_paused = False
        self.state = SurfaceState.VALIDATING

        problem = check_source(asset, self.settings.min_source_bytes)
        if problem:
            self._fail(problem)
            return

        generation = self._generation
        try:
            self.engine.probe(asset, lambda result: self._on_probe(generation, asset, result))
        except EngineError as e:
            self._fail(f"no se pudieron cargar metadatos: {e}")

    def _on_probe(self, generation: int, asset: Asset, result: ProbeResult) -> None:
        if generation != self._generation or self.state is not SurfaceState.VALIDATING or asset != self.asset:
            _log(f"{self.label}: descartando validación tardía de {asset.short_name}")
            return

        if not result.playable:
            self._fail(f"video no reproducible: {asset.short_name} ({result.error or 'sin detalle'})")
            return
        if not duration_is_valid(result.duration_ms):
            self._fail(f"duración inválida: {asset.short_name} ({result.duration_ms})")
            return

        try:
            self.engine.start(asset)
        except EngineError as e:
            self._fail(f"el motor no pudo iniciar: {e}")
            return

        self.state = SurfaceState.PLAYING
        self.last_position = None
        if self.user_paused:
            self.engine.pause()
        self._health_handle = self._scheduler.call_every(
            self.settings.health_check_interval_ms, self.check_health
        )
        _log(f"{self.label}: reproduciendo {asset.short_name}")
        if self._on_started is not None:
            self._on_started(asset)

    def on_engine_error(self, message: str) -> None:
        if self.state not in (SurfaceState.VALIDATING, SurfaceState.PLAYING):
            return
        self._fail(f"error del motor: {message}")

    def on_engine_stalled(self) -> None:
        if self.state is not SurfaceState.PLAYING or self._stall_timer.pending:
            return
        grace = self.settings.stall_grace_ms
        _log(f"{self.label}: reproducción trabada, esperando {grace}ms")
        generation = self._generation
        self._stall_timer.arm(grace, lambda: self._check_stall(generation))

    def _check_stall(self, generation: int) -> None:
        if generation != self._generation or self.state is not SurfaceState.PLAYING:
            return
        if self.user_paused:
            return
        if self.engine.rate() > 0 and not self.engine.has_error():
            _log(f"{self.label}: stall resuelto")
            return
        self._fail("stall sin recuperar tras la ventana de gracia")

    def check_health(self) -> None:
        if self.state is not SurfaceState.PLAYING:
            return

        if self.engine.has_error():
            self._fail("watchdog detectó error del motor")
            return

        rate = self.engine.rate()
        position = int(self.engine.position_ms())

        if self._nudge_target is not None:
            target = self._nudge_target
            self._nudge_target = None
            if rate > 0 and position <= target:
                self._fail(f"reproducción congelada en {position}ms tras recuperación")
                return

        if rate > 0:
            if self.last_position is not None and position == self.last_position:
                self._nudge(position)
                if self.state is not SurfaceState.PLAYING:
                    return
            self.last_position = position

    def _nudge(self, position: int) -> None:
        target = position + self.settings.frozen_nudge_ms
        _log(f"{self.label}: reproducción congelada en {position}ms, empujando a {target}ms")
        self.nudge_count += 1
        try:
            self.engine.seek(target)
            self.engine.resume()
        except EngineError as e:
            self._fail(f"recuperación de congelamiento falló: {e}")
            return
        self._nudge_target = target

    def _fail(self, reason: str) -> None:
        if self.failure_reported:
            return
        self.failure_reported = True
        self.state = SurfaceState.FAILED
        asset = self.asset
        generation = self._generation
        _log(f"{self.label}: fallo de reproducción ({reason})")

        self._disarm()
        try:
            self.engine.stop()
        except EngineError as e:
            _log(f"{self.label}: ERROR deteniendo motor tras fallo: {e}")

        self._on_failure(asset, reason)
        if generation == self._generation and self.state is SurfaceState.FAILED:
            self.state = SurfaceState.IDLE

    def _disarm(self) -> None:
        self._stall_timer.cancel()
        if self._health_handle is not None:
            self._health_handle.cancel()
            self._health_handle = None
        self.last_position = None
        self._nudge_target = None

    def reset(self) -> None:
        """Cancela timers e invalida validaciones en curso. No toca el motor."""
        self._disarm()
        self._generation += 1
        self.state = SurfaceState.IDLE
