from typing import Callable

from kumo.engine import EngineError, PlaybackEngine
from kumo.log import _log
from kumo.models import Asset, Output, SurfaceState
from kumo.watchdog import PlaybackWatchdog


class Surface:
    """Una salida de video: ventana de fondo + motor + watchdog.

    Hay dos formas de soltarla:
    - `drop()`: de emergencia, mientras la topología está cambiando. Solo
      desarma nuestros timers y listeners; no llama al motor ni a la ventana.
    - `teardown()`: ordenada, cuando la topología ya es estable (stop del
      motor, detach de la ventana, release del handle).
    """

    def __init__(
        self,
        output: Output,
        engine: PlaybackEngine,
        layer,
        scheduler,
        settings,
        on_failure: Callable[["Surface", Asset | None, str], None],
        on_started: Callable[["Surface", Asset], None] | None = None,
    ):
        self.output = output
        self.engine = engine
        self.layer = layer
        self.episode: int | None = None
        self.released = False
        self._on_failure = on_failure
        self._on_started = on_started

        self.watchdog = PlaybackWatchdog(
            engine,
            scheduler,
            settings,
            on_failure=self._report_failure,
            on_started=self._report_started,
            label=f"Pantalla {output.index} ({output.name})",
        )
        engine.on_error = self.watchdog.on_engine_error
        engine.on_stalled = self.watchdog.on_engine_stalled
        engine.attach(layer)

    def _report_failure(self, asset: Asset | None, reason: str) -> None:
        self._on_failure(self, asset, reason)

    def _report_started(self, asset: Asset) -> None:
        if self._on_started is not None:
            self._on_started(self, asset)

    @property
    def state(self) -> SurfaceState:
        return self.watchdog.state

    @property
    def asset(self) -> Asset | None:
        return self.watchdog.asset

    @property
    def is_playing(self) -> bool:
        return self.watchdog.state is SurfaceState.PLAYING and not self.watchdog.user_paused

    def play(self, asset: Asset, episode: int | None = None) -> None:
        if self.released:
            return
        self.episode = episode
        if self.watchdog.state is not SurfaceState.IDLE:
            self.watchdog.reset()
            try:
                self.engine.stop()
            except EngineError as e:
                _log(f"{self.watchdog.label}: ERROR deteniendo motor previo: {e}")
        self.watchdog.begin(asset)

    def pause(self) -> None:
        # Si todavía está validando, la pausa se aplica al arrancar.
        if self.watchdog.state not in (SurfaceState.VALIDATING, SurfaceState.PLAYING):
            return
        self.watchdog.user_paused = True
        if self.watchdog.state is SurfaceState.PLAYING:
            self.engine.pause()

    def resume(self) -> None:
        if self.watchdog.state not in (SurfaceState.VALIDATING, SurfaceState.PLAYING):
            return
        self.watchdog.user_paused = False
        if self.watchdog.state is SurfaceState.PLAYING:
            self.engine.resume()

    def drop(self) -> None:
        self.watchdog.reset()
        self.engine.detach_listeners()

    def teardown(self) -> None:
        if self.released:
            return
        self.released = True
        self.watchdog.reset()
        self.engine.detach_listeners()
        try:
            self.engine.stop()
        except EngineError as e:
            _log(f"{self.watchdog.label}: ERROR en stop: {e}")
        try:
            if self.layer is not None:
                self.layer.detach()
        except RuntimeError as e:
            # Qt lanza RuntimeError si el objeto C++ ya fue destruido.
            _log(f"{self.watchdog.label}: ERROR soltando ventana: {e}")
        try:
            self.engine.release()
        except EngineError as e:
            _log(f"{self.watchdog.label}: ERROR en release: {e}")
        self.layer = None
