"""Coordinador de sesión: une máquina de estados, recreación, política de
resume y dispatcher de comandos, y expone la API para el menú y el socket.

Todas las notificaciones externas (pantallas, energía, comandos) deben llegar
en el hilo de control.
"""
from typing import Callable

from PySide6.QtCore import QObject, Signal

from kumo.commands import CommandDispatcher
from kumo.engine import EngineError
from kumo.log import _log
from kumo.models import Asset, Output
from kumo.recreation import SurfaceRecreationPipeline
from kumo.resume import ResumePolicy
from kumo.session import Session, SessionStateMachine
from kumo.surface import Surface


class SessionCoordinator(QObject):
    playbackFailed = Signal(str)
    sessionChanged = Signal()

    def __init__(
        self,
        catalog,
        outputs_provider: Callable[[], list[Output]],
        engine_factory: Callable[[Output], tuple],
        scheduler,
        settings,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.catalog = catalog
        self.settings = settings
        self._scheduler = scheduler
        self._engine_factory = engine_factory
        self.failure_count = 0
        self._settle_confirmed = False

        self.session = Session(scheduler)
        self.machine = SessionStateMachine(self.session, on_change=lambda _state: self.sessionChanged.emit())
        self.policy = ResumePolicy(catalog)
        self.commands = CommandDispatcher(
            self.session,
            self.policy,
            catalog,
            scheduler,
            settings,
            on_playback_failed=self._on_playback_failed,
            on_changed=self.sessionChanged.emit,
        )
        self.pipeline = SurfaceRecreationPipeline(
            self.session,
            self.machine,
            outputs_provider,
            self._build_surface,
            settings,
            on_recreated=self._resume_after_recreation,
        )

    def _build_surface(self, output: Output) -> Surface:
        engine, layer = self._engine_factory(output)
        try:
            return Surface(
                output,
                engine,
                layer,
                self._scheduler,
                self.settings,
                on_failure=self.commands.on_surface_failed,
                on_started=self.commands.on_surface_started,
            )
        except EngineError:
            if layer is not None:
                layer.detach()
            engine.release()
            raise

    # Ciclo de vida

    def start(self) -> None:
        """Crea las pantallas iniciales y reanuda el último video (o uno al azar)."""
        if self.session.current_asset is None:
            self.session.current_asset = self.catalog.last_played_asset()
        self.pipeline.recreate_surfaces()

    def shutdown(self) -> None:
        self.commands.cancel()
        self.pipeline.shutdown()
        _log("Coordinador detenido")

    def _resume_after_recreation(self) -> None:
        self.commands.reset_failures()
        asset = self.policy.choose(self.session)
        if asset is not None:
            self.commands.play(asset)
        self.sessionChanged.emit()

    def _on_playback_failed(self, asset: Asset | None, reason: str) -> None:
        self.failure_count += 1
        name = asset.short_name if asset is not None else "?"
        self.playbackFailed.emit(f"{name}: {reason}")

    # Notificaciones de topología y energía

    def on_topology_changing(self, reason: str) -> None:
        self._settle_confirmed = False
        self.pipeline.emergency_teardown(reason)
        self.pipeline.schedule_recreation()

    def on_topology_settled(self, reason: str) -> None:
        # Solo la primera confirmación de cada episodio de cambios reinicia el debounce.
        if self.session.is_ready or self._settle_confirmed:
            return
        self._settle_confirmed = True
        _log(f"Topología estable ({reason})")
        self.pipeline.schedule_recreation()

    def on_power_event(self, reason: str) -> None:
        self.on_topology_changing(reason)

    # API del control-surface

    def play(self, asset: Asset) -> bool:
        return self.commands.play(asset)

    def select_and_play(self, asset: Asset) -> bool:
        return self.commands.select_and_play(asset)

    def play_random(self) -> bool:
        return self.commands.play_random()

    def pause(self) -> bool:
        return self.commands.pause()

    def resume(self) -> bool:
        return self.commands.resume()

    def toggle_play_pause(self) -> bool:
        return self.commands.toggle_play_pause()

    def currently_playing_asset(self) -> Asset | None:
        return self.session.current_asset

    def is_ready(self) -> bool:
        return self.session.can_execute

    def is_playing(self) -> bool:
        return any(s.is_playing for s in self.session.surfaces)

    def status(self) -> dict:
        current = self.session.current_asset
        return {
            "state": self.session.state.value,
            "ready": self.is_ready(),
            "playing": self.is_playing(),
            "current": current.asset_id if current is not None else None,
            "current_name": current.short_name if current is not None else None,
            "pending": self.session.pending_asset.asset_id if self.session.pending_asset is not None else None,
            "surfaces": [
                {"output": s.output.name, "index": s.output.index, "state": s.state.value}
                for s in self.session.surfaces
            ],
            "failures": self.failure_count,
        }
