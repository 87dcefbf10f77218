from typing import Callable

from kumo.log import _log
from kumo.models import Asset
from kumo.resume import ResumePolicy
from kumo.scheduler import SingleSlotTimer
from kumo.session import Session


class CommandDispatcher:
    """Reparte play/pause/resume/select a todas las pantallas.

    Cada fan-out de play abre un "episodio". Un fallo de reproducción se
    atiende una sola vez por episodio: se emite `on_playback_failed` y, en
    un turno posterior del hilo de control, se prueba otro asset al azar.
    Tras `max_consecutive_failures` fallos seguidos se sigue reintentando,
    con esperas cada vez más largas.
    """

    def __init__(
        self,
        session: Session,
        policy: ResumePolicy,
        catalog,
        scheduler,
        settings,
        on_playback_failed: Callable[[Asset | None, str], None] | None = None,
        on_changed: Callable[[], None] | None = None,
    ):
        self.session = session
        self.policy = policy
        self.catalog = catalog
        self.settings = settings
        self._on_playback_failed = on_playback_failed
        self._on_changed = on_changed
        self._retry = SingleSlotTimer(scheduler)

        self.episode = 0
        self._handled_failure_episode: int | None = None
        self.consecutive_failures = 0

    def _changed(self) -> None:
        if self._on_changed is not None:
            self._on_changed()

    def play(self, asset: Asset) -> bool:
        # Único punto de control para operaciones de video.
        if not self.session.can_execute:
            _log(f"Sesión no lista, encolando: {asset.short_name}")
            self.session.pending_asset = asset
            self.session.current_asset = asset
            self.catalog.record_played(asset)
            self._changed()
            return False
        self._fan_out(asset)
        return True

    def select_and_play(self, asset: Asset) -> bool:
        return self.play(asset)

    def play_random(self) -> bool:
        asset = self.policy.fallback(exclude=self.session.current_asset)
        if asset is None:
            _log("No hay videos para reproducir")
            return False
        return self.play(asset)

    def pause(self) -> bool:
        if not self.session.can_execute:
            _log("No se puede pausar: sesión no lista o sin pantallas")
            return False
        for surface in self.session.surfaces:
            surface.pause()
        self._changed()
        return True

    def resume(self) -> bool:
        if not self.session.can_execute:
            _log("No se puede reanudar: sesión no lista o sin pantallas")
            return False
        for surface in self.session.surfaces:
            surface.resume()
        self._changed()
        return True

    def toggle_play_pause(self) -> bool:
        if not self.session.can_execute:
            _log("No se puede alternar play/pausa: sesión no lista o sin pantallas")
            return False
        if any(s.is_playing for s in self.session.surfaces):
            return self.pause()
        return self.resume()

    def _fan_out(self, asset: Asset) -> None:
        self._retry.cancel()
        self.episode += 1
        _log(f"Reproduciendo: {asset.short_name} en {len(self.session.surfaces)} pantalla(s)")
        for surface in list(self.session.surfaces):
            surface.play(asset, episode=self.episode)
        self.session.current_asset = asset
        self.catalog.record_played(asset)
        self._changed()

    def on_surface_started(self, surface, asset: Asset) -> None:
        if surface.episode == self.episode:
            self.consecutive_failures = 0
        self._changed()

    def on_surface_failed(self, surface, asset: Asset | None, reason: str) -> None:
        episode = surface.episode
        if surface not in self.session.surfaces or episode != self.episode:
            _log(f"Fallo de un episodio viejo ignorado: {reason}")
            return
        if self._handled_failure_episode == episode:
            return
        self._handled_failure_episode = episode
        self.consecutive_failures += 1

        if self._on_playback_failed is not None:
            self._on_playback_failed(asset, reason)
        self._changed()

        delay = self.retry_delay_ms()
        if self.consecutive_failures >= self.settings.max_consecutive_failures:
            _log(f"{self.consecutive_failures} fallos seguidos; próximo intento en {delay}ms")
        else:
            _log(f"Reproducción falló, probando otro video en {delay}ms")
        self._retry.arm(
            delay,
            lambda: self._retry_after_failure(episode, asset),
        )

    def retry_delay_ms(self) -> int:
        """Espera antes del próximo reintento.

        Hasta `max_consecutive_failures` se usa `failure_retry_delay_ms`; a partir
        de ahí la espera se duplica en cada fallo, con techo en `max_retry_delay_ms`.
        """
        base = max(0, self.settings.failure_retry_delay_ms)
        over = self.consecutive_failures - self.settings.max_consecutive_failures
        if over < 0:
            return base
        ceiling = max(base, self.settings.max_retry_delay_ms)
        return min(base * 2 ** min(over + 1, 16), ceiling)

    def _retry_after_failure(self, episode: int, failed: Asset | None) -> None:
        if episode != self.episode:
            return
        if not self.session.can_execute:
            # La próxima recreación reanuda con la política normal.
            return
        asset = self.policy.fallback(exclude=failed)
        if asset is None:
            _log("No hay videos alternativos disponibles")
            return
        self._fan_out(asset)

    def reset_failures(self) -> None:
        self._retry.cancel()
        self.consecutive_failures = 0

    def cancel(self) -> None:
        self._retry.cancel()
