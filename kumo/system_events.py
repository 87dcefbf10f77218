"""Fuentes de notificaciones del sistema: topología de pantallas y energía.

Ambas traducen eventos de Qt / D-Bus a llamadas del coordinador en el hilo
de control. Ninguna toca pantallas ni motores directamente.
"""
from typing import Callable

from PySide6.QtCore import QObject, QTimer, Slot, SLOT
from PySide6.QtDBus import QDBusConnection

from kumo.log import _log
from kumo.models import Output
from kumo.outputs import current_outputs, layout_hash

SCREENSAVER_SERVICES = [
    ("org.freedesktop.ScreenSaver", "/org/freedesktop/ScreenSaver", "org.freedesktop.ScreenSaver"),
    ("org.gnome.ScreenSaver", "/org/gnome/ScreenSaver", "org.gnome.ScreenSaver"),
]


class DisplayMonitor(QObject):
    """Detecta pantallas agregadas, quitadas o reconfiguradas.

    Además de las señales de Qt se compara periódicamente un hash del layout
    de xrandr, porque en XWayland Qt a veces no informa los cambios. El primer
    sondeo sin cambios después de un aviso cuenta como confirmación de que la
    topología ya es estable.
    """

    def __init__(
        self,
        app,
        coordinator,
        settings,
        outputs_provider: Callable[..., list[Output]] = current_outputs,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._coordinator = coordinator
        self._outputs_provider = outputs_provider
        self._layout_hash = layout_hash(outputs_provider(force_refresh=True))
        self._settle_pending = False

        app.screenAdded.connect(self._on_screen_added)
        app.screenRemoved.connect(self._on_screen_removed)
        app.primaryScreenChanged.connect(self._on_primary_changed)
        for screen in app.screens():
            self._watch(screen)

        self._poll_timer = QTimer(self)
        self._poll_timer.timeout.connect(self._check_layout_changes)
        self._poll_timer.start(settings.layout_poll_interval_ms)

    def _watch(self, screen) -> None:
        screen.geometryChanged.connect(self._on_geometry_changed)

    def _changing(self, reason: str) -> None:
        # Primero el teardown de emergencia; xrandr puede tardar.
        self._coordinator.on_topology_changing(reason)
        self._layout_hash = layout_hash(self._outputs_provider(force_refresh=True))
        self._settle_pending = True

    def _on_screen_added(self, screen) -> None:
        _log(f"Pantalla conectada: {screen.name()}")
        self._watch(screen)
        self._changing(f"pantalla conectada {screen.name()}")

    def _on_screen_removed(self, screen) -> None:
        _log(f"Pantalla desconectada: {screen.name()}")
        self._changing(f"pantalla desconectada {screen.name()}")

    def _on_primary_changed(self, screen) -> None:
        self._changing("cambió la pantalla primaria")

    def _on_geometry_changed(self, geo) -> None:
        self._changing(f"geometría cambió: {geo.width()}x{geo.height()}")

    def _check_layout_changes(self) -> None:
        current = layout_hash(self._outputs_provider(force_refresh=True))
        if current == self._layout_hash:
            # Primer sondeo sin cambios tras un aviso: el layout se asentó.
            if self._settle_pending:
                self._settle_pending = False
                self._coordinator.on_topology_settled("layout de xrandr sin cambios")
            return
        _log(f"Layout de monitores cambió: {self._layout_hash[:8]} -> {current[:8]}")
        self._layout_hash = current
        self._settle_pending = True
        self._coordinator.on_topology_changing("layout de xrandr cambió")

    def stop(self) -> None:
        self._poll_timer.stop()


class PowerMonitor(QObject):
    """Suspensión/reanudación (logind) y apagado de pantallas (screensaver)."""

    def __init__(self, coordinator, parent: QObject | None = None):
        super().__init__(parent)
        self._coordinator = coordinator

        system_bus = QDBusConnection.systemBus()
        ok = system_bus.isConnected() and system_bus.connect(
            "org.freedesktop.login1",
            "/org/freedesktop/login1",
            "org.freedesktop.login1.Manager",
            "PrepareForSleep",
            self,
            SLOT("_on_prepare_for_sleep(bool)"),
        )
        if not ok:
            _log("ADVERTENCIA: no se pudo escuchar PrepareForSleep en logind")

        session_bus = QDBusConnection.sessionBus()
        for service, path, interface in SCREENSAVER_SERVICES:
            if session_bus.isConnected() and session_bus.connect(
                service, path, interface, "ActiveChanged", self, SLOT("_on_screensaver_active(bool)")
            ):
                _log(f"Escuchando ActiveChanged de {service}")

    @Slot(bool)
    def _on_prepare_for_sleep(self, going_down: bool) -> None:
        self._coordinator.on_power_event("suspensión" if going_down else "reanudación")

    @Slot(bool)
    def _on_screensaver_active(self, active: bool) -> None:
        self._coordinator.on_power_event("pantallas apagadas" if active else "pantallas encendidas")
