import os
import sys
import json
import time
import fcntl
import signal
import argparse

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import QApplication

from kumo.catalog import VideoCatalog
from kumo.config import SINGLE_INSTANCE_LOCK, load_settings
from kumo.control import ControlServer, send_command
from kumo.coordinator import SessionCoordinator
from kumo.dispatch import ControlThreadDispatcher
from kumo.engine import EngineError
from kumo.log import _log
from kumo.outputs import current_outputs
from kumo.scheduler import QtScheduler
from kumo.system_events import DisplayMonitor, PowerMonitor
from kumo.vlc_engine import VlcEngine, create_vlc_instance
from kumo.window import WallpaperWindow


def _configure_qt_platform() -> None:
    # La ventana de fondo necesita un XID, así que en Wayland se usa XWayland.
    session_type = os.environ.get("XDG_SESSION_TYPE", "x11").lower()
    force_xcb = os.environ.get("KUMO_FORCE_XCB", "1").strip().lower() in {"1", "true", "yes", "on"}
    if session_type == "wayland" and force_xcb and "QT_QPA_PLATFORM" not in os.environ:
        os.environ["QT_QPA_PLATFORM"] = "xcb"
    else:
        os.environ.setdefault("QT_QPA_PLATFORM", "wayland" if session_type == "wayland" else "xcb")


class WallpaperService(QApplication):
    def __init__(self, argv, show_tray: bool = True):
        super().__init__(argv)
        self.setApplicationName("KumoWallpaperService")
        self.setQuitOnLastWindowClosed(False)

        self.settings = load_settings()
        self.catalog = VideoCatalog(self.settings)
        self.scheduler = QtScheduler(self)
        self.dispatcher = ControlThreadDispatcher(self)

        try:
            self.vlc_instance = create_vlc_instance()
        except EngineError as e:
            self.vlc_instance = None
            _log(f"ERROR inicializando instancia VLC global: {e}")

        self.coordinator = SessionCoordinator(
            self.catalog,
            lambda: current_outputs(force_refresh=True),
            self._create_engine,
            self.scheduler,
            self.settings,
            parent=self,
        )
        self.display_monitor = DisplayMonitor(self, self.coordinator, self.settings, parent=self)
        self.power_monitor = PowerMonitor(self.coordinator, parent=self)
        self.control = ControlServer(self.coordinator, on_quit=self.quit, parent=self)

        self.tray = None
        if show_tray:
            from kumo.tray import TrayMenu
            self.tray = TrayMenu(self.coordinator, on_quit=self.quit)

        self.aboutToQuit.connect(self._shutdown)

        # Permite que el intérprete atienda SIGTERM mientras corre el loop de Qt.
        self._signal_timer = QTimer(self)
        self._signal_timer.timeout.connect(lambda: None)
        self._signal_timer.start(500)

    def _create_engine(self, output):
        if self.vlc_instance is None:
            raise EngineError("libVLC no está disponible")
        window = WallpaperWindow(output)
        try:
            engine = VlcEngine(
                self.vlc_instance,
                self.dispatcher.post,
                volume=self.settings.volume,
                probe_timeout_ms=self.settings.probe_timeout_ms,
            )
        except EngineError:
            window.detach()
            raise
        return engine, window

    def start(self, initial: dict | None = None):
        self.coordinator.start()
        if initial:
            reply = self.control.process_command(initial)
            _log(f"Comando inicial {initial.get('action')}: ok={reply.get('ok')}")

    def _shutdown(self):
        _log("Cerrando servicio...")
        self.display_monitor.stop()
        if self.tray is not None:
            self.tray.hide()
        self.coordinator.shutdown()
        if self.vlc_instance is not None:
            self.vlc_instance.release()
            self.vlc_instance = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kumo", description="Fondo de pantalla de video en todas las pantallas")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--play", metavar="ASSET_ID", help="Reproducir un video del catálogo")
    group.add_argument("--random", action="store_true", help="Reproducir un video al azar")
    group.add_argument("--pause", action="store_true", help="Pausar la reproducción")
    group.add_argument("--resume", action="store_true", help="Reanudar la reproducción")
    group.add_argument("--toggle", action="store_true", help="Alternar pausa/reproducción")
    group.add_argument("--status", action="store_true", help="Mostrar el estado del servicio")
    group.add_argument("--quit", action="store_true", help="Detener el servicio")
    parser.add_argument("--delay", type=int, default=0, help="Segundos de espera antes de iniciar")
    parser.add_argument("--no-tray", action="store_true", help="No mostrar el icono de bandeja")
    return parser


def command_from_args(args) -> dict | None:
    if args.play:
        return {"action": "play", "asset_id": args.play}
    for action in ("random", "pause", "resume", "toggle", "status", "quit"):
        if getattr(args, action):
            return {"action": action}
    return None


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    command = command_from_args(args)

    reply = send_command(command or {"action": "status"})
    if reply is not None:
        if command is None:
            _log("El servicio ya está en ejecución.")
        else:
            print(json.dumps(reply, ensure_ascii=False, indent=2))
        return 0 if reply.get("ok", False) else 1

    if command is not None and command["action"] in ("status", "quit", "pause", "resume", "toggle"):
        _log("No hay servicio corriendo.")
        return 1

    if args.delay:
        time.sleep(args.delay)

    try:
        os.nice(19)
    except OSError:
        pass

    lock_file = open(SINGLE_INSTANCE_LOCK, "w")
    try:
        fcntl.flock(lock_file, fcntl.LOCK_EX)

        # Otra instancia pudo arrancar mientras esperábamos el lock.
        reply = send_command(command or {"action": "status"})
        if reply is not None:
            return 0 if reply.get("ok", False) else 1

        _configure_qt_platform()
        _log("Iniciando servicio de wallpapers...")
        qt_argv = [sys.argv[0]] + (argv if argv is not None else sys.argv[1:])
        app = WallpaperService(qt_argv, show_tray=not args.no_tray)

        def handle_term(*_):
            app.quit()

        signal.signal(signal.SIGTERM, handle_term)
        signal.signal(signal.SIGINT, handle_term)

        QTimer.singleShot(0, lambda: app.start(command))
        return app.exec()
    finally:
        fcntl.flock(lock_file, fcntl.LOCK_UN)
        lock_file.close()
