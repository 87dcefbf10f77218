import shutil
import subprocess
from typing import Callable

from PySide6.QtCore import Qt, QTimer, QEvent
from PySide6.QtWidgets import QWidget

from kumo.log import _log
from kumo.models import Output

DESKTOP_WINDOW_PROPS = (
    ("_NET_WM_WINDOW_TYPE", "_NET_WM_WINDOW_TYPE_DESKTOP"),
    ("_NET_WM_STATE", "_NET_WM_STATE_SKIP_TASKBAR,_NET_WM_STATE_SKIP_PAGER,_NET_WM_STATE_BELOW,_NET_WM_STATE_STICKY"),
)


class WallpaperWindow(QWidget):
    """Ventana sin bordes, al fondo del escritorio, del tamaño de una salida."""

    def __init__(self, output: Output):
        super().__init__()
        self.output = output
        self.on_resized: Callable[[int, int], None] | None = None
        self._lower_timer: QTimer | None = None
        self._setup_window()

    def _setup_window(self):
        try:
            base_type = Qt.WindowType.Desktop
        except Exception:
            base_type = Qt.WindowType.Tool

        flags = (
            base_type
            | Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowDoesNotAcceptFocus
            | Qt.WindowType.Tool
            | Qt.WindowType.WindowTransparentForInput
            | Qt.WindowType.WindowStaysOnBottomHint
        )
        self.setWindowFlags(flags)
        self.setWindowTitle(f"KumoWallpaper_{self.output.index}")
        self.setWindowModality(Qt.WindowModality.NonModal)
        self.setFocusPolicy(Qt.FocusPolicy.NoFocus)

        self.setAttribute(Qt.WidgetAttribute.WA_NativeWindow, True)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating, True)
        self.setAttribute(Qt.WidgetAttribute.WA_NoSystemBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_X11DoNotAcceptFocus, True)
        self.setAttribute(Qt.WidgetAttribute.WA_DontCreateNativeAncestors, True)
        self.setAttribute(Qt.WidgetAttribute.WA_X11NetWmWindowTypeDesktop, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, False)
        self.setStyleSheet("background-color: black;")

        o = self.output
        self.setGeometry(o.x, o.y, o.w, o.h)
        self.setFixedSize(o.w, o.h)
        self.move(o.x, o.y)
        _log(f"Configurando geometría para pantalla {o.index} '{o.name}': {o.x},{o.y} {o.w}x{o.h}")

        self._mark_as_desktop()
        self.show()
        self.lower()

        # Algunos compositores re-apilan la ventana al mostrarla.
        self._lower_timer = QTimer(self)
        self._lower_timer.timeout.connect(self._keep_lowered)
        self._lower_timer.start(500)

    def _keep_lowered(self):
        if self.isVisible():
            self.lower()

    def xid(self) -> int:
        return int(self.winId())

    def _mark_as_desktop(self):
        """Marca la ventana como fondo de escritorio para el window manager."""
        if not shutil.which("xprop"):
            _log("ADVERTENCIA: falta 'xprop'; el WM podría tratar la ventana como una ventana común")
            return
        wid = str(self.xid())
        for prop, value in DESKTOP_WINDOW_PROPS:
            cmd = ["xprop", "-id", wid, "-f", prop, "32a", "-set", prop, value]
            try:
                res = subprocess.run(cmd, capture_output=True, text=True, timeout=2)
            except (OSError, subprocess.SubprocessError) as e:
                _log(f"xprop {prop} falló en ventana {wid}: {e}")
                return
            if res.returncode != 0:
                _log(f"xprop {prop} devolvió {res.returncode}: {res.stderr.strip()}")

    def resizeEvent(self, event):
        super().resizeEvent(event)
        if self.on_resized is not None:
            self.on_resized(self.width(), self.height())

    def changeEvent(self, event):
        if event.type() == QEvent.Type.WindowStateChange:
            if self.windowState() & Qt.WindowState.WindowMinimized:
                QTimer.singleShot(0, self.show)
                QTimer.singleShot(10, self.lower)
        super().changeEvent(event)

    def detach(self):
        if self._lower_timer is not None:
            self._lower_timer.stop()
            self._lower_timer = None
        self.on_resized = None
        self.hide()
        self.close()
        self.deleteLater()
