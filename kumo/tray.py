import os

from PySide6.QtGui import QAction, QIcon
from PySide6.QtWidgets import QApplication, QMenu, QStyle, QSystemTrayIcon

from kumo.models import SessionState

MENU_STYLE = (
    "QMenu { background-color: #252525; color: white; border: 1px solid #444; } "
    "QMenu::item { padding: 5px 20px; } "
    "QMenu::item:selected { background-color: #3d5afe; }"
)


def _icon_path() -> str:
    base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(base, "icons", "kumo.png")


class TrayMenu:
    """Icono de bandeja; el menú se reconstruye en cada cambio de sesión."""

    def __init__(self, coordinator, on_quit):
        self._coordinator = coordinator
        self._on_quit = on_quit
        self.tray_icon = QSystemTrayIcon()

        icon_path = _icon_path()
        if os.path.exists(icon_path):
            self.tray_icon.setIcon(QIcon(icon_path))
        else:
            self.tray_icon.setIcon(QApplication.style().standardIcon(QStyle.StandardPixmap.SP_ComputerIcon))
        self.tray_icon.setToolTip("Kumo")

        self._menu: QMenu | None = None
        coordinator.sessionChanged.connect(self.rebuild)
        coordinator.playbackFailed.connect(self._on_playback_failed)
        self.rebuild()
        self.tray_icon.show()

    def _status_text(self) -> str | None:
        coord = self._coordinator
        if not coord.catalog.list_assets():
            return "No hay videos disponibles"
        if coord.session.state is SessionState.PAUSED:
            return "En pausa: cambiando pantallas..."
        if not coord.session.surfaces:
            return "Sin pantallas"
        return None

    def rebuild(self):
        coord = self._coordinator
        menu = QMenu()
        menu.setStyleSheet(MENU_STYLE)

        status = self._status_text()
        if status:
            act_status = QAction(status, menu)
            act_status.setEnabled(False)
            menu.addAction(act_status)
            menu.addSeparator()

        act_toggle = QAction("Pausar" if coord.is_playing() else "Reproducir", menu)
        act_toggle.setEnabled(coord.is_ready())
        act_toggle.triggered.connect(coord.toggle_play_pause)
        menu.addAction(act_toggle)

        current = coord.currently_playing_asset()
        if current is not None:
            act_current = QAction(f"Reproduciendo: {current.short_name}", menu)
            act_current.setEnabled(False)
            menu.addAction(act_current)

        menu.addSeparator()
        menu.addMenu(self._build_select_menu(menu))

        act_random = QAction("Siguiente al azar", menu)
        act_random.triggered.connect(coord.play_random)
        menu.addAction(act_random)

        menu.addSeparator()

        act_quit = QAction("Salir", menu)
        act_quit.triggered.connect(self._on_quit)
        menu.addAction(act_quit)

        self.tray_icon.setContextMenu(menu)
        # El menú anterior debe vivir hasta que Qt suelte la referencia.
        if self._menu is not None:
            self._menu.deleteLater()
        self._menu = menu

    def _build_select_menu(self, parent: QMenu) -> QMenu:
        coord = self._coordinator
        catalog = coord.catalog
        submenu = QMenu("Elegir video", parent)
        submenu.setStyleSheet(MENU_STYLE)

        assets = catalog.list_assets()
        if not assets:
            submenu.setEnabled(False)
            return submenu

        current = coord.currently_playing_asset()
        categories = [c for c in catalog.categories() if catalog.assets_in_category(c.id)]
        if categories:
            for cat in categories:
                cat_menu = submenu.addMenu(cat.name)
                for asset in catalog.assets_in_category(cat.id):
                    self._add_asset_action(cat_menu, asset, current)
        else:
            for asset in assets:
                self._add_asset_action(submenu, asset, current)
        return submenu

    def _add_asset_action(self, menu: QMenu, asset, current):
        act = QAction(asset.short_name, menu)
        act.setCheckable(True)
        act.setChecked(current is not None and current.asset_id == asset.asset_id)
        act.triggered.connect(lambda _checked=False, a=asset: self._coordinator.select_and_play(a))
        menu.addAction(act)

    def _on_playback_failed(self, message: str):
        self.tray_icon.showMessage("Kumo", f"No se pudo reproducir {message}", QSystemTrayIcon.MessageIcon.Warning, 4000)

    def hide(self):
        self.tray_icon.hide()
