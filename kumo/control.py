import json

from PySide6.QtCore import QObject
from PySide6.QtNetwork import QLocalServer, QLocalSocket

from kumo.config import SERVER_NAME
from kumo.log import _log


class ControlServer(QObject):
    """Canal de comandos local: un objeto JSON por conexión, respuesta JSON.

    Acciones: play/select (asset_id), random, pause, resume, toggle, status, quit.
    """

    def __init__(self, coordinator, on_quit=None, name: str = SERVER_NAME, parent: QObject | None = None):
        super().__init__(parent)
        self._coordinator = coordinator
        self._on_quit = on_quit
        self.server = QLocalServer(self)
        QLocalServer.removeServer(name)

        if self.server.listen(name):
            _log(f"Servidor iniciado en socket: {name}")
            self.server.newConnection.connect(self._handle_new_connection)
        else:
            _log(f"Error iniciando servidor: {self.server.errorString()}")

    def _handle_new_connection(self):
        socket = self.server.nextPendingConnection()
        if socket is None:
            return
        socket.readyRead.connect(lambda: self._read_client_message(socket))
        socket.disconnected.connect(socket.deleteLater)

    def _read_client_message(self, socket):
        try:
            data = socket.readAll().data()
            message = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            _log(f"Error leyendo mensaje: {e}")
            reply = {"ok": False, "error": "mensaje inválido"}
        else:
            _log(f"Mensaje recibido: {message}")
            reply = self.process_command(message)
        socket.write(json.dumps(reply).encode("utf-8"))
        socket.flush()

    def process_command(self, cmd) -> dict:
        if not isinstance(cmd, dict):
            return {"ok": False, "error": "se esperaba un objeto JSON"}

        coord = self._coordinator
        action = cmd.get("action")
        ok = True

        if action in ("play", "select"):
            asset_id = str(cmd.get("asset_id") or "")
            asset = coord.catalog.find(asset_id) if asset_id else None
            if asset is None:
                return {"ok": False, "error": f"asset desconocido: {asset_id}"}
            # Un play encolado (sesión en PAUSED) no es un error para el cliente.
            if action == "select":
                coord.select_and_play(asset)
            else:
                coord.play(asset)
        elif action == "random":
            ok = coord.play_random()
        elif action == "pause":
            ok = coord.pause()
        elif action == "resume":
            ok = coord.resume()
        elif action == "toggle":
            ok = coord.toggle_play_pause()
        elif action == "status":
            pass
        elif action == "quit":
            if self._on_quit is not None:
                self._on_quit()
        else:
            return {"ok": False, "error": f"acción desconocida: {action}"}

        return {"ok": bool(ok), **coord.status()}


def send_command(msg: dict, name: str = SERVER_NAME, timeout_ms: int = 1000) -> dict | None:
    """Envía un comando al servicio en ejecución. None si no hay servicio."""
    socket = QLocalSocket()
    socket.connectToServer(name)
    if not socket.waitForConnected(timeout_ms):
        return None

    socket.write(json.dumps(msg).encode("utf-8"))
    socket.flush()
    socket.waitForBytesWritten(timeout_ms)

    reply = None
    if socket.waitForReadyRead(timeout_ms):
        try:
            reply = json.loads(socket.readAll().data().decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            _log(f"Respuesta inválida del servicio: {e}")
            reply = {}
    socket.disconnectFromServer()
    return reply if reply is not None else {}
