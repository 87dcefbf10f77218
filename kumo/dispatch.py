from typing import Callable

from PySide6.QtCore import QObject, Qt, Signal

from kumo.log import _log


class ControlThreadDispatcher(QObject):
    """Reenvía callbacks de hilos de libVLC al hilo de control.

    La señal se conecta con QueuedConnection: `post()` es seguro desde
    cualquier hilo y la función se ejecuta en el hilo dueño de este objeto.
    """

    _invoke = Signal(object)

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def post(self, fn: Callable[[], None]) -> None:
        self._invoke.emit(fn)

    def _run(self, fn) -> None:
        try:
            fn()
        except Exception as e:
            _log(f"ERROR en callback del hilo de control: {type(e).__name__}: {e}")
