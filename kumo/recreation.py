from typing import Callable

from kumo.log import _log
from kumo.models import Output
from kumo.session import Session, SessionStateMachine


class SurfaceRecreationPipeline:
    """Destruye y reconstruye una Surface por salida.

    El teardown se divide en dos: `emergency_teardown()` mientras la topología
    cambia (solo suelta referencias) y el teardown ordenado dentro de
    `recreate_surfaces()`, que corre recién cuando venció el debounce.
    """

    def __init__(
        self,
        session: Session,
        machine: SessionStateMachine,
        outputs_provider: Callable[[], list[Output]],
        surface_factory: Callable[[Output], object],
        settings,
        on_recreated: Callable[[], None],
    ):
        self.session = session
        self.machine = machine
        self._outputs_provider = outputs_provider
        self._surface_factory = surface_factory
        self.settings = settings
        self._on_recreated = on_recreated
        self.recreation_count = 0

    def emergency_teardown(self, reason: str) -> bool:
        if not self.machine.pause(reason):
            return False
        dropped = self.session.surfaces
        self.session.surfaces = []
        for surface in dropped:
            surface.drop()
        self.session.retired.extend(dropped)
        _log(f"Teardown de emergencia: {len(dropped)} pantalla(s) soltadas")
        return True

    def schedule_recreation(self, delay_ms: int | None = None) -> None:
        delay = self.settings.recreation_debounce_ms if delay_ms is None else int(delay_ms)
        if self.session.recreation.pending:
            _log(f"Recreación reprogramada en {delay}ms")
        else:
            _log(f"Recreación programada en {delay}ms")
        self.session.recreation.arm(delay, self.recreate_surfaces)

    def recreate_surfaces(self) -> None:
        self.session.recreation.cancel()
        self.machine.mark_ready()
        self._graceful_teardown()

        outputs = self._outputs_provider()
        _log(f"Recreando pantallas para {len(outputs)} salida(s)")
        surfaces = []
        for output in outputs:
            try:
                surfaces.append(self._surface_factory(output))
            except (RuntimeError, OSError) as e:
                _log(f"ERROR creando pantalla {output.index} ({output.name}): {e}")
        self.session.surfaces = surfaces
        self.recreation_count += 1
        _log(f"Recreación completa: {len(surfaces)} pantalla(s)")

        self._on_recreated()

    def _graceful_teardown(self) -> None:
        residual = self.session.retired + self.session.surfaces
        self.session.retired = []
        self.session.surfaces = []
        for surface in residual:
            surface.teardown()
        if residual:
            _log(f"Teardown ordenado: {len(residual)} pantalla(s) liberadas")

    def shutdown(self) -> None:
        self.session.recreation.cancel()
        self._graceful_teardown()
