"""
Fixtures compartidos.

Ningún test necesita libVLC ni un display: el motor, las ventanas, el
catálogo y las salidas son dobles de `tests.doubles`, y el tiempo avanza
solo con `scheduler.advance(ms)`.
"""

import gc

import pytest
from PySide6.QtCore import QCoreApplication

import kumo.log
from kumo.config import Settings
from kumo.coordinator import SessionCoordinator

from tests.doubles import FakeCatalog, FakeEngine, FakeLayer, FakeOutputs, SteppedScheduler, stream_asset


@pytest.fixture(scope="session")
def qapp():
    """QCoreApplication compartida: los QObject con señales la necesitan."""
    existing = QCoreApplication.instance()
    app = existing or QCoreApplication([])
    yield app
    if existing is None:
        # Liberarla antes de la finalización del intérprete, no durante.
        gc.collect()
        app.shutdown()
        del app
        gc.collect()


@pytest.fixture(autouse=True)
def isolated_log(tmp_path, monkeypatch):
    """Cada test escribe su log en un directorio temporal, no en /dev/shm."""
    log_file = tmp_path / "kumo_wall.log"
    monkeypatch.setattr(kumo.log, "LOG_FILE", log_file)
    return log_file


@pytest.fixture
def settings(tmp_path):
    return Settings(asset_dir=str(tmp_path / "videos"), manifest_dir=str(tmp_path / "manifest"))


@pytest.fixture
def scheduler():
    return SteppedScheduler()


@pytest.fixture
def assets():
    return [stream_asset("alpha"), stream_asset("bravo"), stream_asset("charlie")]


@pytest.fixture
def catalog(assets):
    return FakeCatalog(assets)


@pytest.fixture
def outputs():
    return FakeOutputs(count=2)


class CoordinatorHarness:
    """Coordinador real sobre dobles, con acceso a los motores creados."""

    def __init__(self, catalog, outputs, scheduler, settings):
        self.catalog = catalog
        self.outputs = outputs
        self.scheduler = scheduler
        self.settings = settings
        self.engines: list[FakeEngine] = []
        self.layers: list[FakeLayer] = []
        self.engine_template = {"auto_probe": True}
        # Compartido por todos los motores, presentes y futuros.
        self.broken: set[str] = set()
        self.fail_attach_for: set[int] = set()
        self.failures: list[str] = []
        self.changes = 0
        self.coordinator = SessionCoordinator(catalog, outputs, self._engine_factory, scheduler, settings)
        self.coordinator.playbackFailed.connect(self.failures.append)
        self.coordinator.sessionChanged.connect(self._count_change)

    def _count_change(self):
        self.changes += 1

    def _engine_factory(self, output):
        engine = FakeEngine(**self.engine_template)
        engine.broken = self.broken
        if output.index in self.fail_attach_for:
            engine.fail_on.add("attach")
        layer = FakeLayer(output)
        self.engines.append(engine)
        self.layers.append(layer)
        return engine, layer

    @property
    def session(self):
        return self.coordinator.session

    def live_engines(self) -> list[FakeEngine]:
        return [s.engine for s in self.session.surfaces]


@pytest.fixture
def harness(qapp, catalog, outputs, scheduler, settings):
    return CoordinatorHarness(catalog, outputs, scheduler, settings)


@pytest.fixture
def started(harness):
    """Coordinador arrancado: pantallas creadas y reproduciendo."""
    harness.coordinator.start()
    return harness
