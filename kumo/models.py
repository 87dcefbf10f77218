"""Tipos de valor compartidos por el coordinador de sesión."""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse


class SessionState(Enum):
    READY = "ready"      # Se pueden ejecutar operaciones de reproducción
    PAUSED = "paused"    # Topología cambiando o sistema inestable


class SurfaceState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PLAYING = "playing"
    FAILED = "failed"


@dataclass(frozen=True)
class Asset:
    """Un video reproducible. Inmutable: lo produce el catálogo."""

    locator: str
    name: str
    is_streaming: bool = False
    preview_locator: str | None = None
    categories: tuple[str, ...] = field(default_factory=tuple)
    asset_id: str = ""

    @property
    def path(self) -> str:
        """Ruta local del asset (vacía si es streaming)."""
        if self.is_streaming:
            return ""
        parsed = urlparse(self.locator)
        if parsed.scheme == "file":
            return parsed.path
        return self.locator

    @property
    def short_name(self) -> str:
        if self.is_streaming:
            return self.name
        return self.name or Path(self.locator).name


@dataclass(frozen=True)
class Output:
    name: str
    index: int
    x: int
    y: int
    w: int
    h: int

    @property
    def layout_key(self) -> str:
        return f"{self.name}:{self.x},{self.y},{self.w}x{self.h}"


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True)
class ProbeResult:
    """Resultado asíncrono de cargar los metadatos de un asset."""

    playable: bool
    duration_ms: float | None = None
    error: str | None = None
