import os
import json
import subprocess
from dataclasses import dataclass, fields, asdict
from pathlib import Path

from kumo.log import _log

CONFIG_PATH = Path(os.environ.get("KUMO_CONFIG", str(Path.home() / ".config" / "kumo" / "config.json")))
DATA_DIR = Path.home() / ".local" / "share" / "kumo"

SERVER_NAME = "kumo_wallpaper_service"
SINGLE_INSTANCE_LOCK = Path("/tmp/kumo.lock")

VIDEO_EXTENSIONS = {".mp4", ".mkv", ".mov", ".webm", ".avi"}


def _get_xdg_videos_dir() -> str:
    """Devuelve el directorio de vídeos del usuario según XDG.

    - Preferido: `xdg-user-dir VIDEOS`
    - Alternativa: ~/.config/user-dirs.dirs (XDG_VIDEOS_DIR)
    - Fallback: ~/Vídeos o ~/Videos
    """
    try:
        p = subprocess.run(
            ["xdg-user-dir", "VIDEOS"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            check=False,
        )
        out = (p.stdout or "").strip()
        if p.returncode == 0 and out:
            return os.path.expanduser(out)
    except Exception:
        pass

    try:
        cfg = os.path.expanduser("~/.config/user-dirs.dirs")
        if os.path.exists(cfg):
            with open(cfg, "r", encoding="utf-8", errors="ignore") as f:
                for line in f:
                    line = line.strip()
                    if line.startswith("XDG_VIDEOS_DIR="):
                        val = line.split("=", 1)[1].strip().strip('"')
                        val = val.replace("$HOME", os.path.expanduser("~"))
                        if val:
                            return os.path.expanduser(val)
    except Exception:
        pass

    home = Path.home()
    for c in (home / "Vídeos", home / "Videos"):
        if c.is_dir():
            return str(c)
    return str(home / "Videos")


@dataclass
class Settings:
    """Parámetros del coordinador. Tiempos en milisegundos."""

    recreation_debounce_ms: int = 2000
    stall_grace_ms: int = 3000
    health_check_interval_ms: int = 10000
    frozen_nudge_ms: int = 100
    min_source_bytes: int = 1_000_000
    probe_timeout_ms: int = 8000
    failure_retry_delay_ms: int = 1000
    max_consecutive_failures: int = 8
    max_retry_delay_ms: int = 60000
    layout_poll_interval_ms: int = 3000
    volume: int = 0
    asset_dir: str = ""
    manifest_dir: str = ""

    def __post_init__(self):
        if not self.asset_dir:
            self.asset_dir = os.path.join(_get_xdg_videos_dir(), "Kumo")
        if not self.manifest_dir:
            self.manifest_dir = str(DATA_DIR)
        self.volume = max(0, min(100, int(self.volume)))

    @classmethod
    def from_dict(cls, raw: dict | None, environ: dict | None = None) -> "Settings":
        """Construye settings desde el bloque `settings` del config + variables KUMO_*."""
        raw = raw if isinstance(raw, dict) else {}
        environ = os.environ if environ is None else environ

        values = {}
        for f in fields(cls):
            val = raw.get(f.name, None)
            env_val = environ.get(f"KUMO_{f.name.upper()}")
            if env_val is not None and env_val.strip():
                val = env_val.strip()
            if val is None:
                continue
            try:
                values[f.name] = int(val) if f.type in (int, "int") else str(val)
            except (TypeError, ValueError):
                _log(f"Config: valor inválido para {f.name}: {val!r}; se usa el default")
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


def _atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")
    os.replace(tmp, path)


def load_config(path: Path | None = None) -> dict:
    path = path or CONFIG_PATH
    try:
        if not path.exists():
            return {"version": 1, "settings": {}}
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            return {"version": 1, "settings": {}}
        data.setdefault("version", 1)
        if not isinstance(data.get("settings"), dict):
            data["settings"] = {}
        return data
    except Exception as e:
        _log(f"ERROR leyendo config: {e}")
        return {"version": 1, "settings": {}}


def save_config(data: dict, path: Path | None = None) -> None:
    try:
        _atomic_write_json(path or CONFIG_PATH, data)
    except Exception as e:
        _log(f"ERROR guardando config: {e}")


def load_settings(path: Path | None = None) -> Settings:
    return Settings.from_dict(load_config(path).get("settings"))
