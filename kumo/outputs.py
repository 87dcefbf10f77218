import re
import time
import shutil
import hashlib
import subprocess

from kumo.log import _log
from kumo.models import Output

_MONITOR_CACHE = {"data": [], "timestamp": 0.0, "min_interval": 5.0}

_GEOM_RE = re.compile(r"(?P<w>\d+)/(?:\d+)x(?P<h>\d+)/(?:\d+)\+(?P<x>-?\d+)\+(?P<y>-?\d+)")


def parse_xrandr_monitors(text: str) -> list[dict]:
    """Parsea la salida de `xrandr --listmonitors`.

    Ejemplo de línea: ` 0: +*eDP-1 1920/344x1080/193+0+0  eDP-1`
    """
    monitors: list[dict] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.lower().startswith("monitors:"):
            continue
        parts = line.split()
        if len(parts) < 3 or not parts[0].endswith(":"):
            continue
        m = None
        for p in parts:
            m = _GEOM_RE.match(p)
            if m:
                break
        if not m:
            continue
        monitors.append(
            {
                "name": parts[-1],
                "x": int(m.group("x")),
                "y": int(m.group("y")),
                "w": int(m.group("w")),
                "h": int(m.group("h")),
            }
        )
    return monitors


def _xrandr_monitors(force_refresh: bool = False) -> list[dict]:
    now = time.time()

    if not force_refresh and (now - _MONITOR_CACHE["timestamp"]) < _MONITOR_CACHE["min_interval"]:
        return _MONITOR_CACHE["data"]

    if not shutil.which("xrandr"):
        return []
    try:
        out = subprocess.check_output(
            ["xrandr", "--listmonitors"],
            text=True,
            stderr=subprocess.STDOUT,
            timeout=2,
        )
    except Exception as e:
        _log(f"Error ejecutando xrandr: {e}")
        return _MONITOR_CACHE["data"]

    monitors = parse_xrandr_monitors(out)
    _MONITOR_CACHE["data"] = monitors
    _MONITOR_CACHE["timestamp"] = now
    return monitors


def _qt_screens() -> list[dict]:
    from PySide6.QtGui import QGuiApplication

    inv = []
    for s in QGuiApplication.screens():
        g = s.geometry()
        inv.append(
            {
                "name": s.name(),
                "x": int(g.x()),
                "y": int(g.y()),
                "w": int(g.width()),
                "h": int(g.height()),
            }
        )
    return inv


def current_outputs(force_refresh: bool = False) -> list[Output]:
    """Inventario de salidas: xrandr (sirve también en XWayland) y, si no hay, Qt."""
    raw = _xrandr_monitors(force_refresh=force_refresh) or _qt_screens()
    valid = [m for m in raw if m["w"] > 0 and m["h"] > 0]
    return [
        Output(name=m["name"], index=i, x=m["x"], y=m["y"], w=m["w"], h=m["h"])
        for i, m in enumerate(valid)
    ]


def layout_hash(outputs: list[Output]) -> str:
    layout_str = "|".join(o.layout_key for o in sorted(outputs, key=lambda o: o.index))
    return hashlib.md5(layout_str.encode()).hexdigest()
