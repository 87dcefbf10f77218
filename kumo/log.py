import os
from datetime import datetime
from pathlib import Path

LOG_FILE = Path(os.environ.get("KUMO_LOG_FILE", "/dev/shm/kumo_wall.log"))


def _log(msg: str) -> None:
    line = f"[{datetime.now().strftime('%H:%M:%S')}] {msg}"
    print(line, flush=True)
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(LOG_FILE, "a", encoding="utf-8") as f:
            f.write(line)
            f.write("\n")
    except Exception:
        pass
