#!/usr/bin/env python3
import os
import sys
import traceback

import setproctitle

setproctitle.setproctitle("kumo")
os.environ.setdefault("QT_DESKTOP_FILE_NAME", "kumo")


def run():
    from kumo.app import main

    try:
        return main(sys.argv[1:])
    except Exception:
        try:
            with open("/tmp/kumo_startup_error.log", "a", encoding="utf-8") as f:
                f.write(traceback.format_exc())
                f.write("\n")
        finally:
            raise


if __name__ == "__main__":
    raise SystemExit(run())
