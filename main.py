#!/usr/bin/env python3
"""
VidTalk v1.0.0: main entry point.
Runs the transcription pipeline from the command line.
"""

import sys
import logging
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vidtalk.core.constants import APP_NAME, APP_VERSION, LOG_DIR

# ── Logging setup (writes to ~/.local/state/vidtalk/) ─────────────────
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "vidtalk.log"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger("vidtalk")


def main():
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.debug("Python: %s", sys.executable)

    try:
        from vidtalk.cli.commands import main as run_cli
        sys.exit(run_cli())
    except SystemExit:
        raise
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.critical("Fatal error: %s\n%s", error_msg, traceback.format_exc())
        print(f"{APP_NAME} error: {error_msg}\nCheck logs at: {LOG_FILE}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
