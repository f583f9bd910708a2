"""
main.py — CBT exam runtime server entry point
"""

import logging
import os
import sys
import traceback

# ── Package path (must come first) ───────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

# ── Logging ──────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # log file locked: console only
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


def _start_server(host: str, port: int) -> None:
    import uvicorn
    from api.app import create_app

    logger.info(f"Uvicorn server starting - {host}:{port}")
    app = create_app()
    uvicorn.run(app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    logger.info("=== CBT Exam Runtime Started ===")
    os.chdir(BASE_DIR)
    try:
        _start_server(DEFAULT_HOST, DEFAULT_PORT)
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
    except Exception:
        logger.error(f"Server error:\n{traceback.format_exc()}")
        sys.exit(1)
