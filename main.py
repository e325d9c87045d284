from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# Streamlit runs this file directly; popler_client lives under src/
ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from popler_client.ui.app import run_app  # type: ignore


def _configure_logging() -> None:
    level = os.getenv("POPLER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    _configure_logging()
    run_app()
