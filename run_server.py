"""Run the StudyHub API and live socket endpoint under Uvicorn."""
from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(level=os.getenv("STUDYHUB_LOG_LEVEL", "INFO").upper())
    port = int(os.getenv("STUDYHUB_PORT", "8000"))
    reload = os.getenv("UVICORN_RELOAD", "false").lower() == "true"
    uvicorn.run("studyhub.main:app", host="0.0.0.0", port=port, reload=reload)


if __name__ == "__main__":
    main()
