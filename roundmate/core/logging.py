from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .constants import APP_NAME

def setup_logging(log_dir: Path, level: int = logging.INFO) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    logfile = log_dir / f"{APP_NAME.lower()}.log"

    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    root = logging.getLogger()
    root.setLevel(level)

    # Appel répété : on remplace nos handlers au lieu de les empiler
    for handler in list(root.handlers):
        if getattr(handler, "_roundmate", False):
            root.removeHandler(handler)
            handler.close()

    # Console
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(fmt, datefmt))

    # Fichier tournant
    fh = RotatingFileHandler(logfile, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(fmt, datefmt))

    for handler in (ch, fh):
        handler._roundmate = True
        root.addHandler(handler)
    return logfile
