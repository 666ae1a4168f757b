from __future__ import annotations
import logging
from pathlib import Path

from roundmate.core.config import load_config
from roundmate.core.logging import setup_logging
from roundmate.core.constants import APP_NAME, APP_VERSION
from roundmate.services.assignment import AssignmentEngine
from roundmate.services.session import EditingSession

def create_session(data_dir: Path | None = None, *, seed: int | None = None, **overrides) -> EditingSession:
    """Point d'entrée de la couche de présentation : config, logs, séance vide."""
    cfg = load_config(data_dir, **overrides)
    setup_logging(cfg.log_dir)
    logging.getLogger(__name__).info("%s %s démarré", APP_NAME, APP_VERSION)

    return EditingSession(config=cfg, engine=AssignmentEngine(seed=seed))
