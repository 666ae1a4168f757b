from __future__ import annotations
from dataclasses import dataclass, replace
import sys
from pathlib import Path

from roundmate.core.constants import DEFAULT_SEATS_PER_TABLE
from roundmate.domain.models import SeatPolicy

@dataclass(frozen=True)
class AppConfig:
    data_dir: Path
    seats_per_table: int = DEFAULT_SEATS_PER_TABLE
    seat_policy: SeatPolicy = SeatPolicy.STRICT
    randomize: bool = False

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


def get_run_root() -> Path:
    """Retourne le dossier contenant l'exécutable ou le projet en développement.

    Lorsqu'on exécute un binaire gelé (PyInstaller…), le répertoire courant
    peut varier selon le mode de lancement. Pour garantir une zone d'écriture
    stable pour les logs, on déduit la racine à partir du chemin de
    l'exécutable gelé.
    """

    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent

    return Path(__file__).resolve().parent.parent.parent

def load_config(data_dir: Path | None = None, **overrides) -> AppConfig:
    data_dir = Path(data_dir) if data_dir else get_run_root() / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    cfg = replace(AppConfig(data_dir=data_dir), **overrides)
    if cfg.seats_per_table < 1:
        raise ValueError(f"seats_per_table doit être >= 1 (reçu {cfg.seats_per_table})")
    return cfg
