from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# --- Entités de base (in-memory, immuables par convention)

@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    table_id: Optional[int] = None
    seat_number: Optional[int] = None

    def __post_init__(self) -> None:
        if (self.table_id is None) != (self.seat_number is None):
            raise ValueError(
                f"Participant {self.id!r}: table_id et seat_number doivent être tous deux définis ou tous deux vides"
            )

    @property
    def is_seated(self) -> bool:
        return self.table_id is not None and self.seat_number is not None

    @property
    def seat(self) -> tuple[int, int] | None:
        return (self.table_id, self.seat_number) if self.is_seated else None


@dataclass(frozen=True)
class Table:
    id: int
    seats_per_table: int
    # triés par seat_number
    participants: List[Participant] = field(default_factory=list)

    @property
    def occupied_seats(self) -> set[int]:
        return {p.seat_number for p in self.participants}

    @property
    def vacant_seats(self) -> List[int]:
        taken = self.occupied_seats
        return [n for n in range(self.seats_per_table) if n not in taken]

    @property
    def is_empty(self) -> bool:
        return not self.participants

    def participant_at(self, seat_number: int) -> Optional[Participant]:
        for p in self.participants:
            if p.seat_number == seat_number:
                return p
        return None


@dataclass(frozen=True)
class SeatingSummary:
    total_tables: int
    total_participants: int
    filled_seats: int
    empty_seats: int


class SeatPolicy(str, Enum):
    """Traitement d'une cellule ``Seat`` vide dans un fichier d'assignation."""

    STRICT = "strict"    # ligne rejetée
    LENIENT = "lenient"  # place libre attribuée dans la table indiquée


# --- Allocation d'identifiants

class IdAllocator:
    """Compteur monotone : ``p1``, ``p2``… Un identifiant n'est jamais réutilisé."""

    def __init__(self, prefix: str = "p", start: int = 1) -> None:
        self.prefix = prefix
        self._seq = start

    def next_id(self) -> str:
        pid = f"{self.prefix}{self._seq}"
        self._seq += 1
        return pid

    def new_participant(self, name: str) -> Participant:
        return Participant(id=self.next_id(), name=name.strip())
