from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import List, Optional

from roundmate.core.config import AppConfig
from roundmate.core.constants import DEFAULT_SEATS_PER_TABLE
from roundmate.domain.errors import EmptyRosterError, FormatError, SessionStateError
from roundmate.domain.models import IdAllocator, Participant, SeatingSummary, SeatPolicy, Table
from roundmate.services.assignment import (
    AssignmentEngine,
    find_participant,
    rebuild_tables,
    with_standing_table,
)
from roundmate.services.export_service import serialize_assignment
from roundmate.services.import_service import ASSIGNMENT, ImportService, ParseResult

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    EMPTY = "empty"
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    FINALIZED = "finalized"


class EditingSession:
    """
    Une façade simple pour piloter la séance d'édition courante.
    - participants : ajout / renommage / suppression (avant placement)
    - apply_import(result) → fusion d'un fichier importé
    - assign() → assignation initiale ou incrémentale
    - swap / move_to_seat → retouches manuelles
    - finalize / back_to_input / reset → transitions d'état

    L'état est transitoire : tout se reconstruit depuis un fichier d'assignation.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        allocator: IdAllocator | None = None,
        engine: AssignmentEngine | None = None,
    ) -> None:
        self.config = config
        self.allocator = allocator or IdAllocator()
        self.engine = engine or AssignmentEngine()
        self.seats_per_table = config.seats_per_table if config else DEFAULT_SEATS_PER_TABLE
        self.participants: List[Participant] = []
        self.state = SessionState.EMPTY

    # --- utils
    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionStateError(
                f"Opération impossible dans l'état {self.state.value!r} "
                f"(attendu : {', '.join(s.value for s in states)})"
            )

    def make_importer(self) -> ImportService:
        policy = self.config.seat_policy if self.config else SeatPolicy.STRICT
        return ImportService(self.allocator, policy)

    def parse_upload(self, data: bytes) -> ParseResult:
        return self.make_importer().parse_bytes(data)

    # --- participants
    def add_participant(self, name: str) -> Participant:
        self._require(SessionState.EMPTY, SessionState.UNASSIGNED)
        if not name.strip():
            raise ValueError("Le nom du participant est vide")
        p = self.allocator.new_participant(name)
        self.participants = [*self.participants, p]
        self.state = SessionState.UNASSIGNED
        return p

    def rename_participant(self, pid: str, name: str) -> None:
        if not name.strip():
            raise ValueError("Le nom du participant est vide")
        find_participant(self.participants, pid)
        self.participants = [replace(p, name=name.strip()) if p.id == pid else p for p in self.participants]

    def remove_participant(self, pid: str) -> None:
        self._require(SessionState.EMPTY, SessionState.UNASSIGNED)
        if find_participant(self.participants, pid).is_seated:
            raise SessionStateError(f"Participant {pid!r} déjà placé : suppression impossible")
        self.participants = [p for p in self.participants if p.id != pid]
        if not self.participants:
            self.state = SessionState.EMPTY

    # --- import
    def apply_import(self, result: ParseResult, *, accept_partial: bool = False) -> None:
        if result.rejected:
            raise FormatError(result.error)
        if result.needs_confirmation and not accept_partial:
            raise SessionStateError(
                f"Import partiel ({result.skipped_rows} ligne(s) ignorée(s)) : confirmation requise"
            )

        if result.mode == ASSIGNMENT:
            # reprise d'un plan existant
            self.participants = list(result.participants)
            if result.seats_per_table:
                self.seats_per_table = result.seats_per_table
            self.state = SessionState.FINALIZED if self.participants else SessionState.EMPTY
        else:
            self._require(SessionState.EMPTY, SessionState.UNASSIGNED)
            self.participants = [*self.participants, *result.participants]
            if self.participants:
                self.state = SessionState.UNASSIGNED
        log.info("Import appliqué : %d participant(s) dans la séance", len(self.participants))

    # --- assignation
    def assign(self, seats_per_table: Optional[int] = None, randomize: Optional[bool] = None) -> List[Table]:
        self._require(SessionState.EMPTY, SessionState.UNASSIGNED)
        if not self.participants:
            raise EmptyRosterError("Ajoutez au moins un participant")
        if seats_per_table is not None:
            # les places déjà attribuées ne bougent pas : la table doit les contenir
            needed = max((p.seat_number + 1 for p in self.participants if p.is_seated), default=1)
            if seats_per_table < needed:
                raise ValueError(
                    f"seats_per_table={seats_per_table} trop petit : des participants occupent déjà la place {needed}"
                )
            self.seats_per_table = seats_per_table
        if randomize is None:
            randomize = self.config.randomize if self.config else False

        if any(p.is_seated for p in self.participants):
            self.participants, tables = self.engine.incremental_assign(self.participants, self.seats_per_table)
        else:
            self.participants, tables = self.engine.initial_assign(
                self.participants, self.seats_per_table, randomize
            )
        self.state = SessionState.ASSIGNED
        return tables

    def swap(self, id_a: str, id_b: str) -> None:
        self._require(SessionState.ASSIGNED)
        self.participants = self.engine.swap(self.participants, id_a, id_b)

    def move_to_seat(self, pid: str, table_id: int, seat_number: int) -> None:
        self._require(SessionState.ASSIGNED)
        if seat_number >= self.seats_per_table:
            log.warning("Dépôt ignoré : place %d hors table (%d places)", seat_number, self.seats_per_table)
            return
        self.participants = self.engine.move_to_seat(self.participants, pid, table_id, seat_number)

    # --- transitions
    def finalize(self) -> None:
        self._require(SessionState.ASSIGNED)
        self.state = SessionState.FINALIZED

    def back_to_input(self) -> None:
        """Retour à la saisie : les placements existants sont conservés."""
        self._require(SessionState.ASSIGNED, SessionState.FINALIZED)
        self.state = SessionState.UNASSIGNED

    def reset(self) -> None:
        self.participants = []
        self.state = SessionState.EMPTY

    # --- lecture
    @property
    def tables(self) -> List[Table]:
        if not any(p.is_seated for p in self.participants):
            return []
        return with_standing_table(rebuild_tables(self.participants, self.seats_per_table), self.seats_per_table)

    def summary(self) -> SeatingSummary:
        tables = self.tables
        filled = sum(len(t.participants) for t in tables)
        return SeatingSummary(
            total_tables=len(tables),
            total_participants=len(self.participants),
            filled_seats=filled,
            empty_seats=len(tables) * self.seats_per_table - filled,
        )

    def export_assignment(self) -> bytes:
        self._require(SessionState.ASSIGNED, SessionState.FINALIZED)
        return serialize_assignment(self.tables, self.seats_per_table)
