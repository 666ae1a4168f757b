from __future__ import annotations

import logging
import math
import random
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from roundmate.domain.errors import NotFoundError
from roundmate.domain.models import Participant, Table

log = logging.getLogger(__name__)


def rebuild_tables(
    roster: Iterable[Participant],
    seats_per_table: int,
    table_count: Optional[int] = None,
) -> List[Table]:
    """Regroupe le roster par ``table_id`` en tables triées par place.

    Projection pure : le résultat ne dépend pas de l'ordre du roster.
    Sans ``table_count``, on prend ``max(table_id) + 1`` (ou
    ``ceil(n / seats_per_table)`` si personne n'est encore placé).
    """
    roster = list(roster)
    seated = [p for p in roster if p.is_seated]
    if table_count is None:
        if seated:
            table_count = max(p.table_id for p in seated) + 1
        else:
            table_count = math.ceil(len(roster) / seats_per_table)

    by_table: Dict[int, List[Participant]] = defaultdict(list)
    for p in seated:
        if 0 <= p.table_id < table_count:
            by_table[p.table_id].append(p)

    return [
        Table(
            id=t,
            seats_per_table=seats_per_table,
            participants=sorted(by_table[t], key=lambda p: (p.seat_number, p.id)),
        )
        for t in range(table_count)
    ]


def with_standing_table(tables: Sequence[Table], seats_per_table: int) -> List[Table]:
    """Ajoute la table vide permanente après la dernière table occupée."""
    tables = list(tables)
    while tables and tables[-1].is_empty:
        tables.pop()
    next_id = tables[-1].id + 1 if tables else 0
    tables.append(Table(id=next_id, seats_per_table=seats_per_table))
    return tables


def flatten(tables: Iterable[Table]) -> List[Participant]:
    return [p for table in tables for p in table.participants]


def find_participant(roster: Iterable[Participant], participant_id: str) -> Participant:
    for p in roster:
        if p.id == participant_id:
            return p
    raise NotFoundError(f"Participant inconnu : {participant_id!r}")


class AssignmentEngine:
    """
    Place les participants sur des tables rondes de capacité fixe.

    Toutes les opérations renvoient de nouvelles collections ; le roster
    fourni par l'appelant n'est jamais modifié. Le hasard ne sert qu'au
    mélange optionnel de ``initial_assign`` et passe par ``rng`` pour rester
    reproductible en test.
    """

    def __init__(self, *, seed: int | None = None, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random(seed)

    # --- assignation -----------------------------------------------------
    def initial_assign(
        self,
        participants: Sequence[Participant],
        seats_per_table: int,
        randomize: bool = False,
    ) -> Tuple[List[Participant], List[Table]]:
        _check_seats(seats_per_table)

        order = list(participants)
        if randomize:
            self.rng.shuffle(order)

        num_tables = math.ceil(len(order) / seats_per_table)
        log.info(
            "Assignation initiale : %d participants, %d places/table = %d tables (+1 vide, randomize=%s)",
            len(order), seats_per_table, num_tables, randomize,
        )

        assigned = [
            replace(p, table_id=i // seats_per_table, seat_number=i % seats_per_table)
            for i, p in enumerate(order)
        ]
        tables = rebuild_tables(assigned, seats_per_table, table_count=num_tables)
        return assigned, with_standing_table(tables, seats_per_table)

    def incremental_assign(
        self,
        roster: Sequence[Participant],
        seats_per_table: int,
    ) -> Tuple[List[Participant], List[Table]]:
        """
        Place les nouveaux participants sans déplacer ceux déjà assis.

        Les places libres des tables existantes sont remplies d'abord
        (tables puis places par ordre croissant), le reste ouvre de nouvelles
        tables après la plus grande table existante.
        """
        _check_seats(seats_per_table)

        seated = [p for p in roster if p.is_seated]
        unseated = [p for p in roster if not p.is_seated]

        occupancy: Dict[int, Set[int]] = defaultdict(set)
        for p in seated:
            occupancy[p.table_id].add(p.seat_number)
        max_table_id = max((p.table_id for p in seated), default=-1)

        def free_seats():
            for table_id in range(max_table_id + 1):
                for seat_number in range(seats_per_table):
                    if seat_number not in occupancy[table_id]:
                        yield table_id, seat_number
            # tables neuves, remplies à partir de la place 0
            table_id = max_table_id + 1
            while True:
                for seat_number in range(seats_per_table):
                    yield table_id, seat_number
                table_id += 1

        placed: Dict[str, Participant] = {}
        for p, (table_id, seat_number) in zip(unseated, free_seats()):
            placed[p.id] = replace(p, table_id=table_id, seat_number=seat_number)

        merged = [placed.get(p.id, p) for p in roster]
        log.info(
            "Assignation incrémentale : %d déjà placés, %d nouveaux placés",
            len(seated), len(placed),
        )
        tables = rebuild_tables(merged, seats_per_table)
        return merged, with_standing_table(tables, seats_per_table)

    # --- édition manuelle -------------------------------------------------
    def swap(self, roster: Sequence[Participant], id_a: str, id_b: str) -> List[Participant]:
        """Échange les couples (table, place) de deux participants."""
        if id_a == id_b:
            return list(roster)
        try:
            a = find_participant(roster, id_a)
            b = find_participant(roster, id_b)
        except NotFoundError as exc:
            log.warning("Échange ignoré : %s", exc)
            return list(roster)

        updated = []
        for p in roster:
            if p.id == id_a:
                p = replace(p, table_id=b.table_id, seat_number=b.seat_number)
            elif p.id == id_b:
                p = replace(p, table_id=a.table_id, seat_number=a.seat_number)
            updated.append(p)
        return updated

    def move_to_seat(
        self,
        roster: Sequence[Participant],
        participant_id: str,
        table_id: int,
        seat_number: int,
    ) -> List[Participant]:
        """Dépose un participant sur une place : échange si elle est occupée, sinon déplacement."""
        if table_id < 0 or seat_number < 0:
            log.warning("Dépôt ignoré : place invalide (%s, %s)", table_id, seat_number)
            return list(roster)
        try:
            find_participant(roster, participant_id)
        except NotFoundError as exc:
            log.warning("Dépôt ignoré : %s", exc)
            return list(roster)

        occupant = next(
            (p for p in roster if p.table_id == table_id and p.seat_number == seat_number),
            None,
        )
        if occupant is not None:
            return self.swap(roster, participant_id, occupant.id)

        return [
            replace(p, table_id=table_id, seat_number=seat_number) if p.id == participant_id else p
            for p in roster
        ]


def _check_seats(seats_per_table: int) -> None:
    if seats_per_table < 1:
        raise ValueError(f"seats_per_table doit être >= 1 (reçu {seats_per_table})")
