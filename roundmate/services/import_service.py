from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from roundmate.core.constants import HEADER_NAME, HEADER_SEAT, HEADER_TABLE, META_SEATS_PER_TABLE
from roundmate.domain.errors import FormatError, RowValidationError
from roundmate.domain.models import IdAllocator, Participant, SeatPolicy, Table
from roundmate.services.assignment import rebuild_tables, with_standing_table

log = logging.getLogger(__name__)

TEMPLATE = "template"
ASSIGNMENT = "assignment"

_DIGITS = re.compile(r"\d+")
# entier positif, éventuellement précédé de "Seat" ('Seat 3', '3')
_SEAT = re.compile(r"(?:seat\s*)?(\d+)", re.IGNORECASE)
_ZIP_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0"


@dataclass(frozen=True)
class RowIssue:
    row: int  # numéro de ligne tel qu'affiché par le tableur (1 = première ligne)
    message: str
    column: Optional[str] = None
    severity: str = "error"


@dataclass
class ParseResult:
    mode: str = TEMPLATE
    participants: List[Participant] = field(default_factory=list)
    seats_per_table: Optional[int] = None
    issues: List[RowIssue] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def errors(self) -> List[RowIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def skipped_rows(self) -> int:
        return len({i.row for i in self.errors})

    @property
    def rejected(self) -> bool:
        return self.error is not None

    @property
    def needs_confirmation(self) -> bool:
        """Import partiel : l'utilisateur doit accepter ou refuser les lignes valides."""
        return not self.rejected and bool(self.participants) and bool(self.issues)

    def build_tables(self, default_seats: int) -> List[Table]:
        seats = self.seats_per_table or default_seats
        return with_standing_table(rebuild_tables(self.participants, seats), seats)


class ImportService:
    """Service d'import (Excel / CSV) : modèle de noms ou plan d'assignation."""

    def __init__(
        self,
        allocator: IdAllocator | None = None,
        seat_policy: SeatPolicy = SeatPolicy.STRICT,
    ) -> None:
        self.allocator = allocator or IdAllocator()
        self.seat_policy = seat_policy

    # --- public API ------------------------------------------------------
    def parse_file(self, file_path: str | Path) -> ParseResult:
        return self.parse_bytes(Path(file_path).read_bytes())

    def parse_bytes(self, data: bytes) -> ParseResult:
        """Analyse un classeur ; ne lève jamais pour un fichier invalide.

        Un échec global (fichier illisible, colonnes manquantes, aucune ligne
        valide) donne un ``ParseResult`` rejeté avec ``error`` renseigné.
        """
        try:
            rows = self._read_rows(data)
            if self._detect_mode(rows) == ASSIGNMENT:
                result = self._parse_assignment(rows)
            else:
                result = self._parse_template(rows)
        except FormatError as exc:
            log.warning("Import rejeté : %s", exc)
            return ParseResult(error=str(exc))

        if not result.participants and result.errors:
            result.error = f"Aucune ligne valide ({len(result.errors)} erreur(s))"
            log.warning("Import rejeté : %s", result.error)
        elif result.issues:
            log.warning(
                "Import partiel : %d participant(s) valides, %d ligne(s) ignorée(s)",
                len(result.participants), result.skipped_rows,
            )
        else:
            log.info("Import %s : %d participant(s)", result.mode, len(result.participants))
        return result

    # --- lecture ---------------------------------------------------------
    def _read_rows(self, data: bytes) -> List[list]:
        if data.startswith(_ZIP_MAGIC):
            try:
                wb = load_workbook(filename=io.BytesIO(data), read_only=True, data_only=True)
            except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
                raise FormatError(f"Classeur illisible : {exc}") from exc
            try:
                ws = wb.worksheets[0]
                return [list(r) for r in ws.iter_rows(values_only=True)]
            finally:
                wb.close()

        if data.startswith(_OLE_MAGIC):
            raise FormatError("Format .xls non pris en charge : réenregistrez le fichier en .xlsx ou .csv")

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError("Fichier illisible : ni classeur Excel ni CSV UTF-8") from exc
        try:
            dialect = csv.Sniffer().sniff(text[:4096].strip(), delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel
        return [list(r) for r in csv.reader(io.StringIO(text), dialect)]

    def _detect_mode(self, rows: List[list]) -> str:
        wanted = {h.lower() for h in (HEADER_TABLE, HEADER_SEAT, HEADER_NAME)}
        for row in rows[:2]:
            if wanted <= {self._read_cell(row, i).lower() for i in range(len(row))}:
                return ASSIGNMENT
        return TEMPLATE

    # --- modèle (noms seuls) ---------------------------------------------
    def _parse_template(self, rows: List[list]) -> ParseResult:
        start = 1 if rows and self._read_cell(rows[0], 0).lower() == HEADER_NAME.lower() else 0
        participants = []
        for raw in rows[start:]:
            name = self._read_cell(raw, 0)
            if name:
                participants.append(self.allocator.new_participant(name))
        return ParseResult(mode=TEMPLATE, participants=participants)

    # --- plan d'assignation ----------------------------------------------
    def _parse_assignment(self, rows: List[list]) -> ParseResult:
        override = None
        header_idx = 0
        if rows and self._read_cell(rows[0], 0).lower() == META_SEATS_PER_TABLE.lower():
            override = self._parse_override(self._read_cell(rows[0], 1))
            header_idx = 1

        col_idx = self._map_columns(rows[header_idx] if len(rows) > header_idx else [])

        result = ParseResult(mode=ASSIGNMENT)
        taken: set[tuple[int, int]] = set()
        pending: List[tuple[int, int, Participant]] = []  # places vides tolérées
        max_seats = 0

        for offset, raw in enumerate(rows[header_idx + 1:]):
            row_no = header_idx + offset + 2
            if not raw or all(self._read_cell(raw, i) == "" for i in range(len(raw))):
                continue
            try:
                name, table_id, seat_number = self._parse_row(raw, col_idx, override)
                if seat_number is not None:
                    if (table_id, seat_number) in taken:
                        raise RowValidationError(
                            f"Place {seat_number + 1} de la table {table_id + 1} déjà occupée", HEADER_SEAT
                        )
                    taken.add((table_id, seat_number))
                    max_seats = max(max_seats, seat_number + 1)
            except RowValidationError as exc:
                result.issues.append(RowIssue(row=row_no, message=str(exc), column=exc.column))
                continue

            participant = self.allocator.new_participant(name)
            if seat_number is None:
                pending.append((row_no, table_id, participant))
            else:
                participant = replace(participant, table_id=table_id, seat_number=seat_number)
            result.participants.append(participant)

        result.seats_per_table = override or (max_seats or None)
        if pending:
            self._seat_pending(result, pending, taken, fixed=override is not None)
        return result

    def _parse_row(self, raw: list, col_idx: Dict[str, Optional[int]], override: Optional[int]):
        name = self._read_cell(raw, col_idx["name"])
        table_text = self._read_cell(raw, col_idx["table"])
        seat_text = self._read_cell(raw, col_idx["seat"])

        if not name:
            raise RowValidationError("Nom manquant", HEADER_NAME)
        if not table_text:
            raise RowValidationError("Table manquante", HEADER_TABLE)

        table_no = self._first_number(table_text)
        if table_no is None:
            raise RowValidationError(f"Numéro de table introuvable dans {table_text!r}", HEADER_TABLE)
        if table_no < 1:
            raise RowValidationError(f"Numéro de table invalide : {table_no}", HEADER_TABLE)

        if not seat_text:
            if self.seat_policy is SeatPolicy.STRICT:
                raise RowValidationError("Place manquante", HEADER_SEAT)
            return name, table_no - 1, None

        match = _SEAT.fullmatch(seat_text)
        seat_no = int(match.group(1)) if match else None
        if seat_no is None:
            raise RowValidationError(f"Place non numérique : {seat_text!r}", HEADER_SEAT)
        if seat_no < 1:
            raise RowValidationError(f"Numéro de place invalide : {seat_no}", HEADER_SEAT)
        if override is not None and seat_no > override:
            raise RowValidationError(
                f"Place {seat_no} au-delà de {META_SEATS_PER_TABLE}={override}", HEADER_SEAT
            )
        return name, table_no - 1, seat_no - 1

    def _seat_pending(self, result: ParseResult, pending: list, taken: set[tuple[int, int]], fixed: bool) -> None:
        """Place vide tolérée : première place libre de la table indiquée.

        Sans surcharge ``SeatsPerTable``, la capacité grandit jusqu'à la table
        la plus peuplée pour que chacun trouve une place.
        """
        seats = result.seats_per_table or 0
        if not fixed:
            counts = Counter(t for t, _ in taken) + Counter(t for _, t, _ in pending)
            seats = max(seats, max(counts.values()))
        result.seats_per_table = seats
        placed: Dict[str, Participant] = {}
        for row_no, table_id, p in pending:
            free = next((n for n in range(seats) if (table_id, n) not in taken), None)
            if free is None:
                result.issues.append(
                    RowIssue(
                        row=row_no,
                        message=f"Table {table_id + 1} complète : {p.name} importé sans place",
                        column=HEADER_SEAT,
                        severity="warning",
                    )
                )
                continue
            taken.add((table_id, free))
            placed[p.id] = replace(p, table_id=table_id, seat_number=free)
        result.participants = [placed.get(p.id, p) for p in result.participants]

    # --- helpers ---------------------------------------------------------
    def _parse_override(self, text: str) -> int:
        value = self._first_number(text)
        if value is None or value < 1:
            raise FormatError(f"{META_SEATS_PER_TABLE} invalide : {text!r}")
        return value

    def _normalize_header(self, value) -> str:
        if value is None:
            return ""
        return str(value).strip().lower()

    def _map_columns(self, header: list) -> Dict[str, Optional[int]]:
        mapping = {
            "table": HEADER_TABLE.lower(),
            "seat": HEADER_SEAT.lower(),
            "name": HEADER_NAME.lower(),
        }
        idx: Dict[str, Optional[int]] = {key: None for key in mapping}
        for i, col in enumerate(self._normalize_header(h) for h in header):
            for key, name in mapping.items():
                if col == name and idx[key] is None:
                    idx[key] = i
        if idx["table"] is None or idx["name"] is None:
            raise FormatError("Colonnes obligatoires manquantes : Table et Name")
        return idx

    def _first_number(self, text: str) -> Optional[int]:
        match = _DIGITS.search(text)
        return int(match.group()) if match else None

    def _read_cell(self, row, index: int | None) -> str:
        if index is None or row is None or index >= len(row):
            return ""
        value = row[index]
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip()


def parse_spreadsheet(
    data: bytes,
    *,
    allocator: IdAllocator | None = None,
    seat_policy: SeatPolicy = SeatPolicy.STRICT,
) -> ParseResult:
    return ImportService(allocator, seat_policy).parse_bytes(data)
