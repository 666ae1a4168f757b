from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from roundmate.core.constants import (
    ASSIGNMENT_FILENAME,
    ASSIGNMENT_SHEET,
    HEADER_NAME,
    HEADER_SEAT,
    HEADER_TABLE,
    META_SEATS_PER_TABLE,
    TEMPLATE_EXAMPLES,
    TEMPLATE_FILENAME,
    TEMPLATE_SHEET,
)
from roundmate.domain.models import Table

log = logging.getLogger(__name__)


def serialize_assignment(tables: Sequence[Table], seats_per_table: int | None = None) -> bytes:
    """Sérialise le plan au format d'assignation (toujours réimportable).

    Ligne 1 : ``SeatsPerTable | N`` ; ligne 2 : ``Table | Seat | Name`` ;
    puis une ligne par participant, triée par table puis par place.
    """
    if seats_per_table is None:
        seats_per_table = max((t.seats_per_table for t in tables), default=1)
    # le fichier doit pouvoir contenir chaque place écrite
    highest = max(
        (p.seat_number + 1 for t in tables for p in t.participants if p.seat_number is not None),
        default=1,
    )
    seats_per_table = max(seats_per_table, highest)

    wb = Workbook()
    ws = wb.active
    ws.title = ASSIGNMENT_SHEET
    ws.append([META_SEATS_PER_TABLE, seats_per_table])
    ws.append([HEADER_TABLE, HEADER_SEAT, HEADER_NAME])

    count = 0
    for table in sorted(tables, key=lambda t: t.id):
        for p in sorted(table.participants, key=lambda p: (p.seat_number is None, p.seat_number or 0)):
            ws.append([
                f"Table {table.id + 1}",
                p.seat_number + 1 if p.seat_number is not None else "",
                p.name,
            ])
            _force_text(ws.cell(row=ws.max_row, column=3))
            count += 1

    _set_widths(ws, [15, 8, 25])
    log.info("Export du plan : %d participant(s), %d places/table", count, seats_per_table)
    return _to_bytes(wb)


def build_template(examples: Iterable[str] = TEMPLATE_EXAMPLES) -> bytes:
    """Modèle vierge : en-tête ``Name`` puis quelques noms d'exemple."""
    wb = Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET
    ws.append([HEADER_NAME])
    for name in examples:
        ws.append([name])
        _force_text(ws.cell(row=ws.max_row, column=1))
    _set_widths(ws, [30])
    return _to_bytes(wb)


class ExportService:
    """Service d'export (fichiers Excel)."""

    def export_assignment(
        self,
        tables: Sequence[Table],
        output_path: str | Path,
        seats_per_table: int | None = None,
    ) -> Path:
        output_path = self._resolve(output_path, ASSIGNMENT_FILENAME)
        output_path.write_bytes(serialize_assignment(tables, seats_per_table))
        return output_path

    def export_template(self, output_path: str | Path) -> Path:
        output_path = self._resolve(output_path, TEMPLATE_FILENAME)
        output_path.write_bytes(build_template())
        return output_path

    # --- helpers ---------------------------------------------------------
    def _resolve(self, output_path: str | Path, default_name: str) -> Path:
        output_path = Path(output_path)
        if output_path.is_dir():
            output_path = output_path / default_name
        return output_path


def _set_widths(ws, widths: list[int]) -> None:
    for idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width


def _force_text(cell) -> None:
    # openpyxl prend tout texte commençant par "=" pour une formule
    if isinstance(cell.value, str):
        cell.data_type = "s"


def _to_bytes(wb: Workbook) -> bytes:
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
