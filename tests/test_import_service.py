import io
import sys
from pathlib import Path

from openpyxl import Workbook

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roundmate.domain.models import IdAllocator, SeatPolicy
from roundmate.services.import_service import (
    ASSIGNMENT,
    TEMPLATE,
    ImportService,
    parse_spreadsheet,
)


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _triples(result):
    return sorted((p.name, p.table_id, p.seat_number) for p in result.participants)


def test_template_skips_header_and_blank_rows():
    result = parse_spreadsheet(_xlsx([["Name"], ["Alice"], ["Bob"], [""]]))

    assert result.mode == TEMPLATE
    assert [p.name for p in result.participants] == ["Alice", "Bob"]
    assert not any(p.is_seated for p in result.participants)
    assert not result.issues
    assert not result.rejected
    assert not result.needs_confirmation


def test_template_without_header_keeps_first_row():
    result = parse_spreadsheet(_xlsx([["  Alice  "], ["Bob", "ignored"]]))

    assert [p.name for p in result.participants] == ["Alice", "Bob"]


def test_template_ids_come_from_the_injected_allocator():
    allocator = IdAllocator(prefix="guest-", start=5)
    result = parse_spreadsheet(_xlsx([["name"], ["Alice"], ["Bob"]]), allocator=allocator)

    assert [p.id for p in result.participants] == ["guest-5", "guest-6"]
    assert allocator.next_id() == "guest-7"


def test_assignment_rows_are_zero_indexed():
    result = parse_spreadsheet(_xlsx([
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Alice"],
        ["Table 2", 3, "Bob"],
    ]))

    assert result.mode == ASSIGNMENT
    assert _triples(result) == [("Alice", 0, 0), ("Bob", 1, 2)]
    assert result.seats_per_table == 3


def test_headers_are_matched_by_name_in_any_order():
    result = parse_spreadsheet(_xlsx([
        ["name", "SEAT", "table"],
        ["Alice", "2", "3"],
    ]))

    assert _triples(result) == [("Alice", 2, 1)]


def test_seats_per_table_metadata_wins():
    result = parse_spreadsheet(_xlsx([
        ["SeatsPerTable", 8],
        ["Table", "Seat", "Name"],
        ["Table 1", 2, "Alice"],
    ]))

    assert result.seats_per_table == 8
    assert _triples(result) == [("Alice", 0, 1)]


def test_strict_policy_rejects_blank_seat():
    result = parse_spreadsheet(_xlsx([
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Bob"],
        ["Table 2", "", "Ann"],
    ]))

    assert [p.name for p in result.participants] == ["Bob"]
    assert result.skipped_rows == 1
    assert result.needs_confirmation
    issue = result.issues[0]
    assert (issue.row, issue.column, issue.severity) == (3, "Seat", "error")


def test_lenient_policy_places_blank_seat_in_its_table():
    result = parse_spreadsheet(
        _xlsx([
            ["Table", "Seat", "Name"],
            ["Table 2", 1, "Bob"],
            ["Table 2", "", "Ann"],
        ]),
        seat_policy=SeatPolicy.LENIENT,
    )

    assert _triples(result) == [("Ann", 1, 1), ("Bob", 1, 0)]
    assert result.seats_per_table == 2
    assert not result.issues


def test_lenient_policy_warns_when_table_is_full():
    result = parse_spreadsheet(
        _xlsx([
            ["SeatsPerTable", 1],
            ["Table", "Seat", "Name"],
            ["Table 1", 1, "Bob"],
            ["Table 1", "", "Ann"],
        ]),
        seat_policy=SeatPolicy.LENIENT,
    )

    assert _triples(result) == [("Ann", None, None), ("Bob", 0, 0)]
    assert result.issues[0].severity == "warning"
    assert result.skipped_rows == 0
    assert result.needs_confirmation


def test_invalid_rows_are_collected_not_raised():
    result = parse_spreadsheet(_xlsx([
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Alice"],
        ["Table 1", 2, ""],
        ["", 3, "NoTable"],
        ["Head table", 1, "Carol"],
        ["Table 0", 1, "Zero"],
        ["Table 1", "abc", "Dave"],
        ["Table 1", 1, "Twin"],
        [None, None, None],
    ]))

    assert [p.name for p in result.participants] == ["Alice"]
    assert [i.row for i in result.issues] == [3, 4, 5, 6, 7, 8]
    assert [i.column for i in result.issues] == ["Name", "Table", "Table", "Table", "Seat", "Seat"]
    assert result.skipped_rows == 6
    assert not result.rejected


def test_seat_beyond_metadata_capacity_is_an_error():
    result = parse_spreadsheet(_xlsx([
        ["SeatsPerTable", 2],
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Alice"],
        ["Table 1", 3, "Bob"],
    ]))

    assert [p.name for p in result.participants] == ["Alice"]
    assert result.issues[0].row == 4


def test_only_invalid_rows_reject_the_file():
    result = parse_spreadsheet(_xlsx([
        ["Table", "Seat", "Name"],
        ["Table 1", "", "Ann"],
        ["", 1, "Bob"],
    ]))

    assert result.rejected
    assert result.participants == []
    assert len(result.issues) == 2


def test_missing_mandatory_column_rejects_the_file():
    result = parse_spreadsheet(_xlsx([
        ["Seating plan"],
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Ann"],
    ]))

    assert result.rejected
    assert "Table" in result.error


def test_invalid_metadata_rejects_the_file():
    result = parse_spreadsheet(_xlsx([
        ["SeatsPerTable", "many"],
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Ann"],
    ]))

    assert result.rejected


def test_csv_template_and_semicolon_assignment():
    template = parse_spreadsheet(b"Name\nAlice\nBob\n")
    assignment = parse_spreadsheet("Table;Seat;Name\nTable 1;1;Ann\nTable 1;2;Zoé\n".encode("utf-8"))

    assert [p.name for p in template.participants] == ["Alice", "Bob"]
    assert assignment.mode == ASSIGNMENT
    assert _triples(assignment) == [("Ann", 0, 0), ("Zoé", 0, 1)]


def test_unreadable_bytes_are_rejected():
    assert parse_spreadsheet(b"PK\x03\x04not really a zip").rejected
    assert parse_spreadsheet(b"\xd0\xcf\x11\xe0legacy xls").rejected
    assert parse_spreadsheet(b"\xff\xfe\xfa").rejected


def test_parse_file_reads_from_disk(tmp_path):
    excel_path = tmp_path / "participants.xlsx"
    excel_path.write_bytes(_xlsx([["Name"], ["Alice"]]))

    result = ImportService().parse_file(excel_path)

    assert [p.name for p in result.participants] == ["Alice"]


def test_build_tables_adds_standing_table():
    result = parse_spreadsheet(_xlsx([
        ["SeatsPerTable", 4],
        ["Table", "Seat", "Name"],
        ["Table 2", 1, "Ann"],
    ]))

    tables = result.build_tables(default_seats=10)

    assert [t.id for t in tables] == [0, 1, 2]
    assert [len(t.participants) for t in tables] == [0, 1, 0]
    assert all(t.seats_per_table == 4 for t in tables)


def test_seat_must_be_a_whole_positive_number():
    result = parse_spreadsheet(_xlsx([
        ["Table", "Seat", "Name"],
        ["Table 1", "Seat 3", "Alice"],
        ["Table 1", "2.5", "Bob"],
        ["Table 1", "-1", "Chloé"],
        ["Table 1", 4.5, "Denis"],
        ["Table 1", 2.0, "Emma"],
    ]))

    assert _triples(result) == [("Alice", 0, 2), ("Emma", 0, 1)]
    assert [(i.row, i.column) for i in result.issues] == [(3, "Seat"), (4, "Seat"), (5, "Seat")]
    assert all("non numérique" in i.message for i in result.issues)
