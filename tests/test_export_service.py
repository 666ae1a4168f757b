import io
import sys
from collections import Counter
from pathlib import Path

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roundmate.domain.models import IdAllocator, Participant
from roundmate.services.assignment import AssignmentEngine, rebuild_tables, with_standing_table
from roundmate.services.export_service import ExportService, build_template, serialize_assignment
from roundmate.services.import_service import ASSIGNMENT, parse_spreadsheet


def _rows(data):
    wb = load_workbook(io.BytesIO(data))
    return wb.active.title, [list(r) for r in wb.active.iter_rows(values_only=True)]


def _assigned(n, seats, seed=None):
    alloc = IdAllocator()
    roster = [alloc.new_participant(f"Guest {i}") for i in range(n)]
    return AssignmentEngine(seed=seed).initial_assign(roster, seats, randomize=seed is not None)


def test_serialize_writes_metadata_header_and_sorted_rows():
    roster = [
        Participant(id="b", name="Bob", table_id=1, seat_number=0),
        Participant(id="c", name="Chloé", table_id=0, seat_number=2),
        Participant(id="a", name="Alice", table_id=0, seat_number=0),
    ]
    tables = with_standing_table(rebuild_tables(roster, 3), 3)

    title, rows = _rows(serialize_assignment(tables))

    assert title == "Assignment"
    assert rows == [
        ["SeatsPerTable", 3],
        ["Table", "Seat", "Name"],
        ["Table 1", 1, "Alice"],
        ["Table 1", 3, "Chloé"],
        ["Table 2", 1, "Bob"],
    ]


def test_export_import_round_trip():
    roster, _ = _assigned(17, 5, seed=8)
    tables = rebuild_tables(roster, 5)

    result = parse_spreadsheet(serialize_assignment(tables, 5))

    assert result.mode == ASSIGNMENT
    assert not result.issues
    assert result.seats_per_table == 5
    expected = Counter((p.name, p.table_id, p.seat_number) for p in roster)
    assert Counter((p.name, p.table_id, p.seat_number) for p in result.participants) == expected


def test_round_trip_keeps_swapped_and_sparse_tables():
    engine = AssignmentEngine()
    roster, _ = _assigned(4, 4)
    roster = engine.move_to_seat(roster, roster[3].id, 2, 3)

    result = parse_spreadsheet(serialize_assignment(rebuild_tables(roster, 4), 4))

    def layout(tables):
        return [(t.id, t.seats_per_table, [(p.name, p.seat) for p in t.participants]) for t in tables]

    assert layout(result.build_tables(default_seats=10)) == layout(with_standing_table(rebuild_tables(roster, 4), 4))


def test_template_is_reimportable():
    title, rows = _rows(build_template())
    result = parse_spreadsheet(build_template())

    assert title == "Participants"
    assert rows[0] == ["Name"]
    assert [p.name for p in result.participants] == ["John Doe", "Jane Smith"]


def test_export_service_uses_default_names_for_directories(tmp_path):
    service = ExportService()
    _, tables = _assigned(3, 2)

    assignment_path = service.export_assignment(tables, tmp_path)
    template_path = service.export_template(tmp_path)
    custom_path = service.export_assignment(tables, tmp_path / "plan.xlsx", seats_per_table=2)

    assert assignment_path.name == "round-mate-assignment.xlsx"
    assert template_path.name == "round-mate-template.xlsx"
    assert custom_path.exists()
    assert len(parse_spreadsheet(assignment_path.read_bytes()).participants) == 3


def test_names_that_look_like_formulas_survive_round_trip():
    roster = [
        Participant(id="a", name="=Bob", table_id=0, seat_number=0),
        Participant(id="b", name="Ann", table_id=0, seat_number=1),
    ]

    result = parse_spreadsheet(serialize_assignment(rebuild_tables(roster, 2), 2))
    template = parse_spreadsheet(build_template(["=SUM(A1)", "Zoé"]))

    assert not result.issues
    assert sorted((p.name, p.seat) for p in result.participants) == [("=Bob", (0, 0)), ("Ann", (0, 1))]
    assert [p.name for p in template.participants] == ["=SUM(A1)", "Zoé"]


def test_declared_capacity_never_hides_written_seats():
    roster = [Participant(id="a", name="Alice", table_id=0, seat_number=6)]

    _, rows = _rows(serialize_assignment(rebuild_tables(roster, 3), 3))
    result = parse_spreadsheet(serialize_assignment(rebuild_tables(roster, 3), 3))

    assert rows[0] == ["SeatsPerTable", 7]
    assert [(p.name, p.seat) for p in result.participants] == [("Alice", (0, 6))]
