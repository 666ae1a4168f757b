APP_NAME = "RoundMate"
APP_VERSION = "0.1.0"

DEFAULT_SEATS_PER_TABLE = 10

ASSIGNMENT_FILENAME = "round-mate-assignment.xlsx"
TEMPLATE_FILENAME = "round-mate-template.xlsx"

ASSIGNMENT_SHEET = "Assignment"
TEMPLATE_SHEET = "Participants"

# En-têtes des fichiers (comparés sans tenir compte de la casse)
HEADER_TABLE = "Table"
HEADER_SEAT = "Seat"
HEADER_NAME = "Name"
META_SEATS_PER_TABLE = "SeatsPerTable"

TEMPLATE_EXAMPLES = ("John Doe", "Jane Smith")
