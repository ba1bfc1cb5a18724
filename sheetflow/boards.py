"""Listing, filtering and board logic for tickets, projects and Kanban tasks.

Lists are shown newest first, so every row carries its own sheet row number
(``SheetRow.sheet_row``) and survives reversing and filtering without any
index arithmetic on the caller's side.
"""

import re
from collections import namedtuple
from datetime import date, datetime, timezone

SheetRow = namedtuple("SheetRow", ["sheet_row", "values"])

TICKET_VISIBLE_COLUMNS = [
    "Ticket ID",
    "Created Date",
    "Status",
    "Team",
    "Work Type",
    "Product/Course/Requisition Name",
    "Your Email*",
]
TEAM_QUESTION_PREFIX = "the requisition is for which team"

TICKET_STATUSES = ["In Review", "In Progress", "Prioritized", "On Hold", "Delivered", "Completed"]
PROJECT_STATUSES = ["In Review", "Ongoing", "Completed"]
PROJECT_VISIBLE_COLUMNS = ["Project ID", "Project Title", "Status", "Start Date", "End Date"]

KANBAN_COLUMNS = {
    "todo": "To Do",
    "inprogress": "In Progress",
    "review": "Review",
    "done": "Done",
}
KANBAN_STATUSES = list(KANBAN_COLUMNS)
PRIORITIES = ["Low", "Medium", "High", "Critical"]

TASK_SOURCES = ("Ticket", "Project", "Kanban Task")
ALL_STATUSES = list(dict.fromkeys(TICKET_STATUSES + PROJECT_STATUSES + KANBAN_STATUSES))

# Dashboard labels for raw ticket status values
STATUS_LABELS = {"Open": "Pending"}


# ── Row addressing ──────────────────────────────────────────────────────────

def sheet_rows(values):
    """Data rows of a sheet (header excluded), tagged with 1-based sheet row numbers."""
    return [SheetRow(i + 2, list(r)) for i, r in enumerate(values[1:])]


def newest_first(rows):
    return list(reversed(rows))


def display_to_sheet_row(display_index, total):
    """Map a position in a newest-first list of ``total`` rows to its sheet row."""
    if not 0 <= display_index < total:
        raise IndexError(f"display index {display_index} out of range for {total} rows")
    return (total - 1 - display_index) + 2


def column_index(headers, name):
    return headers.index(name) if name in headers else -1


def cell(values, index):
    if index < 0 or index >= len(values):
        return ""
    return values[index] or ""


def row_to_dict(headers, values):
    return {h: cell(values, i) for i, h in enumerate(headers)}


def _is_all(value):
    return value is None or value == "" or str(value).lower() == "all"


# ── Dates ───────────────────────────────────────────────────────────────────

def parse_timestamp(text):
    """Parse sheet timestamps ('YYYY-MM-DD HH:MM:SS', ISO 8601, 'MM/DD/YYYY')."""
    if not text:
        return None
    text = str(text).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_iso(text):
    """Sheet timestamp -> ISO 8601 in UTC, or '' when it cannot be read."""
    parsed = parse_timestamp(text)
    if parsed is None:
        return ""
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def in_date_range(text, date_from=None, date_to=None, today=None):
    """Inclusive day-level range check; an open end defaults to today."""
    if date_from is None and date_to is None:
        return True
    parsed = parse_timestamp(text)
    if parsed is None:
        return False
    day = parsed.date()
    start = date_from or date.min
    end = date_to or today or date.today()
    return start <= day <= end


# ── Ticket dashboard ────────────────────────────────────────────────────────

def normalize_ticket_headers(headers):
    """Make sure the dashboard has a ``Team`` column to filter on."""
    normalized = list(headers)
    if "Team" in normalized:
        return normalized
    for i, h in enumerate(normalized):
        if h.lower().startswith(TEAM_QUESTION_PREFIX):
            normalized[i] = "Team"
            break
    else:
        normalized.append("Team")
    return normalized


def ticket_filter_options(headers, rows, teams=(), work_types=()):
    status_idx = column_index(headers, "Status")
    statuses = []
    if status_idx != -1:
        for r in rows:
            status = cell(r.values, status_idx)
            status = STATUS_LABELS.get(status, status)
            if status and status not in statuses:
                statuses.append(status)
    return {
        "statuses": ["All"] + statuses,
        "teams": ["All"] + list(teams),
        "work_types": ["All"] + list(work_types),
    }


def _status_matches(value, wanted):
    return value == wanted or STATUS_LABELS.get(value) == wanted


def filter_tickets(headers, rows, search="", date_from=None, date_to=None,
                   status="All", team="All", work_type="All", today=None):
    id_idx = column_index(headers, "Ticket ID")
    date_idx = column_index(headers, "Created Date")
    status_idx = column_index(headers, "Status")
    team_idx = column_index(headers, "Team")
    work_type_idx = column_index(headers, "Work Type")
    query = (search or "").lower()

    result = []
    for r in rows:
        if query and id_idx != -1 and query not in cell(r.values, id_idx).lower():
            continue
        if date_idx != -1 and not in_date_range(cell(r.values, date_idx), date_from, date_to, today):
            continue
        if not _is_all(status) and (status_idx == -1 or not _status_matches(cell(r.values, status_idx), status)):
            continue
        if not _is_all(team) and (team_idx == -1 or team not in cell(r.values, team_idx).split(", ")):
            continue
        if not _is_all(work_type) and (work_type_idx == -1 or cell(r.values, work_type_idx) != work_type):
            continue
        result.append(r)
    return result


def ticket_stats(headers, rows):
    status_idx = column_index(headers, "Status")
    stats = {"total": len(rows), "solved": 0, "in_progress": 0, "pending": 0}
    if status_idx == -1:
        return stats
    for r in rows:
        status = cell(r.values, status_idx)
        if status == "Done":
            stats["solved"] += 1
        elif status == "In Progress":
            stats["in_progress"] += 1
        elif status == "Open":
            stats["pending"] += 1
    return stats


def visible_ticket_headers(headers):
    return [h for h in headers if h in TICKET_VISIBLE_COLUMNS]


def clean_header(header):
    """Drop parenthesised annotations such as '(Select: a;b)' from a header."""
    return re.sub(r"\s*\(.*?\)", "", header).strip()


def ticket_details(headers, values, visible=TICKET_VISIBLE_COLUMNS):
    details = {}
    for i, h in enumerate(headers):
        if h in visible:
            continue
        details[clean_header(h)] = cell(values, i) or "N/A"
    return details


# ── Projects ────────────────────────────────────────────────────────────────

def filter_projects(headers, rows, search="", status="all", project_id="", ticket_id=""):
    id_idx = column_index(headers, "Project ID")
    title_idx = column_index(headers, "Project Title")
    status_idx = column_index(headers, "Status")
    ticket_idx = column_index(headers, "Ticket ID")
    query = (search or "").lower()

    result = []
    for r in rows:
        pid = cell(r.values, id_idx).lower()
        if query and query not in pid and query not in cell(r.values, title_idx).lower():
            continue
        if not _is_all(status) and (status_idx == -1 or cell(r.values, status_idx) != status):
            continue
        if project_id and project_id.lower() not in pid:
            continue
        if ticket_id and ticket_id.lower() not in cell(r.values, ticket_idx).lower():
            continue
        result.append(r)
    return result


def kanban_projects(headers, rows):
    """Projects with an initialised board, newest first."""
    idx = column_index(headers, "Kanban Initialized")
    if idx == -1:
        return []
    return newest_first([r for r in rows if cell(r.values, idx) == "Yes"])


# ── Kanban ──────────────────────────────────────────────────────────────────

def group_kanban_tasks(tasks):
    """Bucket tasks into board columns ordered by sequence; unknown status -> todo."""
    columns = {col: [] for col in KANBAN_COLUMNS}
    for task in sorted(tasks, key=lambda t: t["sequence"]):
        columns.get(task["status"], columns["todo"]).append(task)
    return columns


def member_teams(members):
    """Distinct teams from Members rows (``[name, team]``)."""
    return list(dict.fromkeys(m[1] for m in members if len(m) > 1 and m[1]))


def filter_kanban_columns(columns, search="", team="all", priority="all", members=()):
    team_of = {}
    for m in members:
        if m and m[0] not in team_of:
            team_of[m[0]] = m[1] if len(m) > 1 else ""
    query = (search or "").lower()

    def keep(task):
        if not _is_all(team) and team_of.get(task["assignee"], "") != team:
            return False
        if not _is_all(priority) and task["priority"] != priority:
            return False
        if query and query not in task["title"].lower() and query not in (task["description"] or "").lower():
            return False
        return True

    return {col: [t for t in tasks if keep(t)] for col, tasks in columns.items()}


def _resequence(tasks):
    return [{"sheet_row": t["sheet_row"], "sequence": i + 1} for i, t in enumerate(tasks)]


def move_task(columns, source_col, source_index, dest_col, dest_index):
    """Apply a drag-and-drop move.

    Returns ``(new_columns, status_change, sequence_updates)``. Sequence numbers
    are rewritten ``1..n`` for each affected column; ``status_change`` is None
    for a move within one column.
    """
    for col in (source_col, dest_col):
        if col not in columns:
            raise ValueError(f"Unknown column: {col}")
    if not 0 <= source_index < len(columns[source_col]):
        raise ValueError(f"No task at position {source_index} in {source_col}")

    new_columns = {col: [dict(t) for t in tasks] for col, tasks in columns.items()}
    if source_col == dest_col and source_index == dest_index:
        return new_columns, None, []

    source = new_columns[source_col]
    moved = source.pop(source_index)
    dest = new_columns[dest_col]
    dest_index = max(0, min(dest_index, len(dest)))

    if source_col == dest_col:
        dest.insert(dest_index, moved)
        return new_columns, None, _resequence(dest)

    moved["status"] = dest_col
    dest.insert(dest_index, moved)
    for i, t in enumerate(source):
        t["sequence"] = i + 1
    for i, t in enumerate(dest):
        t["sequence"] = i + 1
    status_change = {"sheet_row": moved["sheet_row"], "status": dest_col}
    return new_columns, status_change, _resequence(source) + _resequence(dest)


# ── My tasks ────────────────────────────────────────────────────────────────

def statuses_for_source(source):
    if source == "Ticket":
        return list(TICKET_STATUSES)
    if source == "Project":
        return list(PROJECT_STATUSES)
    if source == "Kanban Task":
        return list(KANBAN_STATUSES)
    return list(ALL_STATUSES)


def filter_my_tasks(tasks, search="", source="all", status="all", date_from=None, date_to=None, today=None):
    query = (search or "").lower()
    # A status that the chosen source never uses resets to "all"
    if not _is_all(status) and status not in statuses_for_source(None if _is_all(source) else source):
        status = "all"

    result = []
    for task in tasks:
        if query and query not in task["title"].lower():
            continue
        if not _is_all(source) and task["source"] != source:
            continue
        if not _is_all(status) and task["status"] != status:
            continue
        if (date_from or date_to) and not task["date"]:
            continue
        if not in_date_range(task["date"], date_from, date_to, today):
            continue
        result.append(task)
    return result
