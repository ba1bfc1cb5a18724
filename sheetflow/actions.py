"""Server actions: one function per user-facing operation.

Every mutating action returns ``{"success": True, ...}`` or
``{"success": False, "error": "<message>"}``; failures are logged here and
never raised to the caller.
"""

import csv
import functools
import io
import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone

from openpyxl import Workbook

import boards
import settings
from forms import make_question, merge_questions, normalize_submission, validate_submission
from init_sheets import (
    DEFAULT_MEMBER, DEFAULT_WORK_TYPE_QUESTION, DEFAULT_WORK_TYPES, FORM_QUESTIONS, KANBAN_TASKS,
    MEMBERS, PREDEFINED_TEAMS, PROJECTS, SHEET_HEADERS, SOURCE_SHEETS, TICKETS, WORK_TYPES,
    seed_team_members, seed_work_types,
)
from sheets import (
    SheetError, SheetNotFoundError, delete_rows_request, update_cell_request,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_QUESTION = "Default placeholder question (can be deleted)"


def ok(**extra):
    return {"success": True, **extra}


def fail(message):
    return {"success": False, "error": message}


def handles_errors(what, fallback=None):
    """Log any exception from the wrapped action and turn it into a result value.

    Without ``fallback`` the result is a failure dict; with it, ``fallback()``
    is returned instead (for reads whose callers expect a list).
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.exception("Error %s", what)
                if fallback is not None:
                    return fallback()
                return fail(str(e) or "An unknown error occurred.")
        return wrapper
    return decorator


def utc_now():
    return datetime.now(timezone.utc)


def _millis(now):
    return int(now.timestamp() * 1000)


def local_timestamp(now):
    """'YYYY-MM-DD HH:MM:SS' in the configured fixed offset."""
    return (now + timedelta(hours=settings.UTC_OFFSET_HOURS)).strftime("%Y-%m-%d %H:%M:%S")


def _row_payload(row, headers):
    return {"sheet_row": row.sheet_row, "values": row.values, "record": boards.row_to_dict(headers, row.values)}


def _update_row(store, sheet, sheet_row, new_values, create_missing=False, noun="rows"):
    """Write ``header -> value`` pairs into one row with a single batch update."""
    values = store.get_values(sheet)
    if not values:
        return fail(f"No {noun} found to update.")
    if sheet_row < 2 or sheet_row > len(values):
        return fail(f"Row {sheet_row} not found in {sheet}.")

    headers = list(values[0])
    sheet_id = store.get_sheet_id(sheet)
    requests = []
    for header, value in new_values.items():
        col = boards.column_index(headers, header)
        if col == -1:
            if not create_missing:
                continue
            headers = store.add_column(header, sheet)
            col = boards.column_index(headers, header)
            if col == -1:
                logger.warning("Could not find or create column %s in %s", header, sheet)
                continue
        requests.append(update_cell_request(sheet_id, sheet_row - 1, col, "" if value is None else value))

    if not requests:
        return ok()
    store.batch_update(requests)
    return ok()


# ══════════════════════════════════════════════════════════════════════════════
# Tickets
# ══════════════════════════════════════════════════════════════════════════════

@handles_errors("submitting ticket")
def submit_ticket(store, data, now=None):
    now = now or utc_now()
    ticket_id = f"TICKET-{_millis(now)}"
    row = dict(data)
    row.update({
        "Ticket ID": ticket_id,
        "Created Date": local_timestamp(now),
        "Status": "In Review",
        "Assignee": "",
    })
    if not store.get_values(TICKETS):
        store.ensure_headers(TICKETS, SHEET_HEADERS[TICKETS])
    sheet_row = store.append_row(row, TICKETS)
    logger.info("Ticket %s submitted (row %d)", ticket_id, sheet_row)
    return ok(ticket_id=ticket_id, sheet_row=sheet_row)


def submit_ticket_form(store, teams, work_type, values, now=None):
    """Validate answers against the teams' questions, then submit the ticket."""
    if not teams:
        return fail("Select at least one team.")
    if not work_type:
        return fail("Select a work type.")

    questions = merge_questions([get_form_questions(store, t) for t in teams])
    errors = validate_submission(questions, values)
    if errors:
        return {"success": False, "error": "Please fill in all required fields.", "fields": errors}

    answers = {q["question_text"]: values.get(q["question_text"], "") for q in questions}
    answers.update({"Team": list(teams), "Work Type": work_type})
    return submit_ticket(store, normalize_submission(questions, answers), now=now)


def get_all_tickets(store):
    return store.get_values(TICKETS)


@handles_errors("updating ticket")
def update_ticket(store, sheet_row, new_values):
    return _update_row(store, TICKETS, sheet_row, new_values, create_missing=True, noun="tickets")


def update_ticket_status(store, sheet_row, status):
    if not status:
        return fail("Status cannot be empty.")
    return update_ticket(store, sheet_row, {"Status": status})


# ══════════════════════════════════════════════════════════════════════════════
# Form questions & teams
# ══════════════════════════════════════════════════════════════════════════════

@handles_errors("loading form questions", fallback=list)
def get_form_questions(store, team):
    if not team:
        return []
    values = store.get_values(FORM_QUESTIONS)
    if not values:
        store.ensure_headers(FORM_QUESTIONS, SHEET_HEADERS[FORM_QUESTIONS])
        return []
    headers = values[0]
    team_idx = boards.column_index(headers, "Team")
    text_idx = boards.column_index(headers, "QuestionText")
    if team_idx == -1 or text_idx == -1:
        store.ensure_headers(FORM_QUESTIONS, SHEET_HEADERS[FORM_QUESTIONS])
        return []

    questions = []
    for position, r in enumerate(values[1:], start=1):
        text = boards.cell(r, text_idx)
        if boards.cell(r, team_idx) == team and text:
            questions.append(make_question(text, position))
    return questions


@handles_errors("loading teams", fallback=list)
def get_teams(store):
    values = store.get_values(FORM_QUESTIONS)
    if not values:
        return []
    team_idx = max(boards.column_index(values[0], "Team"), 0)
    return list(dict.fromkeys(boards.cell(r, team_idx) for r in values[1:] if boards.cell(r, team_idx)))


def add_team(store, team_name):
    # A team exists once it has at least one question
    return add_form_question(store, team_name, PLACEHOLDER_QUESTION)


@handles_errors("adding form question")
def add_form_question(store, team, question_text):
    if not team or not question_text:
        return fail("Team and question text cannot be empty.")
    store.ensure_headers(FORM_QUESTIONS, SHEET_HEADERS[FORM_QUESTIONS])
    sheet_row = store.append_row({"Team": team, "QuestionText": question_text}, FORM_QUESTIONS)
    return ok(sheet_row=sheet_row)


def _find_question_row(store, team, question_text):
    """Return ``(row_index, question_col)``, both 0-based."""
    values = store.get_values(FORM_QUESTIONS)
    if not values:
        raise SheetNotFoundError("FormQuestions is empty or not found.")
    headers = values[0]
    team_idx = boards.column_index(headers, "Team")
    text_idx = boards.column_index(headers, "QuestionText")
    if team_idx == -1 or text_idx == -1:
        raise SheetNotFoundError("Required columns (Team, QuestionText) not found in FormQuestions.")
    for i, r in enumerate(values):
        if i and boards.cell(r, team_idx) == team and boards.cell(r, text_idx) == question_text:
            return i, text_idx
    raise SheetNotFoundError(f'Question "{question_text}" for team "{team}" not found.')


@handles_errors("updating form question")
def update_form_question(store, team, original_text, new_text):
    if not new_text:
        return fail("New question text cannot be empty.")
    row_index, col = _find_question_row(store, team, original_text)
    sheet_id = store.get_sheet_id(FORM_QUESTIONS)
    store.batch_update([update_cell_request(sheet_id, row_index, col, new_text)])
    return ok()


@handles_errors("deleting form question")
def delete_form_question(store, team, question_text):
    row_index, _ = _find_question_row(store, team, question_text)
    sheet_id = store.get_sheet_id(FORM_QUESTIONS)
    store.batch_update([delete_rows_request(sheet_id, row_index)])
    return ok()


def _default_answer(question):
    if question["question_type"] == "Checkbox":
        return {option: False for option in question["options"]}
    if question["question_type"] == "Date":
        return None
    return ""


def get_form_schema(store, teams, work_type):
    """Questions for the selected teams, merged, with their default answers."""
    questions = merge_questions([get_form_questions(store, t) for t in teams])
    defaults = {"Team": ", ".join(teams), "Work Type": work_type}
    for q in questions:
        defaults[q["question_text"]] = _default_answer(q)
    return {"teams": list(teams), "work_type": work_type, "questions": questions, "defaults": defaults}


# ══════════════════════════════════════════════════════════════════════════════
# Members
# ══════════════════════════════════════════════════════════════════════════════

def get_members(store):
    return store.get_values(MEMBERS)


@handles_errors("adding member")
def add_member(store, name, team):
    if not name or not team:
        return fail("Name and team are required.")
    seeded = seed_team_members(store)
    if seeded:
        logger.info("Seeded default members for %s", ", ".join(seeded))
    if name == DEFAULT_MEMBER and team in PREDEFINED_TEAMS:
        return ok()
    sheet_row = store.append_row({"Name": name, "Team": team}, MEMBERS)
    return ok(sheet_row=sheet_row)


# ══════════════════════════════════════════════════════════════════════════════
# Projects
# ══════════════════════════════════════════════════════════════════════════════

def get_projects(store):
    return store.get_values(PROJECTS)


def _new_project(project_id, title, ticket_id=""):
    return {
        "Project ID": project_id,
        "Project Title": title,
        "Ticket ID": ticket_id,
        "Status": "In Review",
        "Start Date": "",
        "End Date": "",
        "Assignee": "",
        "Kanban Initialized": "No",
    }


@handles_errors("creating project")
def create_project_from_ticket(store, ticket_sheet_row, project_title, now=None):
    if not project_title:
        return fail("Project title is required.")
    tickets = store.get_values(TICKETS)
    if not tickets:
        return fail("No tickets found.")
    ticket_headers = tickets[0]
    ticket_id_idx = boards.column_index(ticket_headers, "Ticket ID")
    if ticket_id_idx == -1:
        return fail("Ticket ID column not found in the source sheet.")
    if ticket_sheet_row < 2 or ticket_sheet_row > len(tickets):
        return fail(f"Row {ticket_sheet_row} not found in {TICKETS}.")
    ticket_values = tickets[ticket_sheet_row - 1]
    ticket_id = boards.cell(ticket_values, ticket_id_idx)

    now = now or utc_now()
    project_id = f"PROJ-{_millis(now)}"
    project_headers = store.ensure_headers(PROJECTS, SHEET_HEADERS[PROJECTS])
    project = _new_project(project_id, project_title, ticket_id)
    for i, header in enumerate(ticket_headers):
        if header != "Ticket ID" and header in project_headers:
            project[header] = boards.cell(ticket_values, i)

    sheet_row = store.append_row(project, PROJECTS)
    logger.info("Project %s created from ticket %s", project_id, ticket_id)

    result = update_ticket(store, ticket_sheet_row, {"Status": "Completed"})
    if not result["success"]:
        return result
    return ok(project_id=project_id, sheet_row=sheet_row)


@handles_errors("creating manual project")
def create_manual_project(store, project_title, now=None):
    if not project_title:
        return fail("Project title is required.")
    now = now or utc_now()
    project_id = f"PROJ-{_millis(now)}"
    store.ensure_headers(PROJECTS, SHEET_HEADERS[PROJECTS])
    sheet_row = store.append_row(_new_project(project_id, project_title), PROJECTS)
    return ok(project_id=project_id, sheet_row=sheet_row)


@handles_errors("updating project")
def update_project(store, sheet_row, new_values):
    return _update_row(store, PROJECTS, sheet_row, new_values, noun="projects")


@handles_errors("initializing Kanban")
def initialize_kanban(store, sheet_row, project_id, now=None):
    if not project_id:
        return fail("Project ID is required.")
    projects = store.get_values(PROJECTS)
    if not projects or not 2 <= sheet_row <= len(projects):
        return fail(f"Row {sheet_row} not found in {PROJECTS}.")
    project = boards.row_to_dict(projects[0], projects[sheet_row - 1])
    if project.get("Project ID", "") != project_id:
        return fail(f"Row {sheet_row} does not hold project {project_id}.")
    if project.get("Kanban Initialized", "") == "Yes":
        return fail(f"Kanban board already initialized for {project_id}.")

    now = now or utc_now()
    store.ensure_headers(KANBAN_TASKS, SHEET_HEADERS[KANBAN_TASKS])
    store.append_row({
        "Project ID": project_id,
        "Sequence": "1",
        "Task ID": f"TASK-{_millis(now)}",
        "Title": "Project Kick-off",
        "Status": "todo",
        "Assignee": "",
        "Due Date": "",
        "Description": "Initial setup and planning for the project.",
        "Type": "Planning",
        "Priority": "High",
        "Tags": "kickoff,planning",
    }, KANBAN_TASKS)
    return update_project(store, sheet_row, {"Kanban Initialized": "Yes"})


# ══════════════════════════════════════════════════════════════════════════════
# Kanban tasks
# ══════════════════════════════════════════════════════════════════════════════

# task field -> KanbanTasks header
KANBAN_FIELDS = {
    "title": "Title",
    "description": "Description",
    "type": "Type",
    "priority": "Priority",
    "assignee": "Assignee",
    "due_date": "Due Date",
    "tags": "Tags",
    "sequence": "Sequence",
    "status": "Status",
}


def _split_tags(raw):
    return [t.strip() for t in raw.split(",") if t.strip()] if raw else []


def _field_value(field, value):
    if field == "tags" and isinstance(value, (list, tuple)):
        return ",".join(value)
    return str(value)


def _read_kanban_tasks(store):
    values = store.get_values(KANBAN_TASKS)
    if not values:
        return []
    headers = values[0]
    idx = {h: boards.column_index(headers, h) for h in SHEET_HEADERS[KANBAN_TASKS]}
    if idx["Project ID"] == -1 or idx["Task ID"] == -1 or idx["Status"] == -1:
        raise SheetNotFoundError("Required columns (Project ID, Task ID, Status) not found in KanbanTasks.")

    tasks = []
    for i, r in enumerate(values[1:]):
        try:
            sequence = int(boards.cell(r, idx["Sequence"]))
        except ValueError:
            sequence = i + 1
        tasks.append({
            "sheet_row": i + 2,
            "id": boards.cell(r, idx["Task ID"]),
            "project_id": boards.cell(r, idx["Project ID"]),
            "sequence": sequence,
            "title": boards.cell(r, idx["Title"]),
            "status": boards.cell(r, idx["Status"]),
            "assignee": boards.cell(r, idx["Assignee"]),
            "due_date": boards.cell(r, idx["Due Date"]),
            "description": boards.cell(r, idx["Description"]),
            "type": boards.cell(r, idx["Type"]) or "Task",
            "priority": boards.cell(r, idx["Priority"]) or "Medium",
            "tags": _split_tags(boards.cell(r, idx["Tags"])),
        })
    return tasks


@handles_errors("fetching Kanban tasks", fallback=list)
def get_kanban_tasks(store, project_id):
    return [t for t in _read_kanban_tasks(store) if t["project_id"] == project_id]


@handles_errors("adding Kanban task")
def add_kanban_task(store, project_id, task, now=None):
    if not project_id:
        return fail("Project ID is required.")
    if not (task.get("title") or "").strip():
        return fail("Task title is required.")
    existing = get_kanban_tasks(store, project_id)
    next_sequence = max((t["sequence"] for t in existing), default=0) + 1

    now = now or utc_now()
    task_id = f"TASK-{_millis(now)}"
    store.ensure_headers(KANBAN_TASKS, SHEET_HEADERS[KANBAN_TASKS])
    sheet_row = store.append_row({
        "Project ID": project_id,
        "Sequence": str(next_sequence),
        "Task ID": task_id,
        "Title": task["title"].strip(),
        "Status": "todo",
        "Description": task.get("description", ""),
        "Type": task.get("type", "Task"),
        "Priority": task.get("priority", "Medium"),
        "Assignee": task.get("assignee", ""),
        "Due Date": task.get("due_date", ""),
        "Tags": _field_value("tags", task.get("tags") or []),
    }, KANBAN_TASKS)
    return ok(task_id=task_id, sheet_row=sheet_row, sequence=next_sequence)


@handles_errors("updating Kanban task")
def update_kanban_task(store, sheet_row, fields):
    changes = {
        KANBAN_FIELDS[field]: _field_value(field, value)
        for field, value in fields.items()
        if field in KANBAN_FIELDS and value is not None
    }
    if "Title" in changes and not changes["Title"].strip():
        return fail("Task title is required.")
    return _update_row(store, KANBAN_TASKS, sheet_row, changes, noun="kanban data")


@handles_errors("batch updating sequence")
def batch_update_kanban_task_sequence(store, updates):
    if not updates:
        return ok()
    values = store.get_values(KANBAN_TASKS)
    if not values:
        return fail("No kanban data found to update.")
    seq_col = boards.column_index(values[0], "Sequence")
    if seq_col == -1:
        return fail("Sequence column not found.")
    sheet_id = store.get_sheet_id(KANBAN_TASKS)
    store.batch_update([
        update_cell_request(sheet_id, u["sheet_row"] - 1, seq_col, str(u["sequence"]))
        for u in updates
    ])
    return ok()


@handles_errors("updating task status")
def update_kanban_task_status(store, sheet_row, status):
    if status not in boards.KANBAN_STATUSES:
        return fail(f'Unknown Kanban status "{status}".')
    values = store.get_values(KANBAN_TASKS)
    if not values:
        return fail("No kanban data found to update.")
    if boards.column_index(values[0], "Status") == -1:
        return fail("Status column not found in KanbanTasks.")
    return _update_row(store, KANBAN_TASKS, sheet_row, {"Status": status}, noun="kanban data")


@handles_errors("deleting task")
def delete_kanban_task(store, sheet_row, task_id=None):
    """Delete one task row; with ``task_id`` the row must still hold that task."""
    values = store.get_values(KANBAN_TASKS)
    if sheet_row < 2 or sheet_row > len(values):
        return fail(f"Row {sheet_row} not found in {KANBAN_TASKS}.")
    if task_id is not None:
        id_idx = boards.column_index(values[0], "Task ID")
        if boards.cell(values[sheet_row - 1], id_idx) != task_id:
            return fail(f"Row {sheet_row} does not hold task {task_id}.")
    sheet_id = store.get_sheet_id(KANBAN_TASKS)
    store.batch_update([delete_rows_request(sheet_id, sheet_row - 1)])
    return ok()


def get_kanban_board(store, project_id, search="", team="all", priority="all"):
    tasks = get_kanban_tasks(store, project_id)
    members = get_members(store)[1:]
    columns = boards.filter_kanban_columns(boards.group_kanban_tasks(tasks), search, team, priority, members)
    return {
        "project_id": project_id,
        "total": len(tasks),
        "teams": boards.member_teams(members),
        "members": members,
        "columns": {
            col: {"title": title, "tasks": columns[col]}
            for col, title in boards.KANBAN_COLUMNS.items()
        },
    }


@handles_errors("moving Kanban task")
def move_kanban_task(store, project_id, source_col, source_index, dest_col, dest_index):
    """Drag-and-drop: positions index the unfiltered board columns."""
    columns = boards.group_kanban_tasks(get_kanban_tasks(store, project_id))
    try:
        new_columns, status_change, sequence_updates = boards.move_task(
            columns, source_col, source_index, dest_col, dest_index)
    except ValueError as e:
        return fail(str(e))
    if status_change is None and not sequence_updates:
        return ok(columns=new_columns)

    values = store.get_values(KANBAN_TASKS)
    headers = values[0]
    seq_col = boards.column_index(headers, "Sequence")
    status_col = boards.column_index(headers, "Status")
    if seq_col == -1:
        return fail("Sequence column not found.")
    if status_change and status_col == -1:
        return fail("Status column not found in KanbanTasks.")
    sheet_id = store.get_sheet_id(KANBAN_TASKS)

    requests = []
    if status_change:
        requests.append(update_cell_request(sheet_id, status_change["sheet_row"] - 1, status_col,
                                            status_change["status"]))
    for u in sequence_updates:
        requests.append(update_cell_request(sheet_id, u["sheet_row"] - 1, seq_col, str(u["sequence"])))
    store.batch_update(requests)
    return ok(columns=boards.group_kanban_tasks(get_kanban_tasks(store, project_id)))


# ══════════════════════════════════════════════════════════════════════════════
# Work types
# ══════════════════════════════════════════════════════════════════════════════

def _default_work_types():
    return {"question": DEFAULT_WORK_TYPE_QUESTION, "options": list(DEFAULT_WORK_TYPES)}


@handles_errors("loading work types", fallback=_default_work_types)
def get_work_types(store):
    values = store.get_values(WORK_TYPES)
    if not values:
        seed_work_types(store)
        values = store.get_values(WORK_TYPES)
    if not values:
        raise SheetError("Work types sheet is not configured correctly.")
    question = boards.cell(values[0], 0) or DEFAULT_WORK_TYPE_QUESTION
    options = [boards.cell(r, 0) for r in values[1:] if boards.cell(r, 0)]
    return {"question": question, "options": options}


@handles_errors("adding work type option")
def add_work_type_option(store, option):
    if not option:
        return fail("Option cannot be empty.")
    values = store.get_values(WORK_TYPES)
    if not values:
        return fail("Work types sheet not found or is empty.")
    header = values[0][0]
    sheet_row = store.append_row({header: option}, WORK_TYPES)
    return ok(sheet_row=sheet_row)


def _find_work_type_row(store, option):
    values = store.get_values(WORK_TYPES)
    if not values:
        raise SheetNotFoundError("WorkTypes is empty.")
    for i, r in enumerate(values[1:], start=1):
        if boards.cell(r, 0) == option:
            return i
    raise SheetNotFoundError(f'Option "{option}" not found.')


@handles_errors("updating work type option")
def update_work_type_option(store, original_option, new_option):
    if not new_option:
        return fail("Option cannot be empty.")
    row_index = _find_work_type_row(store, original_option)
    sheet_id = store.get_sheet_id(WORK_TYPES)
    store.batch_update([update_cell_request(sheet_id, row_index, 0, new_option)])
    return ok()


@handles_errors("deleting work type option")
def delete_work_type_option(store, option):
    row_index = _find_work_type_row(store, option)
    sheet_id = store.get_sheet_id(WORK_TYPES)
    store.batch_update([delete_rows_request(sheet_id, row_index)])
    return ok()


@handles_errors("updating work type question")
def update_work_type_question(store, new_question):
    if not new_question:
        return fail("Question cannot be empty.")
    sheet_id = store.get_sheet_id(WORK_TYPES)
    store.batch_update([update_cell_request(sheet_id, 0, 0, new_question)])
    return ok()


# ══════════════════════════════════════════════════════════════════════════════
# My tasks
# ══════════════════════════════════════════════════════════════════════════════

AssignmentSource = namedtuple(
    "AssignmentSource",
    ["source", "sheet", "id_header", "title_header", "ref_header", "date_header",
     "default_status", "untitled", "fallback_prefix"],
)

ASSIGNMENT_SOURCES = [
    AssignmentSource("Ticket", TICKETS, "Ticket ID", "Product/Course/Requisition Name", "Ticket ID",
                     "Created Date", "In Review", "Untitled Ticket", "ticket"),
    AssignmentSource("Project", PROJECTS, "Project ID", "Project Title", "Project ID",
                     "Start Date", "In Review", "Untitled Project", "project"),
    AssignmentSource("Kanban Task", KANBAN_TASKS, "Task ID", "Title", "Project ID",
                     "Due Date", "todo", "Untitled Task", "kanban"),
]


def _assigned_rows(values, src, assignee):
    headers = values[0]
    assignee_idx = boards.column_index(headers, "Assignee")
    if assignee_idx == -1:
        return []
    idx = {h: boards.column_index(headers, h)
           for h in (src.id_header, src.title_header, src.ref_header, src.date_header, "Status")}

    found = []
    for i, r in enumerate(values[1:]):
        if boards.cell(r, assignee_idx).lower() != assignee:
            continue
        title = boards.cell(r, idx[src.title_header]) or src.untitled
        found.append({
            "id": boards.cell(r, idx[src.id_header]) or f"{src.fallback_prefix}-{i}",
            "title": f"{title} / {boards.cell(r, idx[src.ref_header])}",
            "status": boards.cell(r, idx["Status"]) or src.default_status,
            "source": src.source,
            "sheet_row": i + 2,
            "date": boards.to_iso(boards.cell(r, idx[src.date_header])),
        })
    return found


@handles_errors("fetching assigned tasks", fallback=list)
def get_my_assigned_tasks(store, assignee_name):
    if not assignee_name:
        return []
    assignee = assignee_name.lower()
    tasks = []
    for src in ASSIGNMENT_SOURCES:
        values = store.get_values(src.sheet)
        if values:
            tasks.extend(_assigned_rows(values, src, assignee))
    return tasks


@handles_errors("updating task status")
def update_my_task_status(store, source, sheet_row, new_status):
    sheet = SOURCE_SHEETS.get(source)
    if sheet is None:
        return fail("Invalid task source.")
    values = store.get_values(sheet)
    if not values:
        return fail(f'Sheet "{sheet}" not found or is empty.')
    if boards.column_index(values[0], "Status") == -1:
        headers = store.add_column("Status", sheet)
        if "Status" not in headers:
            return fail(f'Failed to create and find Status column in "{sheet}".')
    return _update_row(store, sheet, sheet_row, {"Status": new_status}, noun="rows")


# ══════════════════════════════════════════════════════════════════════════════
# Page data
# ══════════════════════════════════════════════════════════════════════════════

def _empty_dashboard():
    return {
        "headers": [],
        "tickets": [],
        "stats": {"total": 0, "solved": 0, "in_progress": 0, "pending": 0},
        "filters": {"statuses": ["All"], "teams": ["All"], "work_types": ["All"]},
    }


@handles_errors("fetching dashboard data", fallback=_empty_dashboard)
def get_dashboard(store, search="", date_from=None, date_to=None, status="All", team="All", work_type="All"):
    values = get_all_tickets(store)
    if not values:
        dashboard = _empty_dashboard()
    else:
        headers = boards.normalize_ticket_headers(values[0])
        rows = boards.newest_first(boards.sheet_rows(values))
        shown = boards.filter_tickets(headers, rows, search, date_from, date_to, status, team, work_type)
        dashboard = {
            "headers": headers,
            "tickets": [_row_payload(r, headers) for r in shown],
            "stats": boards.ticket_stats(headers, shown),
            "filters": boards.ticket_filter_options(headers, rows),
        }
    teams = get_teams(store)
    options = get_work_types(store)["options"]
    dashboard["filters"]["teams"] = ["All"] + teams
    dashboard["filters"]["work_types"] = ["All"] + options
    return dashboard


def get_ticket_list(store, date_from=None, date_to=None):
    """Admin ticket table: newest first, visible columns plus per-row details."""
    values = get_all_tickets(store)
    if not values:
        return {"headers": [], "visible_headers": [], "tickets": [], "statuses": boards.TICKET_STATUSES}
    headers = values[0]
    rows = boards.filter_tickets(headers, boards.newest_first(boards.sheet_rows(values)),
                                 date_from=date_from, date_to=date_to)
    tickets = []
    for r in rows:
        payload = _row_payload(r, headers)
        payload["details"] = boards.ticket_details(headers, r.values)
        tickets.append(payload)
    return {
        "headers": headers,
        "visible_headers": boards.visible_ticket_headers(headers),
        "tickets": tickets,
        "statuses": boards.TICKET_STATUSES,
    }


def get_project_list(store, search="", status="all", project_id="", ticket_id=""):
    values = get_projects(store)
    if not values:
        return {"headers": [], "visible_headers": [], "projects": [], "statuses": boards.PROJECT_STATUSES}
    headers = values[0]
    rows = boards.filter_projects(headers, boards.newest_first(boards.sheet_rows(values)),
                                  search, status, project_id, ticket_id)
    return {
        "headers": headers,
        "visible_headers": [h for h in headers if h in boards.PROJECT_VISIBLE_COLUMNS],
        "projects": [_row_payload(r, headers) for r in rows],
        "statuses": boards.PROJECT_STATUSES,
    }


def get_kanban_project_list(store):
    values = get_projects(store)
    if not values:
        return []
    headers = values[0]
    return [_row_payload(r, headers) for r in boards.kanban_projects(headers, boards.sheet_rows(values))]


def get_my_task_list(store, assignee_name, search="", source="all", status="all", date_from=None, date_to=None):
    tasks = get_my_assigned_tasks(store, assignee_name)
    return {
        "tasks": boards.filter_my_tasks(tasks, search, source, status, date_from, date_to),
        "statuses": boards.statuses_for_source(None if source in ("", "all") else source),
        "total": len(tasks),
    }


# ══════════════════════════════════════════════════════════════════════════════
# Export
# ══════════════════════════════════════════════════════════════════════════════

EXPORT_FORMATS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


def export_sheet(store, sheet, fmt="xlsx"):
    """Return ``(payload_bytes, media_type, filename)`` for one sheet."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}. Use xlsx or csv")
    if sheet not in store.sheet_names():
        raise SheetNotFoundError(f"Sheet {sheet} not found.")
    values = store.get_values(sheet)
    filename = f"{sheet}.{fmt}"

    if fmt == "xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = sheet
        for r in values:
            ws.append(r)
        output = io.BytesIO()
        wb.save(output)
        return output.getvalue(), EXPORT_FORMATS[fmt], filename

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerows(values)
    return output.getvalue().encode("utf-8-sig"), EXPORT_FORMATS[fmt], filename
