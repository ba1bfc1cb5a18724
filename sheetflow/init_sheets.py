"""Sheet layouts and workbook bootstrap: headers only, no sample rows."""

import logging

import settings
from sheets import create_store

logger = logging.getLogger(__name__)

TICKETS = "Tickets"
PROJECTS = "Projects"
KANBAN_TASKS = "KanbanTasks"
MEMBERS = "Members"
FORM_QUESTIONS = "FormQuestions"
WORK_TYPES = "WorkTypes"

SHEET_HEADERS = {
    TICKETS: ["Ticket ID", "Created Date", "Status", "Assignee", "Team", "Work Type"],
    PROJECTS: ["Project ID", "Project Title", "Ticket ID", "Status", "Start Date", "End Date",
               "Assignee", "Kanban Initialized"],
    KANBAN_TASKS: ["Project ID", "Sequence", "Task ID", "Title", "Status", "Assignee", "Due Date",
                   "Description", "Type", "Priority", "Tags"],
    MEMBERS: ["Name", "Team"],
    FORM_QUESTIONS: ["Team", "QuestionText"],
}

PREDEFINED_TEAMS = ["CM", "SMD", "QAC", "Class Ops"]
DEFAULT_MEMBER = "Team Default"

DEFAULT_WORK_TYPE_QUESTION = "What type of work is this?"
DEFAULT_WORK_TYPES = ["Urgent", "Regular"]

# Sheets whose rows carry a workflow status, keyed by "my tasks" source
SOURCE_SHEETS = {
    "Ticket": TICKETS,
    "Project": PROJECTS,
    "Kanban Task": KANBAN_TASKS,
}


def seed_work_types(store):
    """Write the default work-type question and options into an empty sheet."""
    if store.get_values(WORK_TYPES):
        return False
    store.get_sheet_id(WORK_TYPES)
    store.ensure_headers(WORK_TYPES, [DEFAULT_WORK_TYPE_QUESTION])
    for option in DEFAULT_WORK_TYPES:
        store.append_row({DEFAULT_WORK_TYPE_QUESTION: option}, WORK_TYPES)
    return True


def seed_team_members(store):
    """Give every predefined team a placeholder member; return the teams added."""
    store.ensure_headers(MEMBERS, SHEET_HEADERS[MEMBERS])
    values = store.get_values(MEMBERS)
    team_idx = values[0].index("Team")
    existing = {r[team_idx] for r in values[1:] if len(r) > team_idx}
    added = [t for t in PREDEFINED_TEAMS if t not in existing]
    for team in added:
        store.append_row({"Name": DEFAULT_MEMBER, "Team": team}, MEMBERS)
    return added


def init_workbook(store):
    """Create every sheet with its header row and seed lookups."""
    for sheet, headers in SHEET_HEADERS.items():
        store.ensure_headers(sheet, headers)
    seed_work_types(store)
    seed_team_members(store)
    logger.info("Sheets initialized: %s", ", ".join(list(SHEET_HEADERS) + [WORK_TYPES]))


if __name__ == "__main__":
    from log_config import setup_logging

    setup_logging()
    init_workbook(create_store(settings.BACKEND, settings.WORKBOOK_PATH,
                               settings.GOOGLE_SHEET_ID, settings.GOOGLE_CREDENTIALS))
    print("No sample data created. Submit tickets or add projects to get started")
    print("Run: python app.py")
