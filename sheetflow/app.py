"""SheetFlow: ticket intake, projects and Kanban boards on top of a spreadsheet. FastAPI JSON API."""

from datetime import date
from functools import lru_cache
import io
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
import uvicorn

import actions
import settings
from forms import build_question_header
from init_sheets import SOURCE_SHEETS, init_workbook
from sheets import SheetError, SheetNotFoundError, create_store

logger = logging.getLogger(__name__)

app = FastAPI(title="SheetFlow")


# ── Store & helpers ─────────────────────────────────────────────────────────

@lru_cache(maxsize=None)
def get_store():
    return create_store(settings.BACKEND, settings.WORKBOOK_PATH,
                        settings.GOOGLE_SHEET_ID, settings.GOOGLE_CREDENTIALS)


@app.exception_handler(SheetError)
async def sheet_error_handler(request: Request, exc: SheetError):
    logger.error("Sheet error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})


async def read_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, "Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(400, "Expected a JSON object")
    return body


def require(body, *keys):
    for key in keys:
        if key not in body:
            raise HTTPException(400, f"Missing field: {key}")
    return [body[key] for key in keys]


def require_text(body, *keys):
    values = require(body, *keys)
    for key, value in zip(keys, values):
        if not isinstance(value, str):
            raise HTTPException(400, f"{key} must be a string")
    return values


def optional_text(body, key):
    value = body.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise HTTPException(400, f"{key} must be a string")
    return value.strip()


def to_int(value, key):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(400, f"{key} must be an integer")


def question_header(body, text):
    """Build a question header from ``question_type``, ``options`` and ``required``."""
    question_type = body.get("question_type") or "Text"
    options = body.get("options") or []
    if not isinstance(question_type, str):
        raise HTTPException(400, "question_type must be a string")
    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        raise HTTPException(400, "options must be a list of strings")
    return build_question_header(text, question_type, options, bool(body.get("required")))


def respond(result):
    """Failed action results go back as HTTP 400 with the same body."""
    if not result.get("success", True):
        return JSONResponse(status_code=400, content=result)
    return result


@app.get("/api/health")
async def health():
    return {"ok": True, "backend": settings.BACKEND}


@app.post("/api/init")
async def api_init(store=Depends(get_store)):
    init_workbook(store)
    return {"success": True, "sheets": store.sheet_names()}


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Tickets
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/tickets")
async def api_tickets(date_from: date | None = None, date_to: date | None = None, store=Depends(get_store)):
    return actions.get_ticket_list(store, date_from, date_to)


@app.get("/api/tickets/raw")
async def api_tickets_raw(store=Depends(get_store)):
    return {"values": actions.get_all_tickets(store)}


@app.post("/api/tickets")
async def api_submit_ticket(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    teams = body.get("teams") or []
    if isinstance(teams, str):
        teams = [t.strip() for t in teams.split(",") if t.strip()]
    return respond(actions.submit_ticket_form(store, teams, body.get("work_type", ""), body.get("values") or {}))


@app.put("/api/tickets/{sheet_row}")
async def api_update_ticket(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    values, = require(body, "values")
    if not isinstance(values, dict):
        raise HTTPException(400, "values must be an object")
    return respond(actions.update_ticket(store, sheet_row, values))


@app.post("/api/tickets/{sheet_row}/status")
async def api_update_ticket_status(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    status, = require_text(body, "status")
    return respond(actions.update_ticket_status(store, sheet_row, status))


@app.get("/api/dashboard")
async def api_dashboard(search: str = "", date_from: date | None = None, date_to: date | None = None,
                        status: str = "All", team: str = "All", work_type: str = "All",
                        store=Depends(get_store)):
    return actions.get_dashboard(store, search, date_from, date_to, status, team, work_type)


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Teams & form questions
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/teams")
async def api_teams(store=Depends(get_store)):
    return actions.get_teams(store)


@app.post("/api/teams")
async def api_add_team(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    team, = require_text(body, "team")
    return respond(actions.add_team(store, team.strip()))


@app.get("/api/form-questions")
async def api_form_questions(team: str = "", store=Depends(get_store)):
    return actions.get_form_questions(store, team)


@app.post("/api/form-questions")
async def api_add_form_question(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    team, text = require_text(body, "team", "question_text")
    return respond(actions.add_form_question(store, team, question_header(body, text)))


@app.put("/api/form-questions")
async def api_update_form_question(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    team, original, text = require_text(body, "team", "original_text", "question_text")
    return respond(actions.update_form_question(store, team, original, question_header(body, text)))


@app.delete("/api/form-questions")
async def api_delete_form_question(team: str, question_text: str, store=Depends(get_store)):
    return respond(actions.delete_form_question(store, team, question_text))


@app.get("/api/form-schema")
async def api_form_schema(teams: list[str] = Query(default=[]), work_type: str = "",
                          store=Depends(get_store)):
    return actions.get_form_schema(store, teams, work_type)


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Members
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/members")
async def api_members(store=Depends(get_store)):
    values = actions.get_members(store)
    return {"headers": values[0] if values else [], "members": values[1:]}


@app.post("/api/members")
async def api_add_member(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    return respond(actions.add_member(store, optional_text(body, "name"), optional_text(body, "team")))


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Projects
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/projects")
async def api_projects(search: str = "", status: str = "all", project_id: str = "", ticket_id: str = "",
                       store=Depends(get_store)):
    return actions.get_project_list(store, search, status, project_id, ticket_id)


@app.post("/api/projects")
async def api_create_project(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    title, = require_text(body, "title")
    return respond(actions.create_manual_project(store, title.strip()))


@app.post("/api/projects/from-ticket")
async def api_create_project_from_ticket(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    ticket_row, = require(body, "ticket_row")
    title, = require_text(body, "title")
    return respond(actions.create_project_from_ticket(store, to_int(ticket_row, "ticket_row"), title.strip()))


@app.put("/api/projects/{sheet_row}")
async def api_update_project(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    values, = require(body, "values")
    if not isinstance(values, dict):
        raise HTTPException(400, "values must be an object")
    return respond(actions.update_project(store, sheet_row, values))


@app.post("/api/projects/{sheet_row}/kanban")
async def api_initialize_kanban(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    project_id, = require_text(body, "project_id")
    return respond(actions.initialize_kanban(store, sheet_row, project_id))


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Kanban
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/kanban/projects")
async def api_kanban_projects(store=Depends(get_store)):
    return actions.get_kanban_project_list(store)


@app.get("/api/kanban/boards/{project_id}")
async def api_kanban_board(project_id: str, search: str = "", team: str = "all", priority: str = "all",
                           store=Depends(get_store)):
    return actions.get_kanban_board(store, project_id, search, team, priority)


@app.get("/api/kanban/boards/{project_id}/tasks")
async def api_kanban_tasks(project_id: str, store=Depends(get_store)):
    return actions.get_kanban_tasks(store, project_id)


@app.post("/api/kanban/boards/{project_id}/tasks")
async def api_add_kanban_task(project_id: str, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    return respond(actions.add_kanban_task(store, project_id, body))


@app.post("/api/kanban/boards/{project_id}/move")
async def api_move_kanban_task(project_id: str, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    source_col, dest_col = require_text(body, "source_col", "dest_col")
    source_index, dest_index = require(body, "source_index", "dest_index")
    return respond(actions.move_kanban_task(store, project_id, source_col, to_int(source_index, "source_index"),
                                            dest_col, to_int(dest_index, "dest_index")))


@app.put("/api/kanban/tasks/{sheet_row}")
async def api_update_kanban_task(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    return respond(actions.update_kanban_task(store, sheet_row, body))


@app.post("/api/kanban/tasks/{sheet_row}/status")
async def api_update_kanban_task_status(sheet_row: int, request: Request, store=Depends(get_store)):
    body = await read_body(request)
    status, = require_text(body, "status")
    return respond(actions.update_kanban_task_status(store, sheet_row, status))


@app.post("/api/kanban/sequence")
async def api_update_kanban_sequence(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    updates, = require(body, "updates")
    try:
        updates = [{"sheet_row": int(u["sheet_row"]), "sequence": int(u["sequence"])} for u in updates]
    except (KeyError, TypeError, ValueError):
        raise HTTPException(400, "updates must be a list of {sheet_row, sequence}")
    return respond(actions.batch_update_kanban_task_sequence(store, updates))


@app.delete("/api/kanban/tasks/{sheet_row}")
async def api_delete_kanban_task(sheet_row: int, task_id: str | None = None, store=Depends(get_store)):
    return respond(actions.delete_kanban_task(store, sheet_row, task_id))


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Work types
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/work-types")
async def api_work_types(store=Depends(get_store)):
    return actions.get_work_types(store)


@app.post("/api/work-types/options")
async def api_add_work_type(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    option, = require_text(body, "option")
    return respond(actions.add_work_type_option(store, option.strip()))


@app.put("/api/work-types/options")
async def api_update_work_type(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    original, new = require_text(body, "original", "new")
    return respond(actions.update_work_type_option(store, original, new.strip()))


@app.delete("/api/work-types/options")
async def api_delete_work_type(option: str, store=Depends(get_store)):
    return respond(actions.delete_work_type_option(store, option))


@app.put("/api/work-types/question")
async def api_update_work_type_question(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    question, = require_text(body, "question")
    return respond(actions.update_work_type_question(store, question.strip()))


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: My tasks
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/my-tasks")
async def api_my_tasks(assignee: str = "", search: str = "", source: str = "all", status: str = "all",
                       date_from: date | None = None, date_to: date | None = None,
                       store=Depends(get_store)):
    return actions.get_my_task_list(store, assignee, search, source, status, date_from, date_to)


@app.post("/api/my-tasks/status")
async def api_update_my_task_status(request: Request, store=Depends(get_store)):
    body = await read_body(request)
    source, status = require_text(body, "source", "status")
    sheet_row, = require(body, "sheet_row")
    if source not in SOURCE_SHEETS:
        raise HTTPException(400, "Invalid task source.")
    return respond(actions.update_my_task_status(store, source, to_int(sheet_row, "sheet_row"), status))


# ══════════════════════════════════════════════════════════════════════════════
# API ENDPOINTS: Export
# ══════════════════════════════════════════════════════════════════════════════

@app.get("/api/sheets/{name}/export")
async def api_export_sheet(name: str, format: str = "xlsx", store=Depends(get_store)):
    """Download one sheet as .xlsx or .csv."""
    try:
        payload, media_type, filename = actions.export_sheet(store, name, format)
    except SheetNotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return StreamingResponse(
        io.BytesIO(payload),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


if __name__ == "__main__":
    from log_config import setup_logging

    setup_logging()
    init_workbook(get_store())
    print(f"Starting SheetFlow at http://localhost:{settings.PORT}")
    uvicorn.run("app:app", host=settings.HOST, port=settings.PORT, reload=True)
