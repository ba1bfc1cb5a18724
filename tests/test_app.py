"""HTTP tests for the FastAPI endpoints."""

import pytest

from app import app, get_store


@pytest.fixture
def broken_client(broken_store):
    from fastapi.testclient import TestClient

    app.dependency_overrides[get_store] = lambda: broken_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_ticket(client):
    client.post("/api/teams", json={"team": "CM"})
    res = client.post("/api/tickets", json={"teams": ["CM"], "work_type": "Urgent", "values": {}})
    assert res.status_code == 200, res.text
    return res.json()


class TestBasics:
    """Test cases for health and initialisation."""

    def test_health(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json()["ok"] is True

    def test_init_creates_sheets(self, client):
        res = client.post("/api/init")

        assert res.status_code == 200
        assert set(res.json()["sheets"]) >= {"Tickets", "Projects", "KanbanTasks", "Members",
                                              "FormQuestions", "WorkTypes"}
        assert client.get("/api/work-types").json()["options"] == ["Urgent", "Regular"]

    def test_invalid_json(self, client):
        res = client.post("/api/teams", content=b"{not json", headers={"Content-Type": "application/json"})
        assert res.status_code == 400

    def test_missing_field(self, client):
        res = client.post("/api/projects", json={})
        assert res.status_code == 400
        assert res.json()["detail"] == "Missing field: title"

    @pytest.mark.parametrize("method, path, payload", [
        ("post", "/api/teams", {"team": 5}),
        ("post", "/api/projects", {"title": None}),
        ("post", "/api/projects/from-ticket", {"ticket_row": "two", "title": "Physics"}),
        ("post", "/api/projects/from-ticket", {"ticket_row": 2, "title": ["Physics"]}),
        ("post", "/api/kanban/boards/PROJ-1/move",
         {"source_col": "todo", "source_index": "first", "dest_col": "done", "dest_index": 0}),
        ("post", "/api/work-types/options", {"option": 3}),
        ("put", "/api/work-types/options", {"original": "Urgent", "new": None}),
        ("put", "/api/work-types/question", {"question": {"text": "Kind?"}}),
        ("post", "/api/my-tasks/status", {"source": "Ticket", "sheet_row": None, "status": "Done"}),
        ("post", "/api/members", {"name": 7, "team": "CM"}),
        ("post", "/api/form-questions", {"team": "CM", "question_text": "Channel", "options": "Email"}),
    ])
    def test_wrong_field_types(self, client, method, path, payload):
        res = client.request(method.upper(), path, json=payload)

        assert res.status_code == 400
        assert "must be" in res.json()["detail"]

    def test_sheet_errors_map_to_502(self, broken_client):
        res = broken_client.get("/api/tickets/raw")
        assert res.status_code == 502
        assert res.json() == {"success": False, "error": "backend unavailable"}


class TestTicketEndpoints:
    """Test cases for ticket intake and admin updates."""

    def test_form_questions_roundtrip(self, client):
        res = client.post("/api/form-questions", json={
            "team": "CM", "question_text": "Channel", "question_type": "Select",
            "options": ["Email", "SMS"], "required": True})
        assert res.status_code == 200

        questions = client.get("/api/form-questions", params={"team": "CM"}).json()

        assert questions[0]["question_text"] == "Channel (Select: Email;SMS)*"
        assert questions[0]["options"] == ["Email", "SMS"]
        assert client.get("/api/teams").json() == ["CM"]

    def test_form_schema(self, client):
        client.post("/api/form-questions", json={"team": "CM", "question_text": "Launch date"})
        client.post("/api/form-questions", json={"team": "QAC", "question_text": "Budget"})

        res = client.get("/api/form-schema", params=[("teams", "CM"), ("teams", "QAC"), ("work_type", "Urgent")])

        body = res.json()
        assert [q["question_text"] for q in body["questions"]] == ["Launch date", "Budget"]
        assert body["defaults"]["Team"] == "CM, QAC"

    def test_submit_rejects_missing_answers(self, client):
        client.post("/api/form-questions", json={"team": "CM", "question_text": "Course name", "required": True})

        res = client.post("/api/tickets", json={"teams": ["CM"], "work_type": "Urgent", "values": {}})

        assert res.status_code == 400
        assert res.json()["fields"] == {"Course name*": "This field is required."}

    def test_submit_and_list(self, client):
        created = make_ticket(client)

        listing = client.get("/api/tickets").json()

        assert listing["tickets"][0]["record"]["Ticket ID"] == created["ticket_id"]
        assert listing["tickets"][0]["sheet_row"] == 2

    def test_status_update_and_dashboard(self, client):
        make_ticket(client)

        res = client.post("/api/tickets/2/status", json={"status": "Open"})
        assert res.json() == {"success": True}

        dashboard = client.get("/api/dashboard", params={"status": "Pending"}).json()
        assert dashboard["stats"]["pending"] == 1
        assert len(dashboard["tickets"]) == 1

    def test_update_unknown_ticket(self, client):
        make_ticket(client)
        res = client.put("/api/tickets/40", json={"values": {"Status": "Done"}})
        assert res.status_code == 400
        assert res.json()["success"] is False

    def test_delete_question(self, client):
        client.post("/api/form-questions", json={"team": "CM", "question_text": "Budget"})

        res = client.delete("/api/form-questions", params={"team": "CM", "question_text": "Budget"})

        assert res.json() == {"success": True}
        assert client.get("/api/form-questions", params={"team": "CM"}).json() == []

    def test_edit_question_rebuilds_header(self, client):
        client.post("/api/form-questions", json={"team": "CM", "question_text": "Channel"})

        res = client.put("/api/form-questions", json={
            "team": "CM", "original_text": "Channel", "question_text": "Channel",
            "question_type": "Checkbox", "options": ["Email", "SMS"], "required": True})

        assert res.json() == {"success": True}
        question = client.get("/api/form-questions", params={"team": "CM"}).json()[0]
        assert question["question_text"] == "Channel (Checkbox: Email;SMS)*"
        assert question["question_type"] == "Checkbox"
        assert question["required"] is True


class TestProjectEndpoints:
    """Test cases for projects and Kanban boards over HTTP."""

    def test_ticket_to_board(self, client):
        make_ticket(client)

        res = client.post("/api/projects/from-ticket", json={"ticket_row": 2, "title": "Physics"})
        assert res.status_code == 200
        project_id = res.json()["project_id"]

        res = client.post("/api/projects/2/kanban", json={"project_id": project_id})
        assert res.json() == {"success": True}

        kanban = client.get("/api/kanban/projects").json()
        assert kanban[0]["record"]["Project ID"] == project_id

        board = client.get(f"/api/kanban/boards/{project_id}").json()
        assert [t["title"] for t in board["columns"]["todo"]["tasks"]] == ["Project Kick-off"]

        res = client.post(f"/api/kanban/boards/{project_id}/tasks", json={"title": "Outline", "priority": "High"})
        assert res.json()["sequence"] == 2

        res = client.post(f"/api/kanban/boards/{project_id}/move", json={
            "source_col": "todo", "source_index": 1, "dest_col": "done", "dest_index": 0})
        assert res.status_code == 200
        assert [t["title"] for t in res.json()["columns"]["done"]] == ["Outline"]

        tasks = client.get(f"/api/kanban/boards/{project_id}/tasks").json()
        assert {t["title"]: t["status"] for t in tasks} == {"Project Kick-off": "todo", "Outline": "done"}

    def test_kanban_task_updates(self, client):
        project_id = client.post("/api/projects", json={"title": "Tooling"}).json()["project_id"]
        client.post("/api/projects/2/kanban", json={"project_id": project_id})

        assert client.put("/api/kanban/tasks/2", json={"assignee": "Alice"}).json() == {"success": True}
        assert client.post("/api/kanban/tasks/2/status", json={"status": "review"}).json() == {"success": True}
        assert client.post("/api/kanban/tasks/2/status", json={"status": "later"}).status_code == 400
        assert client.post("/api/kanban/sequence", json={"updates": [{"sheet_row": 2, "sequence": 5}]}).status_code == 200
        assert client.post("/api/kanban/sequence", json={"updates": [{"row": 2}]}).status_code == 400

        task = client.get(f"/api/kanban/boards/{project_id}/tasks").json()[0]
        assert (task["assignee"], task["status"], task["sequence"]) == ("Alice", "review", 5)

        assert client.delete("/api/kanban/tasks/2").json() == {"success": True}
        assert client.get(f"/api/kanban/boards/{project_id}/tasks").json() == []

    def test_delete_task_checks_row_and_id(self, client):
        project_id = client.post("/api/projects", json={"title": "Tooling"}).json()["project_id"]
        client.post("/api/projects/2/kanban", json={"project_id": project_id})
        task_id = client.get(f"/api/kanban/boards/{project_id}/tasks").json()[0]["id"]

        assert client.delete("/api/kanban/tasks/50").status_code == 400
        assert client.delete("/api/kanban/tasks/2", params={"task_id": "TASK-stale"}).status_code == 400
        assert len(client.get(f"/api/kanban/boards/{project_id}/tasks").json()) == 1

        res = client.delete("/api/kanban/tasks/2", params={"task_id": task_id})
        assert res.json() == {"success": True}

    def test_initialize_kanban_checks_project(self, client):
        client.post("/api/projects", json={"title": "Tooling"})

        res = client.post("/api/projects/2/kanban", json={"project_id": "PROJ-OTHER"})

        assert res.status_code == 400
        assert client.get("/api/kanban/projects").json() == []

    def test_project_list_and_update(self, client):
        client.post("/api/projects", json={"title": "Tooling"})

        assert client.put("/api/projects/2", json={"values": {"Status": "Ongoing"}}).json() == {"success": True}

        listing = client.get("/api/projects", params={"status": "Ongoing"}).json()
        assert [p["record"]["Project Title"] for p in listing["projects"]] == ["Tooling"]


class TestOtherEndpoints:
    """Test cases for members, work types, my tasks and export."""

    def test_members(self, client):
        res = client.post("/api/members", json={"name": "Alice", "team": "CM"})
        assert res.status_code == 200

        members = client.get("/api/members").json()
        assert members["headers"] == ["Name", "Team"]
        assert ["Alice", "CM"] in members["members"]

        assert client.post("/api/members", json={"name": "", "team": "CM"}).status_code == 400

    def test_work_type_endpoints(self, client):
        client.get("/api/work-types")

        assert client.post("/api/work-types/options", json={"option": "Planned"}).status_code == 200
        assert client.put("/api/work-types/options", json={"original": "Planned", "new": "Later"}).status_code == 200
        assert client.delete("/api/work-types/options", params={"option": "Urgent"}).status_code == 200
        assert client.put("/api/work-types/question", json={"question": "Kind?"}).status_code == 200

        assert client.get("/api/work-types").json() == {"question": "Kind?", "options": ["Regular", "Later"]}

    def test_my_tasks(self, client):
        make_ticket(client)
        client.put("/api/tickets/2", json={"values": {"Assignee": "Alice"}})

        listing = client.get("/api/my-tasks", params={"assignee": "alice"}).json()
        assert [t["source"] for t in listing["tasks"]] == ["Ticket"]

        res = client.post("/api/my-tasks/status", json={"source": "Ticket", "sheet_row": 2, "status": "Delivered"})
        assert res.json() == {"success": True}
        assert client.get("/api/my-tasks", params={"assignee": "alice"}).json()["tasks"][0]["status"] == "Delivered"

        res = client.post("/api/my-tasks/status", json={"source": "Epic", "sheet_row": 2, "status": "x"})
        assert res.status_code == 400

    def test_export(self, client):
        make_ticket(client)

        res = client.get("/api/sheets/Tickets/export", params={"format": "csv"})
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=Tickets.csv" == res.headers["content-disposition"]

        assert client.get("/api/sheets/Nope/export").status_code == 404
        assert client.get("/api/sheets/Tickets/export", params={"format": "pdf"}).status_code == 400
