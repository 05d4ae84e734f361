"""
Tests for the FastAPI + HTMX project board: rendering, placement as seen
through the HTTP surface, structure management and task events.
"""

import pytest
from bs4 import BeautifulSoup
from fastapi.testclient import TestClient
from sqlmodel import Session

from board_events import TaskEventChannel, TaskEventKind
from board_models import Task
from board_web import app, get_session, get_task_events, parse_accept_language

ADMIN = {"X-User-Id": "admin-1"}
OTHER_ADMIN = {"X-User-Id": "admin-2"}
CLIENT = {"X-User-Id": "client-1"}


@pytest.fixture(scope="function")
def test_client(temp_db, board_data):
    """Create test client with isolated database and event channel"""
    channel = TaskEventChannel()

    def override_get_session():
        with Session(temp_db) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_task_events] = lambda: channel

    client = TestClient(app)
    yield client, temp_db, channel

    app.dependency_overrides.clear()


def column_titles(html):
    soup = BeautifulSoup(html, "html.parser")
    return [col.find(class_="column-title").text for col in soup.find_all(class_="kanban-column")]


def column_task_ids(html):
    soup = BeautifulSoup(html, "html.parser")
    result = {}
    for col in soup.find_all(class_="kanban-column"):
        result[int(col["data-column-id"])] = [int(card["data-task-id"]) for card in col.find_all(class_="task-card")]
    return result


def add_task(engine, **data):
    with Session(engine) as session:
        task = Task(**data)
        session.add(task)
        session.commit()
        session.refresh(task)
        return task.id


class TestAccess:
    def test_requires_user_header(self, test_client):
        client, _, _ = test_client
        assert client.get("/").status_code == 401
        assert client.get("/", headers={"X-User-Id": "ghost"}).status_code == 401

    def test_structure_routes_are_admin_only(self, test_client, board_data):
        client, _, _ = test_client
        response = client.post("/groups", data={"title-lv": "A", "title-en": "A"}, headers=CLIENT)
        assert response.status_code == 403
        response = client.put("/tasks/1/tab", data={"tab_id": board_data["new"]}, headers=CLIENT)
        assert response.status_code == 403


class TestBoardRendering:
    def test_admin_sees_tab_columns(self, test_client):
        client, _, _ = test_client
        response = client.get("/", headers=ADMIN)

        assert response.status_code == 200
        soup = BeautifulSoup(response.text, "html.parser")
        assert soup.find("title").text == "Project Board"
        assert soup.find(id="createModal") is not None
        assert "htmx.org" in response.text
        assert "sortablejs" in response.text
        assert column_titles(response.text) == ["Jauni", "Šūšana", "Pārbaude", "Sūtīšana"]

    def test_client_sees_group_columns(self, test_client):
        client, _, _ = test_client
        response = client.get("/", headers=CLIENT)
        assert column_titles(response.text) == ["Ražošana", "Piegāde"]
        # clients get neither the tab picker nor the show-all switch
        soup = BeautifulSoup(response.text, "html.parser")
        assert soup.find("select", attrs={"name": "tab_id"}) is None
        assert soup.find("select", attrs={"name": "view"}) is None

    def test_locale_from_query_and_header(self, test_client):
        client, _, _ = test_client
        assert column_titles(client.get("/board?lang=en", headers=ADMIN).text) == ["New", "Sewing", "Review", "Shipping"]
        headers = dict(ADMIN, **{"Accept-Language": "de-DE, en;q=0.8"})
        assert column_titles(client.get("/board", headers=headers).text) == ["New", "Sewing", "Review", "Shipping"]

    def test_task_titles_are_escaped(self, test_client, board_data):
        client, engine, _ = test_client
        add_task(engine, title="<script>alert(1)</script>", tab_id=board_data["new"], created_by_id="admin-1")
        response = client.get("/board", headers=ADMIN)
        assert "<script>alert(1)</script>" not in response.text
        assert "&lt;script&gt;" in response.text


class TestPlacement:
    def test_intake_orphans_and_hidden_tabs(self, test_client, board_data):
        client, engine, _ = test_client
        intake = add_task(engine, title="Club scarves", tab_id=board_data["shipping"], created_by_id="client-1")
        orphan = add_task(engine, title="Lost order", tab_id=4242, created_by_id="admin-1")
        own_hidden = add_task(engine, title="My review", tab_id=board_data["review"], created_by_id="admin-2", assigned_to_user_id="admin-1")
        foreign_hidden = add_task(engine, title="Their review", tab_id=board_data["review"], created_by_id="admin-1", assigned_to_user_id="admin-2")

        response = client.put(f"/preferences/{board_data['review']}", data={"is_visible": "false"}, headers=ADMIN)
        assert response.status_code == 200

        columns = column_task_ids(client.get("/board", headers=ADMIN).text)
        assert board_data["review"] not in columns
        assert columns[board_data["new"]] == [intake, orphan, own_hidden]
        assert foreign_hidden not in sum(columns.values(), [])

        all_columns = column_task_ids(client.get("/board?view=all", headers=ADMIN).text)
        assert all_columns[board_data["review"]] == [own_hidden, foreign_hidden]
        assert intake in all_columns[board_data["new"]]

    def test_hidden_column_is_marked_in_show_all(self, test_client, board_data):
        client, _, _ = test_client
        client.put(f"/preferences/{board_data['sewing']}", data={"is_visible": "false"}, headers=ADMIN)
        soup = BeautifulSoup(client.get("/board?view=all", headers=ADMIN).text, "html.parser")
        hidden = soup.find(class_="hidden-tab")
        assert int(hidden["data-column-id"]) == board_data["sewing"]

    def test_default_tab_cannot_be_hidden(self, test_client, board_data):
        client, _, _ = test_client
        response = client.put(f"/preferences/{board_data['new']}", data={"is_visible": "false"}, headers=ADMIN)
        assert response.status_code == 400

    def test_client_view_all_is_ignored(self, test_client, board_data):
        client, engine, _ = test_client
        add_task(engine, title="Not mine", tab_id=board_data["new"], created_by_id="admin-2")
        data = client.get("/api/board?view=all", headers=CLIENT).json()
        assert [c["id"] for c in data["columns"]] == [board_data["production"], board_data["delivery"]]
        assert all(c["tasks"] == [] for c in data["columns"])

    def test_api_board_search(self, test_client, board_data):
        client, engine, _ = test_client
        add_task(engine, title="Print banner", tab_id=board_data["sewing"], created_by_id="admin-1")
        add_task(engine, title="Sew flags", tab_id=board_data["sewing"], created_by_id="admin-1")

        data = client.get("/api/board?search=BANNER", headers=ADMIN).json()
        titles = [t["title"] for c in data["columns"] for t in c["tasks"]]
        assert titles == ["Print banner"]
        assert data["default_tab_id"] == board_data["new"]


class TestTaskRoutes:
    def test_client_task_lands_in_intake(self, test_client, board_data):
        client, _, channel = test_client
        received = []
        channel.subscribe(received.append)

        response = client.post("/tasks", data={"title": "Team hoodies", "end_date": "2024-06-01"}, headers=CLIENT)
        assert response.status_code == 200
        client_columns = column_task_ids(response.text)
        task_id = client_columns[board_data["production"]][0]

        admin_data = client.get("/api/board", headers=ADMIN).json()
        first = admin_data["columns"][0]
        assert first["id"] == board_data["new"]
        assert [t["id"] for t in first["tasks"]] == [task_id]
        assert first["tasks"][0]["is_client_created"] is True

        assert [(e.kind, e.task_id, e.tab_id) for e in received] == [(TaskEventKind.CREATE, task_id, board_data["new"])]

    def test_admin_creates_task_with_details(self, test_client, board_data):
        client, engine, _ = test_client
        response = client.post(
            "/tasks",
            data={
                "title": "Rowing suits",
                "tab_id": str(board_data["sewing"]),
                "assigned_to_user_id": "admin-1",
                "client_id": str(board_data["customer"]),
                "price": "125.50",
            },
            headers=ADMIN,
        )
        assert response.status_code == 200
        soup = BeautifulSoup(response.text, "html.parser")
        card = soup.find(class_="task-card")
        assert card.find(class_="price").text == "125.50"
        assert card.find(class_="client-name").text == "Riga Rowing Club"
        assert card.find(class_="assignee").text == "Anna"

    def test_create_task_validation_errors(self, test_client, board_data):
        client, _, _ = test_client
        assert client.post("/tasks", data={"title": "   "}, headers=ADMIN).status_code == 400
        assert client.post("/tasks", data={"title": "X", "tab_id": "9999"}, headers=ADMIN).status_code == 404
        assert client.post("/tasks", data={"title": "X", "price": "lots"}, headers=ADMIN).status_code == 400

    def test_move_complete_and_delete(self, test_client, board_data):
        client, engine, channel = test_client
        received = []
        channel.subscribe(received.append)
        task_id = add_task(engine, title="Flags", tab_id=board_data["new"], created_by_id="admin-1")

        response = client.put(f"/tasks/{task_id}/tab", data={"tab_id": board_data["shipping"]}, headers=ADMIN)
        assert response.json() == {"success": True}
        assert column_task_ids(client.get("/board", headers=ADMIN).text)[board_data["shipping"]] == [task_id]

        response = client.put(f"/tasks/{task_id}/done", headers=ADMIN)
        assert task_id not in sum(column_task_ids(response.text).values(), [])

        response = client.delete(f"/tasks/{task_id}", headers=ADMIN)
        assert response.status_code == 200
        assert client.delete(f"/tasks/{task_id}", headers=ADMIN).status_code == 404

        assert [e.kind for e in received] == [TaskEventKind.UPDATE, TaskEventKind.UPDATE, TaskEventKind.DELETE]
        assert received[-1].tab_id == board_data["shipping"]

    def test_move_to_unknown_tab(self, test_client, board_data):
        client, engine, _ = test_client
        task_id = add_task(engine, title="Flags", tab_id=board_data["new"], created_by_id="admin-1")
        response = client.put(f"/tasks/{task_id}/tab", data={"tab_id": 9999}, headers=ADMIN)
        assert response.status_code == 404

    def test_move_to_tab_outside_groups(self, test_client, board_data):
        client, engine, _ = test_client
        task_id = add_task(engine, title="Flags", tab_id=board_data["new"], created_by_id="admin-1")
        response = client.put(f"/tasks/{task_id}/tab", data={"tab_id": board_data["personal"]}, headers=ADMIN)
        assert response.status_code == 400

    @pytest.mark.parametrize("price", ["inf", "nan", "1e400", "-5", "-0.01"])
    def test_create_task_rejects_unusable_prices(self, test_client, price):
        client, _, _ = test_client
        response = client.post("/tasks", data={"title": "Banner", "price": price}, headers=ADMIN)
        assert response.status_code == 400
        assert "Invalid price" in response.json()["detail"]

    def test_created_task_detail_and_edit(self, test_client, board_data):
        client, _, channel = test_client
        received = []
        channel.subscribe(received.append)

        client.post("/tasks", data={"title": "Team hoodies", "end_date": "2024-06-01"}, headers=CLIENT)
        task_id = received[0].task_id

        detail = client.get(f"/tasks/{task_id}", headers=CLIENT).json()
        assert detail["title"] == "Team hoodies"
        assert detail["tab_id"] == board_data["new"]
        assert detail["created_at"]
        assert [h["change_type"] for h in detail["history"]] == ["created"]

        response = client.put(
            f"/tasks/{task_id}",
            data={"title": "Team hoodies (navy)", "price": "80", "end_date": ""},
            headers=ADMIN,
        )
        assert response.status_code == 200
        data = response.json()
        assert (data["title"], data["price"], data["end_date"]) == ("Team hoodies (navy)", 8000, None)
        assert data["history"][0]["change_type"] == "updated"
        assert data["history"][0]["user_name"] == "Anna"
        assert {c["field"] for c in data["history"][0]["changes"]} == {"title", "price", "end_date"}
        assert [e.kind for e in received] == [TaskEventKind.CREATE, TaskEventKind.UPDATE]

    def test_task_detail_access(self, test_client, board_data):
        client, engine, _ = test_client
        foreign = add_task(engine, title="Internal", tab_id=board_data["new"], created_by_id="admin-2")
        assert client.get(f"/tasks/{foreign}", headers=ADMIN).status_code == 200
        assert client.get(f"/tasks/{foreign}", headers=CLIENT).status_code == 404
        assert client.get("/tasks/9999", headers=ADMIN).status_code == 404
        assert client.put(f"/tasks/{foreign}", data={"title": "X"}, headers=CLIENT).status_code == 403
        assert client.put(f"/tasks/{foreign}", data={"title": " "}, headers=ADMIN).status_code == 400

    def test_completed_tasks_listing(self, test_client, board_data):
        client, engine, _ = test_client
        for title in ["Flags", "Flag poles", "Banner"]:
            task_id = add_task(engine, title=title, tab_id=board_data["new"], created_by_id="admin-1")
            client.put(f"/tasks/{task_id}/done", headers=ADMIN)

        data = client.get("/completed?search=flag&sort_by=title&page_size=1", headers=ADMIN).json()
        assert [t["title"] for t in data["items"]] == ["Flag poles"]
        assert (data["total"], data["page_count"]) == (2, 2)

        assert client.get("/completed?sort_by=colour", headers=ADMIN).status_code == 400
        assert client.get("/completed", headers=CLIENT).status_code == 403


class TestStructureRoutes:
    def test_create_group_and_tab(self, test_client):
        client, _, _ = test_client
        response = client.post("/groups", data={"title-lv": "Arhīvs", "title-en": "Archive", "color": "#172B4D"}, headers=ADMIN)
        assert response.status_code == 200
        group = response.json()
        assert group["sort_order"] == 2

        response = client.post("/tabs", data={"title-lv": "Vecie", "title-en": "Old", "group": str(group["id"])}, headers=ADMIN)
        tab = response.json()
        assert tab["group_id"] == group["id"]

        assert column_titles(client.get("/board?lang=en", headers=ADMIN).text)[-1] == "Old"

    def test_create_personal_tab(self, test_client, board_data):
        client, _, _ = test_client
        response = client.post(
            "/tabs",
            data={"title-lv": "Mans", "title-en": "Mine", "group": str(board_data["delivery"]), "personal": "on"},
            headers=ADMIN,
        )
        assert response.json()["user_id"] == "admin-1"
        soup = BeautifulSoup(client.get("/board", headers=ADMIN).text, "html.parser")
        assert soup.find(class_="personal").find(class_="column-title").text == "Mans"

    def test_missing_translation_is_rejected(self, test_client):
        client, _, _ = test_client
        response = client.post("/groups", data={"title-lv": "Tikai"}, headers=ADMIN)
        assert response.status_code == 400
        assert "Missing" in response.json()["detail"]

    def test_update_group_and_tab(self, test_client, board_data):
        client, _, _ = test_client
        response = client.put(f"/groups/{board_data['delivery']}", data={"title-lv": "Izsūtīšana", "title-en": "Dispatch"}, headers=CLIENT)
        assert response.status_code == 403
        response = client.put(f"/groups/{board_data['delivery']}", data={"title-lv": "Izsūtīšana", "title-en": "Dispatch"}, headers=ADMIN)
        assert response.status_code == 200
        response = client.put(
            f"/tabs/{board_data['review']}",
            data={"title-lv": "Kontrole", "title-en": "QA", "color": "#36B37E"},
            headers=ADMIN,
        )
        assert response.json()["color"] == "#36B37E"

        structure = client.get("/structure", headers=ADMIN).json()
        delivery = [g for g in structure["groups"] if g["id"] == board_data["delivery"]][0]
        assert delivery["names"] == {"lv": "Izsūtīšana", "en": "Dispatch"}
        assert delivery["tabs"][0]["names"] == {"lv": "Kontrole", "en": "QA"}

    def test_delete_tab_in_use_conflicts(self, test_client, board_data):
        client, engine, _ = test_client
        add_task(engine, title="Flags", tab_id=board_data["shipping"], created_by_id="admin-1")
        assert client.delete(f"/tabs/{board_data['shipping']}", headers=ADMIN).status_code == 409
        assert client.delete(f"/tabs/{board_data['review']}", headers=ADMIN).json() == {"success": True}
        assert "Pārbaude" not in column_titles(client.get("/board", headers=ADMIN).text)

    def test_reorder_and_move(self, test_client, board_data):
        client, _, _ = test_client
        response = client.post(
            "/groups/reorder",
            data={f"order[{board_data['production']}]": "1", f"order[{board_data['delivery']}]": "0"},
            headers=ADMIN,
        )
        assert response.json() == {"success": True}
        client.post(
            "/tabs/reorder",
            data={f"order[{board_data['review']}]": "1", f"order[{board_data['shipping']}]": "0"},
            headers=ADMIN,
        )
        response = client.put(f"/tabs/{board_data['sewing']}/group", data={"group_id": board_data["delivery"]}, headers=ADMIN)
        assert response.json()["group_id"] == board_data["delivery"]

        # Delivery now comes first, so Shipping is the new default tab
        assert column_titles(client.get("/board", headers=ADMIN).text) == ["Sūtīšana", "Šūšana", "Pārbaude", "Jauni"]
        assert client.get("/api/board", headers=ADMIN).json()["default_tab_id"] == board_data["shipping"]

    def test_reorder_rejects_bad_positions(self, test_client, board_data):
        client, _, _ = test_client
        response = client.post("/tabs/reorder", data={f"order[{board_data['review']}]": "first"}, headers=ADMIN)
        assert response.status_code == 400


def test_parse_accept_language():
    assert parse_accept_language("en-US,lv;q=0.9,*;q=0.1") == ["en", "lv"]
    assert parse_accept_language("lv;q=0.5, en;q=0.8") == ["en", "lv"]
    assert parse_accept_language("de;q=0") == []
    assert parse_accept_language(None) == []
