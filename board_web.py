#!/usr/bin/env python3
# /// script
# dependencies = [
#   "fastapi>=0.104.0",
#   "uvicorn>=0.24.0",
#   "sqlmodel>=0.0.14,<0.1.0",
#   "jinja2>=3.1.0",
#   "python-multipart>=0.0.6",
#   "pytest>=7.0.0",
#   "httpx>=0.24.0",
#   "beautifulsoup4>=4.12.0"
# ]
# ///

"""
FastAPI + HTMX Project Board

Server-rendered task board. Admins see one column per tab and can hide tabs
they do not care about; clients see one column per tab group.

Usage: uv run board_web.py --project-dir /path/to/project
"""

import argparse
import asyncio
import json
import logging
import math
import pathlib
import re
import sys
from contextlib import contextmanager
from typing import Dict, List, Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Form, Header, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from jinja2 import Environment
import uvicorn
from sqlmodel import Session, select

from board_events import TaskEvent, TaskEventChannel, TaskEventKind
from board_models import DEFAULT_LOCALE, SUPPORTED_LOCALES, Client, User, make_engine
from board_resolver import ProjectBoard, get_project_board
from board_store import Actor, find_completed_tasks, find_groups_with_tabs, get_actor, get_task
import board_structure
from board_structure import NotFoundError, TabInUseError

logger = logging.getLogger(__name__)

# Global database engine
engine = None


def get_session():
    """Dependency to get database session"""
    with Session(engine) as session:
        yield session


app = FastAPI(title="Project Board", description="Task board with per-user tab visibility")
app.state.task_events = TaskEventChannel()


def get_task_events(request: Request) -> TaskEventChannel:
    """Dependency to get the application's task event channel"""
    return request.app.state.task_events


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    session: Session = Depends(get_session),
) -> Actor:
    """Resolve the signed-in user. The session layer in front of the app sets X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not signed in")
    actor = get_actor(session, x_user_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return actor


def parse_accept_language(header: Optional[str]) -> List[str]:
    """Language codes from an Accept-Language header, best first."""
    entries = []
    for index, part in enumerate((header or "").split(",")):
        part = part.strip()
        if not part:
            continue
        language, _, params = part.partition(";")
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        language = language.strip().lower()
        if language == "*" or quality <= 0:
            continue
        entries.append((-quality, index, language.split("-")[0]))
    return [language for _, _, language in sorted(entries)]


def get_locales(
    lang: Optional[str] = None,
    accept_language: Optional[str] = Header(None),
) -> List[str]:
    """Preferred locales: ?lang= first, then Accept-Language, then the default."""
    candidates = []
    if lang:
        candidates.append(lang.strip().lower())
    candidates.extend(parse_accept_language(accept_language))
    candidates.append(DEFAULT_LOCALE)
    locales = []
    for locale in candidates:
        if locale and locale not in locales:
            locales.append(locale)
    return locales


class BoardOptions:
    """Query-string options of the board views: ?view=all&search=..."""

    def __init__(self, view: Optional[str] = None, search: Optional[str] = None):
        self.show_all = view == "all"
        self.search = search.strip() if search and search.strip() else None


@contextmanager
def http_errors():
    """Translate board errors into HTTP responses."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TabInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def parse_optional_int(value: Optional[str], label: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}: '{value}'")


def parse_price(value: Optional[str]) -> Optional[int]:
    """Form prices are entered as 12.50; stored in cents."""
    if value is None or str(value).strip() == "":
        return None
    try:
        amount = float(str(value).replace(",", "."))
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(amount)
        return int(round(amount * 100))
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail=f"Invalid price: '{value}'")


def format_price(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    return f"{cents / 100:.2f}"


async def read_names(request: Request) -> Dict[str, str]:
    """Collect title-<locale> form fields."""
    form = await request.form()
    return {locale: str(form.get(f"title-{locale}") or "") for locale in SUPPORTED_LOCALES}


async def read_order(request: Request) -> Dict[int, int]:
    """Collect order[<id>]=<position> form fields."""
    form = await request.form()
    order = {}
    for key, value in form.multi_items():
        match = re.fullmatch(r"order\[(\d+)\]", key)
        if not match:
            continue
        try:
            order[int(match.group(1))] = int(value)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid position for {key}: '{value}'")
    return order


templates = Environment(autoescape=True)
templates.filters["price"] = format_price

HTML_BASE = """
<!DOCTYPE html>
<html lang="{{ locale }}">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Project Board</title>
    <script src="https://unpkg.com/htmx.org@1.9.10"></script>
    <script src="https://unpkg.com/sortablejs@1.15.0/Sortable.min.js"></script>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }

        body {
            font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
            background: #f4f5f7;
            color: #172b4d;
            line-height: 1.5;
        }

        .header {
            background: #0747a6;
            color: #ffffff;
            padding: 1rem 2rem;
        }

        .header h1 { font-size: 1.5rem; font-weight: 700; }

        .controls {
            display: flex;
            justify-content: space-between;
            align-items: center;
            gap: 1rem;
            padding: 1rem 2rem;
        }

        .controls form { display: flex; gap: 0.5rem; align-items: center; }

        .btn {
            background: #0052cc;
            color: #ffffff;
            border: none;
            border-radius: 3px;
            padding: 0.5rem 1rem;
            cursor: pointer;
            text-decoration: none;
            font-size: 0.875rem;
        }

        .btn-secondary { background: #dfe1e6; color: #172b4d; }
        .btn-sm { padding: 0.125rem 0.5rem; font-size: 0.75rem; }

        .form-input, .form-select, .form-textarea {
            border: 1px solid #dfe1e6;
            border-radius: 3px;
            padding: 0.5rem;
            font-size: 0.875rem;
            width: 100%;
        }

        .kanban-board {
            display: flex;
            gap: 1rem;
            padding: 0 2rem 2rem;
            overflow-x: auto;
            align-items: flex-start;
        }

        .kanban-column {
            background: #ebecf0;
            border-radius: 6px;
            min-width: 280px;
            max-width: 280px;
            padding: 0.75rem;
            border-top: 4px solid var(--column-color, #dfe1e6);
        }

        .kanban-column.personal { background: #e3fcef; }
        .kanban-column.hidden-tab { opacity: 0.6; }

        .column-header {
            display: flex;
            justify-content: space-between;
            align-items: center;
            margin-bottom: 0.75rem;
        }

        .column-title { font-size: 0.875rem; font-weight: 600; text-transform: uppercase; }

        .item-count {
            background: #dfe1e6;
            border-radius: 10px;
            padding: 0 0.5rem;
            font-size: 0.75rem;
        }

        .task-list { min-height: 40px; display: flex; flex-direction: column; gap: 0.5rem; }

        .task-card {
            background: #ffffff;
            border-radius: 3px;
            padding: 0.75rem;
            box-shadow: 0 1px 2px rgba(9, 30, 66, 0.25);
        }

        .task-card.moved { border-left: 3px solid #ff991f; }
        .task-card.client-created { border-right: 3px solid #6554c0; }

        .card-header { display: flex; justify-content: space-between; gap: 0.5rem; }
        .card-title { font-weight: 500; }
        .card-id { color: #6b778c; font-size: 0.75rem; }
        .card-meta { color: #6b778c; font-size: 0.75rem; margin-top: 0.25rem; }

        .modal {
            display: none;
            position: fixed;
            inset: 0;
            background: rgba(9, 30, 66, 0.54);
            align-items: center;
            justify-content: center;
        }

        .modal.show { display: flex; }

        .modal-content {
            background: #ffffff;
            border-radius: 6px;
            padding: 1.5rem;
            width: 420px;
        }

        .form-group { margin-bottom: 1rem; }
        .form-label { display: block; font-size: 0.75rem; font-weight: 600; margin-bottom: 0.25rem; }

        .sortable-ghost { opacity: 0.4; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Project Board</h1>
    </div>

    <div class="controls">
        <div>
            <button class="btn" onclick="showCreateModal()">New Task</button>
        </div>
        <form method="get" action="/">
            <input type="search" name="search" class="form-input" value="{{ search or '' }}" placeholder="Search tasks">
            {% if is_admin %}
            <select name="view" class="form-select">
                <option value="" {% if not show_all %}selected{% endif %}>My board</option>
                <option value="all" {% if show_all %}selected{% endif %}>All tasks</option>
            </select>
            {% endif %}
            <button type="submit" class="btn btn-secondary">Apply</button>
        </form>
    </div>

    <div class="kanban-board" id="kanban-board" hx-get="/board?{{ query }}" hx-trigger="task-changed from:body" hx-swap="innerHTML">
        {{ board_content | safe }}
    </div>

    <div id="createModal" class="modal">
        <div class="modal-content">
            <h2>New Task</h2>
            <form hx-post="/tasks?{{ query }}" hx-target="#kanban-board" hx-swap="innerHTML">
                <div class="form-group">
                    <label class="form-label">Title</label>
                    <input type="text" name="title" class="form-input" required>
                </div>
                {% if is_admin %}
                <div class="form-group">
                    <label class="form-label">Tab</label>
                    <select name="tab_id" class="form-select">
                        {% for column in tab_choices %}
                        <option value="{{ column.id }}">{{ column.name }}</option>
                        {% endfor %}
                    </select>
                </div>
                <div class="form-group">
                    <label class="form-label">Responsible</label>
                    <select name="assigned_to_user_id" class="form-select">
                        <option value="">Nobody</option>
                        {% for user in users %}
                        <option value="{{ user.id }}">{{ user.name }}</option>
                        {% endfor %}
                    </select>
                </div>
                <div class="form-group">
                    <label class="form-label">Client</label>
                    <select name="client_id" class="form-select">
                        <option value="">None</option>
                        {% for client in clients %}
                        <option value="{{ client.id }}">{{ client.name }}</option>
                        {% endfor %}
                    </select>
                </div>
                <div class="form-group">
                    <label class="form-label">Price</label>
                    <input type="text" name="price" class="form-input" placeholder="0.00">
                </div>
                {% endif %}
                <div class="form-group">
                    <label class="form-label">Due Date</label>
                    <input type="date" name="end_date" class="form-input">
                </div>
                <div style="display: flex; gap: 1rem; justify-content: flex-end;">
                    <button type="button" class="btn btn-secondary" onclick="hideCreateModal()">Cancel</button>
                    <button type="submit" class="btn" onclick="hideCreateModal()">Create</button>
                </div>
            </form>
        </div>
    </div>

    <script>
        function showCreateModal() {
            document.getElementById('createModal').classList.add('show');
        }

        function hideCreateModal() {
            document.getElementById('createModal').classList.remove('show');
        }

        function initializeSortable() {
            const lists = document.querySelectorAll('.task-list[data-tab-id]');
            lists.forEach(list => {
                new Sortable(list, {
                    group: 'tasks',
                    animation: 150,
                    ghostClass: 'sortable-ghost',
                    onEnd: function(evt) {
                        const taskId = evt.item.dataset.taskId;
                        const tabId = evt.to.dataset.tabId;
                        if (evt.from === evt.to) {
                            return;
                        }
                        fetch(`/tasks/${taskId}/tab`, {
                            method: 'PUT',
                            headers: {'Content-Type': 'application/x-www-form-urlencoded'},
                            body: `tab_id=${tabId}`
                        }).catch(error => {
                            console.error('Failed to move task:', error);
                        });
                    }
                });
            });
        }

        document.addEventListener('DOMContentLoaded', initializeSortable);

        document.body.addEventListener('htmx:afterSwap', function(evt) {
            if (evt.target.id === 'kanban-board') {
                initializeSortable();
            }
        });

        if (window.EventSource) {
            const events = new EventSource('/events');
            events.addEventListener('task', function() {
                htmx.trigger(document.body, 'task-changed');
            });
        }

        window.onclick = function(event) {
            const modal = document.getElementById('createModal');
            if (event.target == modal) {
                hideCreateModal();
            }
        }
    </script>
</body>
</html>
"""

BOARD_COLUMNS = """
{% for column in board.columns %}
<div class="kanban-column{% if column.is_personal %} personal{% endif %}{% if column.id in board.hidden_tab_ids %} hidden-tab{% endif %}" data-column-id="{{ column.id }}" style="--column-color: {{ column.color }}">
    <div class="column-header">
        <h2 class="column-title">{{ column.name }}</h2>
        <span class="item-count">{{ column.tasks | length }}</span>
        {% if is_admin and column.id and column.id != board.default_tab_id %}
            {% if column.id in board.hidden_tab_ids %}
            <button class="btn btn-sm btn-secondary" hx-put="/preferences/{{ column.id }}?{{ query }}" hx-vals='{"is_visible": "true"}' hx-target="#kanban-board" hx-swap="innerHTML">Show</button>
            {% else %}
            <button class="btn btn-sm btn-secondary" hx-put="/preferences/{{ column.id }}?{{ query }}" hx-vals='{"is_visible": "false"}' hx-target="#kanban-board" hx-swap="innerHTML">Hide</button>
            {% endif %}
        {% endif %}
    </div>
    <div class="task-list"{% if is_admin and column.id %} data-tab-id="{{ column.id }}"{% endif %}>
        {% for task in column.tasks %}
        <div class="task-card{% if task.moved %} moved{% endif %}{% if task.is_client_created %} client-created{% endif %}" data-task-id="{{ task.id }}">
            <div class="card-header">
                <div class="card-title">{{ task.title }}</div>
                <div class="card-id">#{{ task.id }}</div>
            </div>
            {% if task.client_name %}<div class="card-meta client-name">{{ task.client_name }}</div>{% endif %}
            {% if task.assigned_to_name %}<div class="card-meta assignee">{{ task.assigned_to_name }}</div>{% endif %}
            {% if task.end_date %}<div class="card-meta due-date">Due: {{ task.end_date }}</div>{% endif %}
            {% if task.price is not none %}<div class="card-meta price">{{ task.price | price }}</div>{% endif %}
            {% if is_admin %}
            <div class="card-actions">
                <button class="btn btn-sm" hx-put="/tasks/{{ task.id }}/done?{{ query }}" hx-target="#kanban-board" hx-swap="innerHTML">Done</button>
                <button class="btn btn-sm btn-secondary" hx-delete="/tasks/{{ task.id }}?{{ query }}" hx-target="#kanban-board" hx-swap="innerHTML" hx-confirm="Delete this task?">Delete</button>
            </div>
            {% endif %}
        </div>
        {% endfor %}
    </div>
</div>
{% endfor %}
"""


def board_query(options: BoardOptions) -> str:
    params = []
    if options.show_all:
        params.append("view=all")
    if options.search:
        params.append(f"search={quote(options.search)}")
    return "&".join(params)


def generate_board_html(board: ProjectBoard, actor: Actor, options: BoardOptions) -> str:
    """Generate the board columns HTML"""
    template = templates.from_string(BOARD_COLUMNS)
    return template.render(board=board, is_admin=actor.is_admin, query=board_query(options))


def render_board(session: Session, actor: Actor, locales: List[str], options: BoardOptions) -> str:
    board = get_project_board(session, actor, locales, show_all=options.show_all, search=options.search)
    return generate_board_html(board, actor, options)


@app.get("/", response_class=HTMLResponse)
async def read_root(
    actor: Actor = Depends(get_current_actor),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
):
    """Main board page"""
    board = get_project_board(session, actor, locales, show_all=options.show_all, search=options.search)
    context = {
        "locale": locales[0],
        "is_admin": actor.is_admin,
        "show_all": options.show_all and actor.is_admin,
        "search": options.search,
        "query": board_query(options),
        "board_content": generate_board_html(board, actor, options),
    }
    if actor.is_admin:
        full_board = get_project_board(session, actor, locales, show_all=True)
        context["tab_choices"] = [c for c in full_board.columns if c.id]
        context["users"] = session.exec(select(User).order_by(User.name)).all()
        context["clients"] = session.exec(select(Client).order_by(Client.name)).all()
    template = templates.from_string(HTML_BASE)
    return template.render(**context)


@app.get("/board", response_class=HTMLResponse)
async def get_board_fragment(
    actor: Actor = Depends(get_current_actor),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
):
    """Get just the board columns HTML for HTMX updates"""
    return render_board(session, actor, locales, options)


@app.get("/api/board")
async def get_board_json(
    actor: Actor = Depends(get_current_actor),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
):
    board = get_project_board(session, actor, locales, show_all=options.show_all, search=options.search)
    return board.to_dict()


@app.post("/tasks", response_class=HTMLResponse)
async def create_task(
    title: str = Form(...),
    tab_id: Optional[str] = Form(None),
    assigned_to_user_id: Optional[str] = Form(None),
    client_id: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    end_date: Optional[str] = Form(None),
    actor: Actor = Depends(get_current_actor),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
    events: TaskEventChannel = Depends(get_task_events),
):
    """Create a task. Clients cannot pick a tab; their tasks land in the intake tab."""
    if actor.is_admin:
        kwargs = {
            "tab_id": parse_optional_int(tab_id, "tab"),
            "assigned_to_user_id": assigned_to_user_id or None,
            "client_id": parse_optional_int(client_id, "client"),
            "price": parse_price(price),
        }
    else:
        kwargs = {}
    with http_errors():
        task = board_structure.create_task(
            session,
            title,
            created_by_id=actor.id,
            end_date=end_date or None,
            **kwargs,
        )
    events.publish(TaskEvent(TaskEventKind.CREATE, task.id, task.tab_id, actor.id))
    return render_board(session, actor, locales, options)


@app.put("/tasks/{task_id}/tab")
async def move_task(
    task_id: int,
    tab_id: int = Form(...),
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
    events: TaskEventChannel = Depends(get_task_events),
):
    """Move a task to another tab (for drag and drop)"""
    with http_errors():
        task = board_structure.move_task(session, task_id, tab_id, user_id=actor.id)
    events.publish(TaskEvent(TaskEventKind.UPDATE, task.id, task.tab_id, actor.id))
    return JSONResponse({"success": True})


@app.put("/tasks/{task_id}/done", response_class=HTMLResponse)
async def complete_task(
    task_id: int,
    actor: Actor = Depends(require_admin),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
    events: TaskEventChannel = Depends(get_task_events),
):
    with http_errors():
        task = board_structure.complete_task(session, task_id, user_id=actor.id)
    events.publish(TaskEvent(TaskEventKind.UPDATE, task.id, task.tab_id, actor.id))
    return render_board(session, actor, locales, options)


@app.delete("/tasks/{task_id}", response_class=HTMLResponse)
async def delete_task(
    task_id: int,
    actor: Actor = Depends(require_admin),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
    events: TaskEventChannel = Depends(get_task_events),
):
    """Delete a task"""
    with http_errors():
        tab_id = board_structure.delete_task(session, task_id)
    events.publish(TaskEvent(TaskEventKind.DELETE, task_id, tab_id, actor.id))
    return render_board(session, actor, locales, options)


@app.get("/tasks/{task_id}")
async def read_task(
    task_id: int,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    """Task details with history. Clients only see tasks they created or were assigned."""
    detail = get_task(session, task_id)
    visible = detail is not None and (
        actor.is_admin or actor.id in (detail.task.created_by_id, detail.task.assigned_to_user_id)
    )
    if not visible:
        raise HTTPException(status_code=404, detail=f"Task with ID {task_id} not found.")
    return detail.to_dict()


@app.put("/tasks/{task_id}")
async def update_task(
    task_id: int,
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
    events: TaskEventChannel = Depends(get_task_events),
):
    """Edit the task fields present in the form; empty values clear optional fields"""
    form = await request.form()
    changes = {}
    for field_name in board_structure.EDITABLE_TASK_FIELDS:
        if field_name not in form:
            continue
        value = str(form.get(field_name) or "")
        if field_name == "client_id":
            changes[field_name] = parse_optional_int(value, "client")
        elif field_name == "price":
            changes[field_name] = parse_price(value)
        else:
            changes[field_name] = value or None
    with http_errors():
        task = board_structure.update_task(session, task_id, changes, user_id=actor.id)
    events.publish(TaskEvent(TaskEventKind.UPDATE, task.id, task.tab_id, actor.id))
    return get_task(session, task.id).to_dict()


@app.get("/completed")
async def list_completed_tasks(
    page: int = 0,
    page_size: int = 50,
    search: Optional[str] = None,
    sort_by: str = "-end_date",
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Finished tasks, paginated: ?page=0&page_size=50&search=...&sort_by=-end_date"""
    with http_errors():
        result = find_completed_tasks(session, page=page, page_size=page_size, search=search, sort_by=sort_by)
    return result.to_dict()


@app.put("/preferences/{tab_id}", response_class=HTMLResponse)
async def set_tab_visibility(
    tab_id: int,
    is_visible: bool = Form(...),
    actor: Actor = Depends(get_current_actor),
    locales: List[str] = Depends(get_locales),
    options: BoardOptions = Depends(),
    session: Session = Depends(get_session),
):
    """Show or hide a tab for the current user"""
    with http_errors():
        board_structure.set_tab_visibility(session, actor.id, tab_id, is_visible)
    return render_board(session, actor, locales, options)


@app.get("/structure")
async def list_structure(
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Tab groups with their tabs and every translation, in display order"""
    return {
        "groups": [
            {
                "id": group.id,
                "color": group.color,
                "sort_order": group.sort_order,
                "names": {tr.language: tr.name for tr in group.translations},
                "tabs": [
                    {
                        "id": tab.id,
                        "color": tab.color,
                        "sort_order": tab.sort_order,
                        "user_id": tab.user_id,
                        "names": {tr.language: tr.name for tr in tab.translations},
                    }
                    for tab in group.tabs
                ],
            }
            for group in find_groups_with_tabs(session)
        ]
    }


@app.post("/groups")
async def create_group(
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    names = await read_names(request)
    form = await request.form()
    with http_errors():
        group = board_structure.create_group(session, names, color=str(form.get("color") or "#FFFFFF"))
    return group.model_dump()


@app.put("/groups/{group_id}")
async def update_group(
    group_id: int,
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    names = await read_names(request)
    form = await request.form()
    with http_errors():
        group = board_structure.update_group(session, group_id, names, color=form.get("color") or None)
    return group.model_dump()


@app.post("/groups/reorder")
async def reorder_groups(
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    order = await read_order(request)
    with http_errors():
        board_structure.reorder_groups(session, order)
    return {"success": True}


@app.post("/tabs")
async def create_tab(
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Create a shared tab in a group, or a personal tab when personal=true"""
    names = await read_names(request)
    form = await request.form()
    group_id = parse_optional_int(form.get("group"), "group")
    owner_id = actor.id if str(form.get("personal") or "").lower() in {"1", "true", "on", "yes"} else None
    with http_errors():
        tab = board_structure.create_tab(
            session,
            names,
            color=str(form.get("color") or "#FFFFFF"),
            group_id=group_id,
            owner_id=owner_id,
        )
    return tab.model_dump()


@app.put("/tabs/{tab_id}")
async def update_tab(
    tab_id: int,
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    names = await read_names(request)
    form = await request.form()
    with http_errors():
        tab = board_structure.update_tab(
            session,
            tab_id,
            names,
            color=form.get("color") or None,
            group_id=parse_optional_int(form.get("group"), "group"),
        )
    return tab.model_dump()


@app.delete("/tabs/{tab_id}")
async def delete_tab(
    tab_id: int,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    with http_errors():
        board_structure.delete_tab(session, tab_id)
    return {"success": True}


@app.post("/tabs/reorder")
async def reorder_tabs(
    request: Request,
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    order = await read_order(request)
    with http_errors():
        board_structure.reorder_tabs(session, order)
    return {"success": True}


@app.put("/tabs/{tab_id}/group")
async def move_tab_to_group(
    tab_id: int,
    group_id: int = Form(...),
    actor: Actor = Depends(require_admin),
    session: Session = Depends(get_session),
):
    with http_errors():
        tab = board_structure.move_tab_to_group(session, tab_id, group_id)
    return tab.model_dump()


@app.get("/events")
async def stream_task_events(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    events: TaskEventChannel = Depends(get_task_events),
):
    """Server-sent task events; the page refreshes its board on each one."""
    queue: asyncio.Queue = asyncio.Queue()
    try:
        unsubscribe = events.subscribe(queue.put_nowait)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    async def event_stream():
        try:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=15)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: task\ndata: {json.dumps(event.to_dict())}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


def setup_database(project_dir: Optional[str] = None):
    """Set up database connection"""
    global engine

    if project_dir:
        project_dir_path = pathlib.Path(project_dir).resolve()
        if not project_dir_path.is_dir():
            print(f"Error: Project directory does not exist: {project_dir_path}")
            sys.exit(1)
        database_file = project_dir_path / "board.db"
    else:
        print("Warning: --project-dir not specified. Using current directory.")
        database_file = pathlib.Path.cwd() / "board.db"

    database_url = f"sqlite:///{database_file.resolve()}"
    engine = make_engine(database_url)

    print(f"Database: {database_file}")
    return database_url


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Project Board Web Interface")
    parser.add_argument(
        "--project-dir",
        type=str,
        help="Project directory containing board.db"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    setup_database(args.project_dir)

    print(f"Starting Project Board at http://{args.host}:{args.port}")
    print("   Press Ctrl+C to stop")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
