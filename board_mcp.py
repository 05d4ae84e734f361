#!/usr/bin/env python3
# /// script
# dependencies = [
#   "sqlmodel>=0.0.14,<0.1.0",
#   "mcp[cli]>=1.7.0,<2.0.0"
# ]
# ///

"""
MCP server exposing the project board to assistants.

Usage: uv run board_mcp.py --project-dir /path/to/project
"""

import argparse
import pathlib
import sys
from typing import Any, Dict, Optional

from sqlmodel import Session
from mcp.server.fastmcp import FastMCP

from board_models import DEFAULT_LOCALE, make_engine
from board_resolver import get_project_board
from board_store import find_completed_tasks, find_groups_with_tabs, get_actor
from board_store import get_task as get_task_detail
import board_structure
from board_structure import NotFoundError

# Set by main(); tests point it at a temporary database.
engine = None

mcp_server = FastMCP(name="ProjectBoardMCP")


def _locales(locale: Optional[str]) -> list[str]:
    locales = [locale.strip().lower()] if locale and locale.strip() else []
    if DEFAULT_LOCALE not in locales:
        locales.append(DEFAULT_LOCALE)
    return locales


@mcp_server.tool()
def get_board(
    user_id: str,
    locale: Optional[str] = None,
    show_all: bool = False,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Return the project board as a given user sees it.
    Args:
        user_id (str): ID of the user whose board to build.
        locale (str, optional): Preferred language for column names, e.g. 'lv' or 'en'.
        show_all (bool, optional): Admins only. Include every open task and hidden tabs.
        search (str, optional): Case-insensitive filter on task titles.
    Returns:
        dict: {"default_tab_id": int, "columns": [...]} or {"error": "message"}.
    """
    with Session(engine) as session:
        actor = get_actor(session, user_id)
        if actor is None:
            return {"error": f"User with ID {user_id} not found."}
        board = get_project_board(session, actor, _locales(locale), show_all=show_all, search=search)
        return board.to_dict()


@mcp_server.tool()
def list_tab_structure() -> Dict[str, Any]:
    """
    List tab groups and their tabs in display order, with all translated names.
    Returns:
        dict: {"groups": [{"id", "names", "tabs": [{"id", "names", "user_id"}]}]}
    """
    with Session(engine) as session:
        groups = find_groups_with_tabs(session)
    return {
        "groups": [
            {
                "id": g.id,
                "names": {tr.language: tr.name for tr in g.translations},
                "tabs": [
                    {"id": t.id, "names": {tr.language: tr.name for tr in t.translations}, "user_id": t.user_id}
                    for t in g.tabs
                ],
            }
            for g in groups
        ]
    }


@mcp_server.tool()
def set_tab_visibility(user_id: str, tab_id: int, is_visible: bool) -> Dict[str, Any]:
    """
    Show or hide a tab on one user's board. The default tab cannot be hidden.
    Args:
        user_id (str): ID of the user whose board changes.
        tab_id (int): ID of the tab.
        is_visible (bool): False hides the tab, True shows it again.
    Returns:
        dict: The stored preference, or an error message.
    """
    with Session(engine) as session:
        try:
            preference = board_structure.set_tab_visibility(session, user_id, tab_id, is_visible)
        except (NotFoundError, ValueError) as e:
            return {"error": str(e)}
        return preference.model_dump()


@mcp_server.tool()
def move_task(task_id: int, tab_id: int, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Move a task to another tab.
    Args:
        task_id (int): ID of the task.
        tab_id (int): ID of the destination tab.
        user_id (str, optional): Who made the change, for the task history.
    Returns:
        dict: {"id", "tab_id"} of the moved task, or an error message.
    """
    with Session(engine) as session:
        try:
            task = board_structure.move_task(session, task_id, tab_id, user_id=user_id)
        except (NotFoundError, ValueError) as e:
            return {"error": str(e)}
        return {"id": task.id, "tab_id": task.tab_id}


@mcp_server.tool()
def get_task(task_id: int) -> Dict[str, Any]:
    """
    Get a task with its change history, newest change first.
    Args:
        task_id (int): ID of the task.
    Returns:
        dict: The task fields plus "history", or {"error": "message"}.
    """
    with Session(engine) as session:
        detail = get_task_detail(session, task_id)
        if detail is None:
            return {"error": f"Task with ID {task_id} not found."}
        return detail.to_dict()


@mcp_server.tool()
def update_task(
    task_id: int,
    user_id: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    assigned_to_user_id: Optional[str] = None,
    client_id: Optional[int] = None,
    price: Optional[int] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Update fields of a task. Only the fields you pass are changed.
    Args:
        task_id (int): ID of the task to update.
        user_id (str, optional): Who made the change, for the task history.
        title (str, optional): New title.
        description (str, optional): New description, or 'none' to clear.
        assigned_to_user_id (str, optional): New responsible user, or 'none' to clear.
        client_id (int, optional): New client ID.
        price (int, optional): New price in cents.
        end_date (str, optional): New due date (YYYY-MM-DD), or 'none' to clear.
    Returns:
        dict: The updated task with its history, or {"error": "message"}.
    """
    changes: Dict[str, Any] = {}
    for field_name, value in (
        ("title", title),
        ("description", description),
        ("assigned_to_user_id", assigned_to_user_id),
        ("end_date", end_date),
    ):
        if value is not None:
            changes[field_name] = None if value.strip().lower() == "none" and field_name != "title" else value
    if client_id is not None:
        changes["client_id"] = client_id
    if price is not None:
        changes["price"] = price

    with Session(engine) as session:
        try:
            board_structure.update_task(session, task_id, changes, user_id=user_id)
        except (NotFoundError, ValueError) as e:
            return {"error": str(e)}
        return get_task_detail(session, task_id).to_dict()


@mcp_server.tool()
def list_completed_tasks(
    page: int = 0,
    page_size: int = 50,
    search: Optional[str] = None,
    sort_by: str = "-end_date",
) -> Dict[str, Any]:
    """
    List finished tasks one page at a time.
    Args:
        page (int, optional): Zero-based page number. Defaults to 0.
        page_size (int, optional): Tasks per page, 1 to 200. Defaults to 50.
        search (str, optional): Case-insensitive filter on task titles.
        sort_by (str, optional): 'end_date', 'title', 'price', 'updated_at' or 'id'.
            Prefix with '-' for descending. Defaults to '-end_date'.
    Returns:
        dict: {"items", "total", "page", "page_size", "page_count"} or {"error": "message"}.
    """
    with Session(engine) as session:
        try:
            result = find_completed_tasks(session, page=page, page_size=page_size, search=search, sort_by=sort_by)
        except ValueError as e:
            return {"error": str(e)}
        return result.to_dict()


def main():
    global engine

    parser = argparse.ArgumentParser(description="Project Board MCP Server")
    parser.add_argument(
        "--project-dir",
        type=str,
        required=True,
        help="The absolute path to the project directory where board.db is stored.",
    )
    args = parser.parse_args()

    project_dir = pathlib.Path(args.project_dir).resolve()
    if not project_dir.is_dir():
        print(
            f"Error: Provided project directory does not exist or is not a directory: {project_dir}",
            file=sys.stderr,
        )
        sys.exit(1)
    database_file = project_dir / "board.db"
    engine = make_engine(f"sqlite:///{database_file}")

    print(f"Starting ProjectBoardMCP server. Database: {database_file}", file=sys.stderr)
    mcp_server.run()


if __name__ == "__main__":
    main()
