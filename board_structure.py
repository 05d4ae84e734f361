"""
Write operations for the board: tab groups, tabs, per-user tab visibility
and the task moves that drive the board.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func
from sqlmodel import Session, col, select

from board_models import (
    SUPPORTED_LOCALES,
    Client,
    Tab,
    TabGroup,
    TabGroupTranslation,
    TabTranslation,
    Task,
    TaskHistory,
    User,
    UserTabPreference,
    suggest_correction,
    utc_now,
)
from board_store import find_groups_with_tabs
from board_resolver import find_default_tab_id


class NotFoundError(LookupError):
    """A referenced row does not exist."""


class TabInUseError(ValueError):
    """The tab still holds tasks and cannot be deleted."""


def _require_names(names: Mapping[str, str]) -> Dict[str, str]:
    cleaned = {locale: (names.get(locale) or "").strip() for locale in SUPPORTED_LOCALES}
    missing = [locale for locale, name in cleaned.items() if not name]
    if missing:
        raise ValueError(f"A name is required for every language. Missing: {missing}")
    return cleaned


def _get_or_raise(session: Session, model, item_id, label: str):
    item = session.get(model, item_id)
    if not item:
        raise NotFoundError(f"{label} with ID {item_id} not found.")
    return item


def _next_sort_order(session: Session, column, *criteria) -> int:
    statement = select(func.coalesce(func.max(column), -1))
    for criterion in criteria:
        statement = statement.where(criterion)
    current = session.exec(statement).one()
    return (current if current is not None else -1) + 1


# --- Tab groups ---
def create_group(session: Session, names: Mapping[str, str], color: str = "#FFFFFF") -> TabGroup:
    """
    Add a tab group at the end of the board.
    Args:
        names (dict): Language code -> group name, one per supported locale.
        color (str, optional): Display color.
    Raises:
        ValueError: If a translation is missing.
    """
    cleaned = _require_names(names)
    group = TabGroup(sort_order=_next_sort_order(session, col(TabGroup.sort_order)), color=color or "#FFFFFF")
    session.add(group)
    session.flush()
    for locale, name in cleaned.items():
        session.add(TabGroupTranslation(tab_group_id=group.id, language=locale, name=name))
    session.commit()
    session.refresh(group)
    return group


def update_group(session: Session, group_id: int, names: Mapping[str, str], color: Optional[str] = None) -> TabGroup:
    cleaned = _require_names(names)
    group = _get_or_raise(session, TabGroup, group_id, "Tab group")
    _replace_translations(session, TabGroupTranslation, TabGroupTranslation.tab_group_id, group_id, cleaned)
    if color:
        group.color = color
        session.add(group)
    session.commit()
    session.refresh(group)
    return group


def reorder_groups(session: Session, order: Mapping[int, int]) -> None:
    for group_id, sort_order in order.items():
        group = _get_or_raise(session, TabGroup, int(group_id), "Tab group")
        group.sort_order = int(sort_order)
        session.add(group)
    session.commit()


# --- Tabs ---
def create_tab(
    session: Session,
    names: Mapping[str, str],
    color: str = "#FFFFFF",
    group_id: Optional[int] = None,
    owner_id: Optional[str] = None,
) -> Tab:
    """
    Add a tab at the end of its group.

    Shared tabs (no owner) must belong to a group. Personal tabs may stand
    outside any group.
    """
    cleaned = _require_names(names)
    if group_id is None and owner_id is None:
        raise ValueError("Shared tabs require a group.")
    if group_id is not None:
        _get_or_raise(session, TabGroup, group_id, "Tab group")
        sort_order = _next_sort_order(session, col(Tab.sort_order), col(Tab.group_id) == group_id)
    else:
        sort_order = 0
    if owner_id is not None:
        _get_or_raise(session, User, owner_id, "User")

    tab = Tab(group_id=group_id, user_id=owner_id, sort_order=sort_order, color=color or "#FFFFFF")
    session.add(tab)
    session.flush()
    for locale, name in cleaned.items():
        session.add(TabTranslation(tab_id=tab.id, language=locale, name=name))
    session.commit()
    session.refresh(tab)
    return tab


def update_tab(
    session: Session,
    tab_id: int,
    names: Mapping[str, str],
    color: Optional[str] = None,
    group_id: Optional[int] = None,
) -> Tab:
    cleaned = _require_names(names)
    tab = _get_or_raise(session, Tab, tab_id, "Tab")
    if group_id is not None:
        _get_or_raise(session, TabGroup, group_id, "Tab group")
        tab.group_id = group_id
    if color:
        tab.color = color
    session.add(tab)
    _replace_translations(session, TabTranslation, TabTranslation.tab_id, tab_id, cleaned)
    session.commit()
    session.refresh(tab)
    return tab


def delete_tab(session: Session, tab_id: int) -> None:
    """
    Delete a tab with its translations and user preferences.
    Raises:
        TabInUseError: If any task is still stored under the tab.
    """
    tab = _get_or_raise(session, Tab, tab_id, "Tab")
    task_count = session.exec(select(func.count()).select_from(Task).where(Task.tab_id == tab_id)).one()
    if task_count:
        raise TabInUseError(f"Tab {tab_id} still holds {task_count} task(s); move them first.")
    for row in session.exec(select(TabTranslation).where(TabTranslation.tab_id == tab_id)).all():
        session.delete(row)
    for row in session.exec(select(UserTabPreference).where(UserTabPreference.tab_id == tab_id)).all():
        session.delete(row)
    session.delete(tab)
    session.commit()


def reorder_tabs(session: Session, order: Mapping[int, int]) -> None:
    for tab_id, sort_order in order.items():
        tab = _get_or_raise(session, Tab, int(tab_id), "Tab")
        tab.sort_order = int(sort_order)
        session.add(tab)
    session.commit()


def move_tab_to_group(session: Session, tab_id: int, group_id: int) -> Tab:
    tab = _get_or_raise(session, Tab, tab_id, "Tab")
    _get_or_raise(session, TabGroup, group_id, "Tab group")
    tab.group_id = group_id
    session.add(tab)
    session.commit()
    session.refresh(tab)
    return tab


def _replace_translations(session: Session, model, key_column, owner_id: int, names: Dict[str, str]) -> None:
    existing = {tr.language: tr for tr in session.exec(select(model).where(key_column == owner_id)).all()}
    for locale, name in names.items():
        row = existing.get(locale)
        if row is None:
            kwargs = {key_column.key: owner_id, "language": locale, "name": name}
            session.add(model(**kwargs))
        else:
            row.name = name
            session.add(row)


# --- Visibility preferences ---
def set_tab_visibility(
    session: Session,
    user_id: str,
    tab_id: int,
    is_visible: bool,
    sort_order: Optional[int] = None,
) -> UserTabPreference:
    """
    Show or hide a tab for one user.

    The default tab takes client intake and orphaned tasks, so it cannot be
    hidden.
    Raises:
        NotFoundError: If the user or tab does not exist.
        ValueError: When hiding the default tab.
    """
    _get_or_raise(session, User, user_id, "User")
    _get_or_raise(session, Tab, tab_id, "Tab")
    if not is_visible and tab_id == find_default_tab_id(find_groups_with_tabs(session)):
        raise ValueError(f"Tab {tab_id} is the default tab and cannot be hidden.")

    preference = session.exec(
        select(UserTabPreference).where(UserTabPreference.user_id == user_id, UserTabPreference.tab_id == tab_id)
    ).first()
    if preference is None:
        preference = UserTabPreference(user_id=user_id, tab_id=tab_id, sort_order=sort_order or 0)
    elif sort_order is not None:
        preference.sort_order = sort_order
    preference.is_visible = is_visible
    session.add(preference)
    session.commit()
    session.refresh(preference)
    return preference


# --- Tasks ---
def record_history(
    session: Session,
    task_id: int,
    user_id: Optional[str],
    change_type: str,
    changes: List[Dict[str, Any]],
    description: str,
) -> Optional[TaskHistory]:
    if not changes and not description:
        return None
    entry = TaskHistory(
        task_id=task_id,
        user_id=user_id,
        change_type=change_type,
        change_data=json.dumps(changes),
        description=description,
    )
    session.add(entry)
    return entry


EDITABLE_TASK_FIELDS = ["title", "description", "client_id", "assigned_to_user_id", "price", "end_date"]


def _check_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValueError("Task title is required.")
    return title


def _check_end_date(end_date: Optional[str]) -> Optional[str]:
    if not end_date:
        return None
    try:
        datetime.strptime(end_date, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"Invalid date format for due date: '{end_date}'. Please use YYYY-MM-DD.")
    return end_date


def _check_price(price: Optional[int]) -> Optional[int]:
    if price is not None and price < 0:
        raise ValueError(f"Price cannot be negative: {price}")
    return price


def _get_board_tab(session: Session, tab_id: int) -> Tab:
    """A tab that tasks may be stored under: it must sit in a tab group."""
    tab = _get_or_raise(session, Tab, tab_id, "Tab")
    if tab.group_id is None:
        raise ValueError(f"Tab {tab_id} is not part of any tab group and cannot hold tasks.")
    return tab


def create_task(
    session: Session,
    title: str,
    tab_id: Optional[int] = None,
    created_by_id: Optional[str] = None,
    assigned_to_user_id: Optional[str] = None,
    client_id: Optional[int] = None,
    price: Optional[int] = None,
    end_date: Optional[str] = None,
    description: Optional[str] = None,
) -> Task:
    title = _check_title(title)
    end_date = _check_end_date(end_date)
    _check_price(price)
    if tab_id is None:
        # no tab chosen: the task goes to the intake column
        tab_id = find_default_tab_id(find_groups_with_tabs(session))
        if tab_id is None:
            raise ValueError("No tab exists yet; create a tab group and a tab first.")
    _get_board_tab(session, tab_id)
    if assigned_to_user_id:
        _get_or_raise(session, User, assigned_to_user_id, "User")
    if client_id is not None:
        _get_or_raise(session, Client, client_id, "Client")

    task = Task(
        title=title,
        description=description,
        tab_id=tab_id,
        created_by_id=created_by_id,
        assigned_to_user_id=assigned_to_user_id or None,
        client_id=client_id,
        price=price,
        end_date=end_date or None,
    )
    session.add(task)
    session.flush()
    record_history(session, task.id, created_by_id, "created", [], f"Task '{title}' created")
    session.commit()
    session.refresh(task)
    return task


def update_task(
    session: Session,
    task_id: int,
    changes: Mapping[str, Any],
    user_id: Optional[str] = None,
) -> Task:
    """
    Edit task fields and record one history row listing every changed field.

    Args:
        changes (dict): Field name -> new value. Only fields in
            EDITABLE_TASK_FIELDS are accepted; None clears optional fields.
            The tab is changed with move_task.
    Raises:
        NotFoundError: If the task, assignee or client does not exist.
        ValueError: On an unknown field or an invalid value.
    """
    task = _get_or_raise(session, Task, task_id, "Task")
    for field_name in changes:
        if field_name not in EDITABLE_TASK_FIELDS:
            suggestion = suggest_correction(field_name, EDITABLE_TASK_FIELDS)
            raise ValueError(f"Field '{field_name}' cannot be edited. Valid: {EDITABLE_TASK_FIELDS}. {suggestion}".strip())

    values = dict(changes)
    if "title" in values:
        values["title"] = _check_title(values["title"])
    if "description" in values:
        values["description"] = (values["description"] or "").strip() or None
    if "end_date" in values:
        values["end_date"] = _check_end_date(values["end_date"])
    if "price" in values:
        _check_price(values["price"])
    if values.get("assigned_to_user_id"):
        _get_or_raise(session, User, values["assigned_to_user_id"], "User")
    elif "assigned_to_user_id" in values:
        values["assigned_to_user_id"] = None
    if values.get("client_id") is not None:
        _get_or_raise(session, Client, values["client_id"], "Client")

    diff = []
    for field_name in EDITABLE_TASK_FIELDS:
        if field_name not in values:
            continue
        old, new = getattr(task, field_name), values[field_name]
        if old != new:
            diff.append({"field": field_name, "from": old, "to": new})
            setattr(task, field_name, new)
    if not diff:
        return task

    task.updated_at = utc_now()
    session.add(task)
    record_history(session, task.id, user_id, "updated", diff, "Task updated")
    session.commit()
    session.refresh(task)
    return task


def move_task(session: Session, task_id: int, tab_id: int, user_id: Optional[str] = None) -> Task:
    task = _get_or_raise(session, Task, task_id, "Task")
    _get_board_tab(session, tab_id)
    if task.tab_id == tab_id:
        return task
    changes = [{"field": "tab_id", "from": task.tab_id, "to": tab_id}]
    task.tab_id = tab_id
    task.updated_at = utc_now()
    session.add(task)
    record_history(session, task.id, user_id, "moved", changes, f"Moved to tab {tab_id}")
    session.commit()
    session.refresh(task)
    return task


def complete_task(session: Session, task_id: int, user_id: Optional[str] = None) -> Task:
    task = _get_or_raise(session, Task, task_id, "Task")
    if not task.is_done:
        task.is_done = True
        task.updated_at = utc_now()
        session.add(task)
        record_history(session, task.id, user_id, "completed", [{"field": "is_done", "from": False, "to": True}], "Task completed")
        session.commit()
        session.refresh(task)
    return task


def delete_task(session: Session, task_id: int) -> int:
    """Delete a task and its history. Returns the tab the task was stored under."""
    task = _get_or_raise(session, Task, task_id, "Task")
    tab_id = task.tab_id
    for row in session.exec(select(TaskHistory).where(TaskHistory.task_id == task_id)).all():
        session.delete(row)
    session.delete(task)
    session.commit()
    return tab_id
