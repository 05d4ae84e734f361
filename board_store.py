"""
Read-only queries that feed the board resolver.

Everything here returns plain dataclasses so the placement rules can run
without a database session.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from board_models import (
    Client,
    Tab,
    TabGroup,
    TabGroupTranslation,
    TabTranslation,
    Task,
    TaskHistory,
    User,
    UserRole,
    UserTabPreference,
    parse_role,
)


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class Translation:
    language: str
    name: str


@dataclass
class TabNode:
    id: int
    group_id: Optional[int]
    user_id: Optional[str]
    color: str
    sort_order: int
    translations: List[Translation] = field(default_factory=list)

    @property
    def is_personal(self) -> bool:
        return self.user_id is not None


@dataclass
class GroupNode:
    id: int
    color: str
    sort_order: int
    translations: List[Translation] = field(default_factory=list)
    tabs: List[TabNode] = field(default_factory=list)


@dataclass
class BoardTask:
    """A task as shown on a board card."""

    id: int
    title: str
    tab_id: int
    price: Optional[int] = None
    end_date: Optional[str] = None
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    assigned_to_name: Optional[str] = None
    created_by_id: Optional[str] = None
    creator_role: Optional[UserRole] = None
    is_done: Optional[bool] = False
    moved: bool = False

    @property
    def is_client_created(self) -> bool:
        return self.creator_role == UserRole.CLIENT


def task_to_dict(task: BoardTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "tab_id": task.tab_id,
        "price": task.price,
        "end_date": task.end_date,
        "client_id": task.client_id,
        "client_name": task.client_name,
        "assigned_to_user_id": task.assigned_to_user_id,
        "assigned_to_name": task.assigned_to_name,
        "created_by_id": task.created_by_id,
        "is_client_created": task.is_client_created,
        "is_done": bool(task.is_done),
        "moved": task.moved,
    }


COMPLETED_SORT_FIELDS = ["end_date", "title", "price", "updated_at", "id"]
MAX_PAGE_SIZE = 200


@dataclass
class CompletedPage:
    items: List[BoardTask]
    total: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [task_to_dict(t) for t in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "page_count": self.page_count,
        }


@dataclass
class HistoryEntry:
    id: int
    change_type: str
    changes: List[Dict[str, Any]]
    description: str
    user_id: Optional[str]
    user_name: Optional[str]
    created_at: datetime


@dataclass
class TaskDetail:
    """A task card plus the fields and history only the detail view shows."""

    task: BoardTask
    description: Optional[str]
    created_at: datetime
    updated_at: datetime
    history: List[HistoryEntry]

    def to_dict(self) -> Dict[str, Any]:
        data = task_to_dict(self.task)
        data["description"] = self.description
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        data["history"] = [
            {
                "id": h.id,
                "change_type": h.change_type,
                "changes": h.changes,
                "description": h.description,
                "user_id": h.user_id,
                "user_name": h.user_name,
                "created_at": h.created_at.isoformat() if h.created_at else None,
            }
            for h in self.history
        ]
        return data


@dataclass(frozen=True)
class Preference:
    tab_id: int
    is_visible: bool
    sort_order: int = 0


@dataclass
class BoardSnapshot:
    groups: List[GroupNode]
    tasks: List[BoardTask]
    preferences: List[Preference]


def find_tasks(session: Session, actor: Actor, show_all: bool = False, search: Optional[str] = None) -> List[BoardTask]:
    """
    Fetch the open tasks the actor may see on the board.

    Admins see their own tasks, tasks assigned to them and everything
    submitted by client users; with show_all they see every open task.
    Clients see tasks they created or were assigned.
    """
    client_user_ids = select(User.id).where(User.role == UserRole.CLIENT)

    statement = select(Task).where(or_(col(Task.is_done) == False, col(Task.is_done).is_(None)))  # noqa: E712

    if actor.is_admin and show_all:
        pass
    elif actor.is_admin:
        statement = statement.where(
            or_(
                col(Task.created_by_id) == actor.id,
                col(Task.assigned_to_user_id) == actor.id,
                col(Task.created_by_id).in_(client_user_ids),
            )
        )
    else:
        statement = statement.where(
            or_(col(Task.created_by_id) == actor.id, col(Task.assigned_to_user_id) == actor.id)
        )

    statement = _filter_title(statement, search)
    statement = statement.order_by(col(Task.end_date).is_(None), col(Task.end_date), col(Task.id))
    return _to_board_tasks(session, session.exec(statement).all())


def _to_board_tasks(session: Session, tasks: List[Task]) -> List[BoardTask]:
    """Attach user names, creator roles and client names to task rows."""
    user_ids = {t.created_by_id for t in tasks} | {t.assigned_to_user_id for t in tasks}
    user_ids.discard(None)
    users: Dict[str, User] = {}
    if user_ids:
        users = {u.id: u for u in session.exec(select(User).where(col(User.id).in_(user_ids))).all()}

    client_ids = {t.client_id for t in tasks if t.client_id is not None}
    clients: Dict[int, Client] = {}
    if client_ids:
        clients = {c.id: c for c in session.exec(select(Client).where(col(Client.id).in_(client_ids))).all()}

    results = []
    for task in tasks:
        creator = users.get(task.created_by_id)
        assignee = users.get(task.assigned_to_user_id)
        client = clients.get(task.client_id)
        results.append(
            BoardTask(
                id=task.id,
                title=task.title,
                tab_id=task.tab_id,
                price=task.price,
                end_date=task.end_date,
                client_id=task.client_id,
                client_name=client.name if client else None,
                assigned_to_user_id=task.assigned_to_user_id,
                assigned_to_name=assignee.name if assignee else None,
                created_by_id=task.created_by_id,
                creator_role=creator.role if creator else None,
                is_done=task.is_done,
            )
        )
    return results


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filter_title(statement, search: Optional[str]):
    if search and search.strip():
        needle = search.strip().lower()
        statement = statement.where(col(Task.title).ilike(f"%{_escape_like(needle)}%", escape="\\"))
    return statement


def find_completed_tasks(
    session: Session,
    page: int = 0,
    page_size: int = 50,
    search: Optional[str] = None,
    sort_by: str = "-end_date",
) -> CompletedPage:
    """
    One page of finished tasks.

    Args:
        page (int): Zero-based page number.
        page_size (int): Tasks per page, 1 to MAX_PAGE_SIZE.
        search (str, optional): Case-insensitive filter on task titles.
        sort_by (str): One of COMPLETED_SORT_FIELDS. Prefix with '-' for
            descending. Undated tasks always sort last by due date.
    Raises:
        ValueError: On an invalid page, page size or sort field.
    """
    if page < 0:
        raise ValueError(f"Page must be zero or greater, got {page}.")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"Page size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}.")
    descending = sort_by.startswith("-")
    field_name = sort_by[1:] if descending else sort_by
    if field_name not in COMPLETED_SORT_FIELDS:
        raise ValueError(f"Invalid sort field '{field_name}'. Valid fields: {COMPLETED_SORT_FIELDS}")

    statement = _filter_title(select(Task).where(col(Task.is_done) == True), search)  # noqa: E712
    total = session.exec(select(func.count()).select_from(statement.subquery())).one()

    sort_column = col(getattr(Task, field_name))
    order = [sort_column.desc() if descending else sort_column.asc()]
    if field_name == "end_date":
        order.insert(0, sort_column.is_(None))
    order.append(col(Task.id).desc() if descending else col(Task.id).asc())
    statement = statement.order_by(*order).offset(page * page_size).limit(page_size)

    items = _to_board_tasks(session, session.exec(statement).all())
    return CompletedPage(items=items, total=total, page=page, page_size=page_size)


def get_task(session: Session, task_id: int) -> Optional[TaskDetail]:
    """A task with its full edit history, newest entry first."""
    task = session.get(Task, task_id)
    if not task:
        return None
    rows = session.exec(
        select(TaskHistory)
        .where(TaskHistory.task_id == task_id)
        .order_by(col(TaskHistory.id).desc())
    ).all()
    user_ids = {row.user_id for row in rows if row.user_id}
    names: Dict[str, str] = {}
    if user_ids:
        names = {u.id: u.name for u in session.exec(select(User).where(col(User.id).in_(user_ids))).all()}
    history = [
        HistoryEntry(
            id=row.id,
            change_type=row.change_type,
            changes=json.loads(row.change_data) if row.change_data else [],
            description=row.description,
            user_id=row.user_id,
            user_name=names.get(row.user_id),
            created_at=row.created_at,
        )
        for row in rows
    ]
    return TaskDetail(
        task=_to_board_tasks(session, [task])[0],
        description=task.description,
        created_at=task.created_at,
        updated_at=task.updated_at,
        history=history,
    )


def find_groups_with_tabs(session: Session) -> List[GroupNode]:
    """All tab groups in display order, each with its ordered tabs and translations."""
    groups = session.exec(select(TabGroup).order_by(col(TabGroup.sort_order), col(TabGroup.id))).all()
    tabs = session.exec(
        select(Tab).where(col(Tab.group_id).is_not(None)).order_by(col(Tab.sort_order), col(Tab.id))
    ).all()
    group_translations = session.exec(select(TabGroupTranslation).order_by(col(TabGroupTranslation.id))).all()
    tab_translations = session.exec(select(TabTranslation).order_by(col(TabTranslation.id))).all()

    names_by_group: Dict[int, List[Translation]] = {}
    for tr in group_translations:
        names_by_group.setdefault(tr.tab_group_id, []).append(Translation(tr.language, tr.name))
    names_by_tab: Dict[int, List[Translation]] = {}
    for tr in tab_translations:
        names_by_tab.setdefault(tr.tab_id, []).append(Translation(tr.language, tr.name))

    nodes = [
        GroupNode(
            id=g.id,
            color=g.color,
            sort_order=g.sort_order,
            translations=names_by_group.get(g.id, []),
        )
        for g in groups
    ]
    by_id = {node.id: node for node in nodes}
    for tab in tabs:
        parent = by_id.get(tab.group_id)
        if parent is None:
            continue
        parent.tabs.append(
            TabNode(
                id=tab.id,
                group_id=tab.group_id,
                user_id=tab.user_id,
                color=tab.color,
                sort_order=tab.sort_order,
                translations=names_by_tab.get(tab.id, []),
            )
        )
    return nodes


def find_preferences(session: Session, user_id: str) -> List[Preference]:
    rows = session.exec(select(UserTabPreference).where(UserTabPreference.user_id == user_id)).all()
    return [Preference(tab_id=p.tab_id, is_visible=p.is_visible, sort_order=p.sort_order) for p in rows]


def fetch_snapshot(session: Session, actor: Actor, show_all: bool = False, search: Optional[str] = None) -> BoardSnapshot:
    """Run the three board reads against one session."""
    return BoardSnapshot(
        groups=find_groups_with_tabs(session),
        tasks=find_tasks(session, actor, show_all=show_all, search=search),
        preferences=find_preferences(session, actor.id),
    )


def get_actor(session: Session, user_id: str) -> Optional[Actor]:
    user = session.get(User, user_id)
    if not user:
        return None
    return Actor(id=user.id, role=parse_role(user.role))
