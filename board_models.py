"""
Database models for the project board.

Tab groups hold shared tabs, tabs hold tasks, and every user may keep a
visibility preference per tab. Translated names live in their own tables,
one row per (entity, language).
"""

import difflib
import enum
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel, create_engine


SUPPORTED_LOCALES = ["lv", "en"]
DEFAULT_LOCALE = "lv"


def utc_now() -> datetime:
    """Timezone-aware current time for timestamp columns."""
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    """Role of a board user."""

    ADMIN = "admin"
    CLIENT = "client"


class User(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str = Field(index=True, unique=True)
    email: Optional[str] = Field(default=None)
    role: UserRole = Field(default=UserRole.CLIENT, index=True)


class Client(SQLModel, table=True):
    """A customer that tasks can be billed to."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None)


class TabGroup(SQLModel, table=True):
    __tablename__ = "tab_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    sort_order: int = Field(default=0, index=True)
    color: str = Field(default="#FFFFFF")


class TabGroupTranslation(SQLModel, table=True):
    __tablename__ = "tab_group_translations"
    __table_args__ = (UniqueConstraint("tab_group_id", "language"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tab_group_id: int = Field(foreign_key="tab_groups.id", index=True)
    language: str
    name: str


class Tab(SQLModel, table=True):
    """
    A column that holds tasks.

    Attributes:
        group_id (int, optional): Parent group. Required for shared tabs.
        user_id (str, optional): Owner of a personal tab. Shared tabs have none.
        sort_order (int): Position inside the group.
        color (str): Display color.
    """

    __tablename__ = "tabs"

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: Optional[int] = Field(default=None, foreign_key="tab_groups.id", index=True)
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    sort_order: int = Field(default=0)
    color: str = Field(default="#FFFFFF")

    @property
    def is_personal(self) -> bool:
        return self.user_id is not None


class TabTranslation(SQLModel, table=True):
    __tablename__ = "tab_translations"
    __table_args__ = (UniqueConstraint("tab_id", "language"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tab_id: int = Field(foreign_key="tabs.id", index=True)
    language: str
    name: str


class UserTabPreference(SQLModel, table=True):
    """Per-user visibility and ordering of a tab. Missing row means visible."""

    __tablename__ = "user_tab_preferences"
    __table_args__ = (UniqueConstraint("user_id", "tab_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    tab_id: int = Field(foreign_key="tabs.id", index=True)
    sort_order: int = Field(default=0)
    is_visible: bool = Field(default=True)


class Task(SQLModel, table=True):
    """
    A unit of work shown on the board.

    Attributes:
        tab_id (int): Tab the task is stored under. May point at a tab that
            no longer exists.
        price (int, optional): Price in cents.
        end_date (str, optional): Due date in YYYY-MM-DD format.
        is_done (bool, optional): Completion flag; null counts as not done.
    """

    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True)
    description: Optional[str] = Field(default=None)
    tab_id: int = Field(index=True)
    client_id: Optional[int] = Field(default=None, foreign_key="client.id")
    assigned_to_user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_by_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    price: Optional[int] = Field(default=None)
    end_date: Optional[str] = Field(default=None, index=True)
    is_done: Optional[bool] = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class TaskHistory(SQLModel, table=True):
    __tablename__ = "task_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(index=True)
    user_id: Optional[str] = Field(default=None)
    change_type: str
    change_data: Optional[str] = Field(default=None)
    description: str
    created_at: datetime = Field(default_factory=utc_now)


def suggest_correction(value: str, valid_values: list[str]) -> str:
    """
    Suggest the closest valid value using difflib.get_close_matches.
    """
    matches = difflib.get_close_matches(value, valid_values, n=1)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return ""


def parse_role(value: Optional[Union[str, UserRole]]) -> Optional[UserRole]:
    """
    Convert a string or UserRole to a UserRole enum value.
    Raises:
        ValueError: If the input is not a valid role.
    """
    if value is None or isinstance(value, UserRole):
        return value
    value_str = str(value).strip().lower()
    for r in UserRole:
        if value_str == r.value or value_str == r.name.lower():
            return r
    valid = [r.value for r in UserRole]
    suggestion = suggest_correction(value_str, valid)
    raise ValueError(f"Invalid role: '{value}'. Valid: {valid}. {suggestion}")


def make_engine(database_url: str):
    """Create an engine and make sure all board tables exist."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, connect_args=connect_args)
    SQLModel.metadata.create_all(engine)
    return engine
