"""
Board placement: decides which column every task appears under.

Admins get one column per tab, clients one column per tab group. Tasks whose
tab no longer exists and client-submitted intake are routed to the default
tab, the first tab of the first non-empty group.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlmodel import Session

from board_store import Actor, BoardSnapshot, BoardTask, GroupNode, Translation, fetch_snapshot, task_to_dict

logger = logging.getLogger(__name__)

UNNAMED_TAB = "Unnamed Tab"
UNNAMED_GROUP = "Unnamed Group"
PERSONAL_TAB = "My Tasks"
INBOX = "Inbox"

# Column key used when there is no default tab to route tasks to.
NO_DESTINATION = 0
INBOX_COLOR = "#000000"


@dataclass
class BoardColumn:
    id: int
    name: str
    color: str
    tasks: List[BoardTask] = field(default_factory=list)
    is_personal: bool = False


@dataclass
class ProjectBoard:
    columns: List[BoardColumn]
    default_tab_id: Optional[int] = None
    hidden_tab_ids: Set[int] = field(default_factory=set)

    def find_column(self, task_id: int) -> Optional[BoardColumn]:
        for column in self.columns:
            if any(t.id == task_id for t in column.tasks):
                return column
        return None

    def to_dict(self) -> dict:
        return {
            "default_tab_id": self.default_tab_id,
            "columns": [
                {
                    "id": c.id,
                    "name": c.name,
                    "color": c.color,
                    "is_personal": c.is_personal,
                    "tasks": [task_to_dict(t) for t in c.tasks],
                }
                for c in self.columns
            ],
        }


def pick_translation(translations: Sequence[Translation], locales: Iterable[str], placeholder: str) -> str:
    """
    Return the name for the first locale that has a translation.

    Falls back to the first available translation, then to the placeholder.
    """
    translations = list(translations)
    for locale in locales:
        for tr in translations:
            if tr.language == locale and tr.name:
                return tr.name
    if translations and translations[0].name:
        return translations[0].name
    return placeholder


def find_default_tab_id(groups: Sequence[GroupNode]) -> Optional[int]:
    for group in groups:
        if group.tabs:
            return group.tabs[0].id
    return None


def hidden_tab_ids(snapshot: BoardSnapshot, default_tab_id: Optional[int] = None) -> Set[int]:
    """
    Tabs the user chose to hide.

    The default tab receives intake and redirected tasks, so a preference
    hiding it is ignored. Such a row appears when a hidden tab later becomes
    the default through reordering or deletion.
    """
    hidden = {p.tab_id for p in snapshot.preferences if not p.is_visible}
    if default_tab_id in hidden:
        logger.info("Ignoring hidden preference for default tab %s", default_tab_id)
        hidden.discard(default_tab_id)
    return hidden


def place_task(
    task: BoardTask,
    actor: Actor,
    tab_to_group: Dict[int, int],
    default_tab_id: Optional[int],
    hidden: Set[int],
    show_all: bool = False,
) -> Optional[int]:
    """
    Column key for a single task, or None when the task is not shown.

    For clients the key is a group id, for admins a tab id.
    """
    is_known_tab = task.tab_id in tab_to_group
    target = task.tab_id if is_known_tab else default_tab_id
    default_key = default_tab_id if default_tab_id is not None else NO_DESTINATION

    if not actor.is_admin:
        group_id = tab_to_group.get(target) if target is not None else None
        if group_id is None:
            group_id = tab_to_group.get(default_tab_id, NO_DESTINATION)
        return group_id

    intake = task.is_client_created and not task.assigned_to_user_id
    if intake:
        return default_key

    if target is None:
        target = NO_DESTINATION
    if show_all:
        return target

    # orphaned tasks are never dropped, even if a stale preference hides their tab id
    is_hidden = is_known_tab and task.tab_id in hidden
    if task.assigned_to_user_id == actor.id and (is_hidden or not is_known_tab):
        return default_key
    if is_hidden:
        return None
    return target


def resolve_board(
    actor: Actor,
    locales: Sequence[str],
    snapshot: BoardSnapshot,
    show_all: bool = False,
) -> ProjectBoard:
    """Distribute the snapshot's tasks over the actor's columns."""
    groups = snapshot.groups
    tab_to_group = {tab.id: group.id for group in groups for tab in group.tabs}
    default_tab_id = find_default_tab_id(groups)
    hidden = hidden_tab_ids(snapshot, default_tab_id)

    if default_tab_id is None and groups:
        logger.warning("No tab group has any tabs; tasks will be collected in the %s column", INBOX)

    by_key: Dict[int, List[BoardTask]] = {}
    for task in snapshot.tasks:
        key = place_task(task, actor, tab_to_group, default_tab_id, hidden, show_all=show_all)
        if key is None:
            continue
        if task.tab_id not in tab_to_group:
            logger.debug("Task %s points at unknown tab %s, routed to %s", task.id, task.tab_id, key)
        placed = replace(task, moved=task.tab_id != default_tab_id)
        by_key.setdefault(key, []).append(placed)

    columns: List[BoardColumn] = []
    if by_key.get(NO_DESTINATION):
        columns.append(BoardColumn(id=NO_DESTINATION, name=INBOX, color=INBOX_COLOR, tasks=by_key[NO_DESTINATION]))

    if actor.is_admin:
        for group in groups:
            for tab in group.tabs:
                if not show_all and tab.id in hidden:
                    continue
                placeholder = PERSONAL_TAB if tab.is_personal else UNNAMED_TAB
                columns.append(
                    BoardColumn(
                        id=tab.id,
                        name=pick_translation(tab.translations, locales, placeholder),
                        color=tab.color,
                        tasks=by_key.get(tab.id, []),
                        is_personal=tab.is_personal,
                    )
                )
    else:
        for group in groups:
            columns.append(
                BoardColumn(
                    id=group.id,
                    name=pick_translation(group.translations, locales, UNNAMED_GROUP),
                    color=group.color,
                    tasks=by_key.get(group.id, []),
                )
            )

    return ProjectBoard(columns=columns, default_tab_id=default_tab_id, hidden_tab_ids=hidden)


def get_project_board(
    session: Session,
    actor: Actor,
    locales: Sequence[str],
    show_all: bool = False,
    search: Optional[str] = None,
) -> ProjectBoard:
    """
    Build the board for an actor.

    Args:
        session (Session): Open database session.
        actor (Actor): Current user id and role.
        locales (list[str]): Preferred languages, most preferred first.
        show_all (bool): Admin "view=all" mode. Ignored for clients.
        search (str, optional): Case-insensitive title filter.
    Returns:
        ProjectBoard: Ordered columns with their tasks.
    """
    show_all = show_all and actor.is_admin
    snapshot = fetch_snapshot(session, actor, show_all=show_all, search=search)
    return resolve_board(actor, locales, snapshot, show_all=show_all)
