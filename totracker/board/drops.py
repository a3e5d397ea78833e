"""
Drop-target resolution.

A drag ends over a droppable id; these helpers turn that id into the
attribute change it stands for, or UNRESOLVED when the target means nothing
to the board (the drag is then ignored).

    kanban    column id              → status (NO_STATUS → None)
    calendar  "day-YYYY-MM-DD"       → due-date key
              "backlog"              → None (clear the date)
    backlog   sibling row id         → new index among the visible rows
"""

from datetime import datetime

from totracker.board.ordering import NO_STATUS

KANBAN_COLUMNS = ("NO_STATUS", "BACKLOG", "READY", "IN_PROGRESS", "REVIEW", "DONE")

BACKLOG_DROP_ZONE = "backlog"
DAY_PREFIX = "day-"


class _Unresolved:
    def __repr__(self):
        return "UNRESOLVED"

    def __bool__(self):
        return False


UNRESOLVED = _Unresolved()


def resolve_status_target(over_id):
    """Kanban column id → status value."""
    if over_id == NO_STATUS:
        return None
    if over_id in KANBAN_COLUMNS:
        return over_id
    return UNRESOLVED


def resolve_due_date_target(over_id):
    """Calendar drop id → ``YYYY-MM-DD`` key, None for the backlog zone."""
    if over_id == BACKLOG_DROP_ZONE:
        return None
    if isinstance(over_id, str) and over_id.startswith(DAY_PREFIX):
        key = over_id[len(DAY_PREFIX):]
        try:
            datetime.strptime(key, "%Y-%m-%d")
        except ValueError:
            return UNRESOLVED
        return key
    return UNRESOLVED


def resolve_position_target(row_ids, active_id, over_id):
    """Index of ``over_id`` among ``row_ids``, the moved row's new position."""
    if over_id is None or over_id == active_id:
        return UNRESOLVED
    if active_id not in row_ids or over_id not in row_ids:
        return UNRESOLVED
    return row_ids.index(over_id)


def array_move(items, old_index, new_index):
    """Copy of ``items`` with the element at old_index moved to new_index."""
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def day_key_to_timestamp(key):
    """``YYYY-MM-DD`` → midnight UTC in the API's timestamp format."""
    return f"{key}T00:00:00.000Z" if key else None
