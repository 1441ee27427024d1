import logging

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from .change_feed import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

PENDING_KEY = "pending_changes"
FEED_KEY = "change_feed"


def snapshot(obj) -> dict:
    state = sa_inspect(obj)
    loaded = state.dict
    return {
        attr.columns[0].name: loaded.get(attr.key)
        for attr in state.mapper.column_attrs
        if attr.key in loaded
    }


def record_change(session: Session, table: str, change_type: ChangeType, record: dict):
    session.info.setdefault(PENDING_KEY, []).append(
        ChangeEvent(table=table, type=change_type, record=record)
    )


@event.listens_for(Session, "after_flush")
def capture_flushed_rows(session: Session, flush_context):
    for obj in session.new:
        record_change(session, obj.__table__.name, ChangeType.INSERT, snapshot(obj))

    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            record_change(
                session, obj.__table__.name, ChangeType.UPDATE, snapshot(obj)
            )

    for obj in session.deleted:
        record_change(session, obj.__table__.name, ChangeType.DELETE, snapshot(obj))


@event.listens_for(Session, "after_commit")
def publish_committed_rows(session: Session):
    changes = session.info.pop(PENDING_KEY, [])
    feed = session.info.get(FEED_KEY)
    if feed is None or not changes:
        return

    for change in changes:
        delivered = feed.publish(change)
        logger.debug(
            f"Published {change.type.value} on {change.table} "
            f"({change.row_id}) to {delivered} subscriber(s)"
        )


@event.listens_for(Session, "after_rollback")
def discard_uncommitted_rows(session: Session):
    session.info.pop(PENDING_KEY, None)
