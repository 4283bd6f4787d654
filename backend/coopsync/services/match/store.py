import json
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from coopsync import db
from coopsync.errors import Internal
from coopsync.models import MatchRecord, ReplayEntry, StoreMarker
from coopsync.state import MatchState
from . import clock


def match_ttl() -> int:
    return int(current_app.config.get('MATCH_TTL_SEC', 60 * 60 * 3))


def load_match(match_id: str) -> Optional[MatchState]:
    """Fetch the snapshot for match_id, or None if absent or expired."""
    try:
        record = db.session.get(MatchRecord, match_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(f"[coop/store] load failed match={match_id}")
        raise Internal()
    if record is None or record.expires_at <= clock.now():
        return None
    try:
        return MatchState.from_dict(json.loads(record.body))
    except (ValueError, KeyError, TypeError):
        current_app.logger.warning(f"[coop/store] unreadable snapshot match={match_id}")
        return None


def save_match(state: MatchState) -> None:
    """Stage the snapshot in the current session with a fresh TTL; commit() writes it."""
    record = db.session.get(MatchRecord, state.match_id)
    if record is None:
        record = MatchRecord(match_id=state.match_id)
    record.body = json.dumps(state.to_dict())
    record.expires_at = clock.now() + match_ttl()
    db.session.add(record)


def purge_expired() -> int:
    """Delete every snapshot, replay entry and marker whose expiry has passed."""
    now = clock.now()
    removed = 0
    for model in (MatchRecord, ReplayEntry, StoreMarker):
        removed += model.query.filter(model.expires_at <= now).delete(synchronize_session=False)
    return removed


def commit() -> None:
    """Write the staged unit of work, reclaiming expired rows in the same transaction."""
    try:
        purge_expired()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("[coop/store] commit failed")
        raise Internal()
