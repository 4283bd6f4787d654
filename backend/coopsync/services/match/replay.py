"""Per-match sequence numbers and the replay log.

Only ``SequencedMessage`` instances are ever written here. Entries share
the match's TTL: every append slides the expiry of the whole log forward.
"""
import json
from typing import List, Optional

from flask import current_app

from coopsync import db
from coopsync.messages import SequencedMessage, decode_message
from coopsync.models import ReplayEntry
from coopsync.state import MatchState
from . import clock
from .store import match_ttl


def next_seq(state: MatchState) -> int:
    """Assign and return the next sequence number for this match."""
    state.seq += 1
    return state.seq


def append(match_id: str, message: SequencedMessage) -> None:
    if not isinstance(message, SequencedMessage):
        raise TypeError(f"{type(message).__name__} carries no seq and cannot be logged")
    db.session.add(ReplayEntry(
        match_id=match_id,
        seq=message.seq,
        body=json.dumps(message.to_dict()),
        expires_at=clock.now() + match_ttl(),
    ))


def touch(match_id: str) -> None:
    """Extend the retention of every entry for match_id to a full match TTL."""
    ReplayEntry.query.filter_by(match_id=match_id).update(
        {'expires_at': clock.now() + match_ttl()}, synchronize_session=False
    )


def _decode(entry: ReplayEntry) -> Optional[SequencedMessage]:
    try:
        msg = decode_message(json.loads(entry.body))
    except ValueError:
        msg = None
    if not isinstance(msg, SequencedMessage):
        current_app.logger.warning(f"[coop/replay] skipping malformed entry match={entry.match_id} seq={entry.seq}")
        return None
    return msg


def replay(match_id: str, from_seq_exclusive: int) -> List[SequencedMessage]:
    """All logged messages with seq > from_seq_exclusive, ascending."""
    entries = (
        ReplayEntry.query
        .filter(ReplayEntry.match_id == match_id)
        .filter(ReplayEntry.seq > from_seq_exclusive)
        .filter(ReplayEntry.expires_at > clock.now())
        .order_by(ReplayEntry.seq.asc())
        .all()
    )
    messages = []
    for entry in entries:
        msg = _decode(entry)
        if msg is not None:
            messages.append(msg)
    return messages


def get(match_id: str, seq: int) -> Optional[SequencedMessage]:
    entry = (
        ReplayEntry.query
        .filter_by(match_id=match_id, seq=seq)
        .filter(ReplayEntry.expires_at > clock.now())
        .first()
    )
    return _decode(entry) if entry else None
