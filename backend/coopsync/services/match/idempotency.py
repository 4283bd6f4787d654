"""Short-lived presence markers.

Two key families live here: deposit dedup markers keyed by
(match, pad, clientSeq) and decision-owner markers keyed by (match, pad).
Markers are staged in the request session and committed with the snapshot.
"""
import uuid
from typing import Optional

from flask import current_app

from coopsync import db
from coopsync.models import StoreMarker
from . import clock


def deposit_key(match_id: str, pad_id: str, client_seq: Optional[int]) -> str:
    # Without a caller counter the key is unique per call, so the call is not deduplicated.
    counter = client_seq if client_seq is not None else f"fallback-{uuid.uuid4().hex}"
    return f"coop:idem:deposit:{match_id}:{pad_id}:{counter}"


def decision_key(match_id: str, pad_id: str) -> str:
    return f"coop:decision:{match_id}:{pad_id}"


def _live_marker(key: str) -> Optional[StoreMarker]:
    marker = db.session.get(StoreMarker, key)
    if marker is None or marker.expires_at <= clock.now():
        return None
    return marker


def _put(key: str, value: str, ttl: int) -> None:
    marker = db.session.get(StoreMarker, key)
    if marker is None:
        marker = StoreMarker(key=key)
    marker.value = value
    marker.expires_at = clock.now() + ttl
    db.session.add(marker)
    # Later lookups in the same request go through Session.get
    db.session.flush()


def check_and_mark(key: str, ttl: int = None) -> bool:
    """True the first time key is seen (and marks it); False while the marker lives."""
    if _live_marker(key) is not None:
        return False
    if ttl is None:
        ttl = int(current_app.config.get('IDEMPOTENCY_TTL_SEC', 300))
    _put(key, '1', ttl)
    return True


def marker_value(key: str) -> Optional[str]:
    marker = _live_marker(key)
    return marker.value if marker else None


def annotate(key: str, value: str) -> None:
    """Attach a value to a live marker without changing its expiry."""
    marker = _live_marker(key)
    if marker is not None:
        marker.value = value
        db.session.add(marker)


def decision_owner(match_id: str, pad_id: str) -> Optional[str]:
    return marker_value(decision_key(match_id, pad_id))


def claim_decision(match_id: str, pad_id: str, player_id: str) -> bool:
    """First writer wins; False if someone already owns the pad's decision."""
    key = decision_key(match_id, pad_id)
    if _live_marker(key) is not None:
        return False
    _put(key, player_id, int(current_app.config.get('DECISION_TTL_SEC', 300)))
    return True
