import json

import pytest

from coopsync import db
from coopsync.messages import CoinPicked, GamePause, PlayerDisconnected
from coopsync.models import MatchRecord, ReplayEntry, StoreMarker
from coopsync.services.match import actions, idempotency, lifecycle, replay, store
from coopsync.state import MatchState, PlayerSlot


def _state(match_id='m1'):
    return MatchState(match_id=match_id, origin_context_id='post', created_at=0, players=[PlayerSlot('alice', 0)])


def test_snapshot_round_trip_and_expiry(flask_app, frozen_clock):
    store.save_match(_state())
    store.commit()
    loaded = store.load_match('m1')
    assert loaded.players[0].player_id == 'alice'
    assert loaded.origin_context_id == 'post'

    frozen_clock.advance(flask_app.config['MATCH_TTL_SEC'] + 1)
    assert store.load_match('m1') is None


def test_save_refreshes_ttl(flask_app, frozen_clock):
    ttl = flask_app.config['MATCH_TTL_SEC']
    store.save_match(_state())
    store.commit()
    frozen_clock.advance(ttl - 10)
    state = store.load_match('m1')
    store.save_match(state)
    store.commit()
    frozen_clock.advance(20)
    assert store.load_match('m1') is not None


def test_missing_match_is_none(flask_app):
    assert store.load_match('nope') is None


def test_next_seq_is_monotonic(flask_app):
    state = _state()
    assert [replay.next_seq(state) for _ in range(3)] == [1, 2, 3]
    assert state.seq == 3


def test_replay_returns_entries_after_cursor_in_order(flask_app):
    # Insert out of order; replay sorts by seq
    for seq in (3, 1, 2, 4):
        replay.append('m1', GamePause(seq=seq))
    replay.append('other', GamePause(seq=1))
    store.commit()

    assert [m.seq for m in replay.replay('m1', 0)] == [1, 2, 3, 4]
    assert [m.seq for m in replay.replay('m1', 2)] == [3, 4]
    assert replay.replay('m1', 4) == []


def test_replay_refuses_live_messages(flask_app):
    with pytest.raises(TypeError):
        replay.append('m1', PlayerDisconnected(player_id='alice'))


def test_replay_skips_malformed_entries(flask_app, frozen_clock):
    replay.append('m1', CoinPicked(seq=1, player_id='alice', x=1, z=2))
    db.session.add(ReplayEntry(match_id='m1', seq=2, body='{broken', expires_at=frozen_clock() + 60))
    db.session.add(ReplayEntry(match_id='m1', seq=3, body=json.dumps({'type': 'PLAYER_INPUT'}),
                               expires_at=frozen_clock() + 60))
    store.commit()
    assert [m.seq for m in replay.replay('m1', 0)] == [1]


def test_touch_extends_whole_log(flask_app, frozen_clock):
    ttl = flask_app.config['MATCH_TTL_SEC']
    replay.append('m1', GamePause(seq=1))
    store.commit()
    frozen_clock.advance(ttl - 5)
    replay.append('m1', GamePause(seq=2))
    replay.touch('m1')
    store.commit()
    frozen_clock.advance(10)
    assert [m.seq for m in replay.replay('m1', 0)] == [1, 2]
    assert replay.get('m1', 1) == GamePause(seq=1)


def test_check_and_mark_first_time_only(flask_app, frozen_clock):
    key = idempotency.deposit_key('m1', 'p1', 7)
    assert idempotency.check_and_mark(key) is True
    assert idempotency.check_and_mark(key) is False
    # Marker expires after its TTL and the key is usable again
    frozen_clock.advance(flask_app.config['IDEMPOTENCY_TTL_SEC'] + 1)
    assert idempotency.check_and_mark(key) is True


def test_fallback_key_never_dedups(flask_app):
    first = idempotency.deposit_key('m1', 'p1', None)
    second = idempotency.deposit_key('m1', 'p1', None)
    assert first != second
    assert idempotency.check_and_mark(first) is True
    assert idempotency.check_and_mark(second) is True


def test_annotate_keeps_marker(flask_app):
    key = idempotency.deposit_key('m1', 'p1', 1)
    idempotency.check_and_mark(key)
    idempotency.annotate(key, '12')
    assert idempotency.marker_value(key) == '12'


def test_decision_claim_first_writer_wins(flask_app):
    assert idempotency.claim_decision('m1', 'p1', 'alice') is True
    assert idempotency.claim_decision('m1', 'p1', 'bob') is False
    assert idempotency.decision_owner('m1', 'p1') == 'alice'
    assert idempotency.decision_owner('m1', 'p2') is None


def test_commit_purges_expired_rows(flask_app, frozen_clock, sent):
    mid = lifecycle.create_match('alice').match_id
    lifecycle.join_match(mid, 'bob')
    for _ in range(5):
        actions.apply_action(mid, 'alice', 'COIN_DEPOSIT', {'padId': 'p1', 'amount': 1})
    assert StoreMarker.query.count() == 5
    assert ReplayEntry.query.filter_by(match_id=mid).count() == 5

    # Markers outlive only their own TTL; the match and its log are still live
    frozen_clock.advance(flask_app.config['IDEMPOTENCY_TTL_SEC'] + 1)
    lifecycle.create_match('carol')
    assert StoreMarker.query.count() == 0
    assert ReplayEntry.query.filter_by(match_id=mid).count() == 5
    assert store.load_match(mid) is not None

    frozen_clock.advance(flask_app.config['MATCH_TTL_SEC'] + 1)
    lifecycle.create_match('dave')
    assert MatchRecord.query.filter_by(match_id=mid).count() == 0
    assert ReplayEntry.query.count() == 0
    assert MatchRecord.query.count() == 1


def test_purge_expired_cli(flask_app, frozen_clock):
    idempotency.check_and_mark(idempotency.deposit_key('m1', 'p1', 1))
    store.save_match(_state())
    db.session.commit()
    frozen_clock.advance(flask_app.config['MATCH_TTL_SEC'] + 1)

    result = flask_app.test_cli_runner().invoke(args=['purge-expired'])
    assert 'Removed 2 expired rows' in result.output
    assert StoreMarker.query.count() == 0
    assert MatchRecord.query.count() == 0
