import pytest

from coopsync.errors import Conflict, Forbidden, InvalidArgument, NotFound
from coopsync.services.match import actions, lifecycle, store


def test_create_match_defaults(flask_app, frozen_clock):
    state = lifecycle.create_match('alice', 'post-1')
    assert state.status == 'waiting'
    assert state.seq == 0
    assert [(p.slot, p.player_id) for p in state.players] == [(0, 'alice')]
    assert state.shared_coins == flask_app.config['STARTING_COINS']
    assert state.wave_number == 1 and state.wave_start_at is None
    assert state.created_at == int(frozen_clock() * 1000)
    assert store.load_match(state.match_id) is not None


def test_match_ids_are_unique(flask_app):
    ids = {lifecycle.create_match('alice').match_id for _ in range(20)}
    assert len(ids) == 20


def test_join_sets_playing_and_broadcasts_snapshot(flask_app, sent):
    match_id = lifecycle.create_match('alice').match_id
    state = lifecycle.join_match(match_id, 'bob')
    assert state.status == 'playing'
    assert state.seq == 1
    assert [(p.slot, p.player_id) for p in state.players] == [(0, 'alice'), (1, 'bob')]
    channel, msg = sent[-1]
    assert channel == f'match-{match_id}'
    assert msg['type'] == 'MATCH_STATE' and msg['seq'] == 1
    assert msg['state']['status'] == 'playing'


def test_join_rejections(flask_app, sent):
    with pytest.raises(NotFound):
        lifecycle.join_match('missing', 'bob')

    match_id = lifecycle.create_match('alice').match_id
    with pytest.raises(Conflict) as exc:
        lifecycle.join_match(match_id, 'alice')
    assert exc.value.code == 'already_joined'

    lifecycle.join_match(match_id, 'bob')
    for caller in ('carol', 'dave', 'bob'):
        with pytest.raises(Conflict):
            lifecycle.join_match(match_id, caller)
    assert len(store.load_match(match_id).players) == 2


def test_get_state(flask_app):
    match_id = lifecycle.create_match('alice').match_id
    assert lifecycle.get_state(match_id).match_id == match_id
    with pytest.raises(NotFound):
        lifecycle.get_state('missing')


def test_rejoin_marks_connected_and_returns_missed(flask_app, sent, frozen_clock):
    match_id = lifecycle.create_match('alice').match_id
    lifecycle.join_match(match_id, 'bob')
    actions.apply_action(match_id, 'bob', 'DISCONNECT', {})
    actions.apply_action(match_id, 'alice', 'PAUSE_REQUEST', {})
    actions.apply_action(match_id, 'alice', 'RESUME_REQUEST', {})

    frozen_clock.advance(30)
    state, missed = lifecycle.rejoin(match_id, 'bob', 2)
    bob = state.find_player('bob')
    assert bob.connected is True
    assert bob.last_heartbeat == int(frozen_clock() * 1000)
    assert [(m.TYPE, m.seq) for m in missed] == [('GAME_RESUME', 3)]

    channel, notice = sent[-1]
    assert notice['type'] == 'PLAYER_RECONNECTED'
    assert 'seq' not in notice
    assert store.load_match(match_id).find_player('bob').connected is True


def test_rejoin_and_sync_reject_strangers(flask_app, sent):
    match_id = lifecycle.create_match('alice').match_id
    with pytest.raises(Forbidden):
        lifecycle.rejoin(match_id, 'mallory', 0)
    with pytest.raises(Forbidden):
        lifecycle.sync(match_id, 'mallory', 0)
    with pytest.raises(NotFound):
        lifecycle.rejoin('missing', 'alice', 0)
    with pytest.raises(NotFound):
        lifecycle.sync('missing', 'alice', 0)


def test_sync_has_no_side_effects(flask_app, sent):
    match_id = lifecycle.create_match('alice').match_id
    lifecycle.join_match(match_id, 'bob')
    actions.apply_action(match_id, 'bob', 'DISCONNECT', {})
    actions.apply_action(match_id, 'alice', 'PAUSE_REQUEST', {})
    before = len(sent)

    state, missed = lifecycle.sync(match_id, 'bob', 0)
    assert state.find_player('bob').connected is False
    assert [m.TYPE for m in missed] == ['GAME_PAUSE']
    assert len(sent) == before


def test_parse_last_seq():
    assert lifecycle.parse_last_seq(None) == 0
    assert lifecycle.parse_last_seq(5) == 5
    for bad in (-1, 'x', 1.5, True):
        with pytest.raises(InvalidArgument):
            lifecycle.parse_last_seq(bad)
