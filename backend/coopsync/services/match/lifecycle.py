"""Match lifecycle: create, join, query and reconnection recovery.

State machine: waiting --join--> playing --MATCH_OVER--> finished.
Slot 0 (the creator) is the host for the whole match; it is never
re-elected, even while disconnected.
"""
import random
import string
from typing import List, Tuple

from flask import current_app

from coopsync.errors import Conflict, Forbidden, InvalidArgument, NotFound
from coopsync.messages import MatchStateMessage, PlayerReconnected, SequencedMessage
from coopsync.state import (
    GUEST_SLOT, HOST_SLOT, MAX_COUNTER, STATUS_PLAYING, STATUS_WAITING, MatchState, PlayerSlot,
)
from . import broadcast, clock, replay, store

_BASE36 = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    out = ''
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or '0'


def generate_match_id() -> str:
    suffix = ''.join(random.choices(_BASE36, k=5))
    return f"{_base36(clock.now_ms())}-{suffix}"


def _new_slot(player_id: str, slot: int) -> PlayerSlot:
    return PlayerSlot(player_id=player_id, slot=slot, connected=True, last_heartbeat=clock.now_ms())


def parse_last_seq(raw) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, int) or not 0 <= raw <= MAX_COUNTER:
        raise InvalidArgument('invalid_last_seq')
    return raw


def _load_or_404(match_id: str) -> MatchState:
    state = store.load_match(match_id)
    if state is None:
        raise NotFound('match_not_found')
    return state


def create_match(caller_id: str, origin_context_id: str = '') -> MatchState:
    state = MatchState(
        match_id=generate_match_id(),
        origin_context_id=origin_context_id or '',
        created_at=clock.now_ms(),
        status=STATUS_WAITING,
        players=[_new_slot(caller_id, HOST_SLOT)],
        shared_coins=int(current_app.config.get('STARTING_COINS', 0)),
    )
    store.save_match(state)
    store.commit()
    current_app.logger.info(f"[coop/create] match={state.match_id} host={caller_id}")
    return state


def join_match(match_id: str, caller_id: str) -> MatchState:
    state = _load_or_404(match_id)
    if state.status != STATUS_WAITING:
        raise Conflict('match_not_waiting')
    if len(state.players) >= 2:
        raise Conflict('match_full')
    if state.find_player(caller_id):
        raise Conflict('already_joined')

    state.players.append(_new_slot(caller_id, GUEST_SLOT))
    state.status = STATUS_PLAYING
    seq = replay.next_seq(state)
    store.save_match(state)
    store.commit()
    current_app.logger.info(f"[coop/join] match={match_id} guest={caller_id} seq={seq}")

    # The full snapshot supersedes any replay, so it is stamped but not logged.
    broadcast.send(match_id, MatchStateMessage(seq=seq, state=state))
    return state


def get_state(match_id: str) -> MatchState:
    return _load_or_404(match_id)


def rejoin(match_id: str, caller_id: str, last_seq: int) -> Tuple[MatchState, List[SequencedMessage]]:
    """Mark the caller connected again and return the snapshot plus missed messages."""
    state = _load_or_404(match_id)
    player = state.find_player(caller_id)
    if player is None:
        current_app.logger.warning(f"[coop/rejoin] match={match_id} rejected non-participant {caller_id}")
        raise Forbidden('player_not_in_match')

    player.connected = True
    player.last_heartbeat = clock.now_ms()
    store.save_match(state)
    missed = replay.replay(match_id, last_seq)
    store.commit()
    current_app.logger.info(
        f"[coop/rejoin] match={match_id} player={caller_id} last_seq={last_seq} missed={len(missed)}"
    )

    broadcast.send(match_id, PlayerReconnected(player_id=caller_id, state=player))
    return state, missed


def sync(match_id: str, caller_id: str, last_seq: int) -> Tuple[MatchState, List[SequencedMessage]]:
    """Same as rejoin without touching connection state; for clients that only lost the socket."""
    state = _load_or_404(match_id)
    if state.find_player(caller_id) is None:
        raise Forbidden('player_not_in_match')
    return state, replay.replay(match_id, last_seq)
