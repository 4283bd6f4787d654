"""Action processor: the only path that mutates a running match.

Every action goes through ``apply_action``:

- load the snapshot and resolve the caller's slot
- gate host-only actions on slot 0 (the single writer for the shared
  economy and building state)
- run the handler, which validates its payload before touching state and
  queues outgoing messages through ``ActionContext.emit`` (sequenced) or
  ``ActionContext.emit_live`` (unsequenced)
- persist snapshot, replay entries and markers in one commit, then
  broadcast the queue and acknowledge the last assigned seq
"""
import math
from typing import Callable, Dict, List, NamedTuple, Optional

from flask import current_app

from coopsync.errors import Conflict, Forbidden, InvalidArgument, NotFound
from coopsync.messages import (
    BuildStateMessage, ClockSync, CoinDeposited, CoinPicked, DecisionOwner, GamePause,
    GameResume, MatchOver, PlayerDisconnected, PlayerInput, SequencedMessage,
    ServerMessage, TowerDecided, WaveStarted, WeaponAssigned,
)
from coopsync.state import (
    MAX_COUNTER, PAD_STATES, STATUS_FINISHED, STATUS_WAITING, BuildStateSnapshot, MatchState, PlayerSlot,
)
from . import broadcast, clock, idempotency, replay, store

DECISION_EVENT_TYPES = ('tower_select', 'buff_card')

# Actions a host may send while still alone in the lobby. These two do touch
# the waiting snapshot (heartbeat timestamp, connected flag); every other
# action requires status=playing.
ALLOWED_WHILE_WAITING = {'HEARTBEAT', 'DISCONNECT'}


class ActionContext:
    def __init__(self, state: MatchState, player: PlayerSlot, payload: dict):
        self.state = state
        self.player = player
        self.payload = payload
        self.queued: List[ServerMessage] = []
        self.logged: List[SequencedMessage] = []

    @property
    def match_id(self) -> str:
        return self.state.match_id

    @property
    def player_id(self) -> str:
        return self.player.player_id

    def emit(self, factory: Callable[[int], SequencedMessage]) -> SequencedMessage:
        """Assign the next seq, then queue the message for the log and the broadcast."""
        msg = factory(replay.next_seq(self.state))
        self.logged.append(msg)
        self.queued.append(msg)
        return msg

    def emit_live(self, msg: ServerMessage) -> None:
        self.queued.append(msg)

    def resend(self, msg: SequencedMessage) -> None:
        """Re-broadcast an already logged message under its original seq."""
        self.queued.append(msg)


class ActionSpec(NamedTuple):
    handler: Callable[[ActionContext], None]
    host_only: bool
    authorize: Optional[Callable[[ActionContext], None]]


ACTIONS: Dict[str, ActionSpec] = {}


def action(name: str, host_only: bool = False, authorize=None):
    def register(fn):
        ACTIONS[name] = ActionSpec(fn, host_only, authorize)
        return fn
    return register


# ---- validation helpers ----

def _is_number(value, bound: float = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return bound is None or abs(value) <= bound


def _is_text(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_count(value, minimum: int = 0) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and minimum <= value <= MAX_COUNTER


def _max_coordinate() -> float:
    return float(current_app.config.get('MAX_COORDINATE', 1000))


def _require_host(ctx: ActionContext) -> None:
    if not ctx.state.is_host(ctx.player_id):
        raise Forbidden('host_only')


def _current_decision_owner(ctx: ActionContext, pad_id: str) -> Optional[str]:
    decision = ctx.state.decision_for(pad_id)
    if decision:
        return decision.decision_owner_id
    return idempotency.decision_owner(ctx.match_id, pad_id)


# ---- handlers ----

@action('INPUT')
def handle_input(ctx: ActionContext) -> None:
    p = ctx.payload
    dx, dz, t = p.get('dx'), p.get('dz'), p.get('t')
    bound = _max_coordinate()
    if not (_is_number(dx, bound) and _is_number(dz, bound) and _is_number(t)):
        raise InvalidArgument('invalid_input_params')
    ctx.player.hero.x = dx
    ctx.player.hero.z = dz
    ctx.emit_live(PlayerInput(player_id=ctx.player_id, dx=dx, dz=dz, t=t))


@action('COIN_DEPOSIT', host_only=True)
def handle_coin_deposit(ctx: ActionContext) -> None:
    p = ctx.payload
    pad_id, amount = p.get('padId'), p.get('amount')
    client_seq = p.get('clientSeq')
    pad_filled = p.get('padFilled', False)
    event_type = p.get('eventType', 'tower_select')
    max_amount = float(current_app.config.get('MAX_DEPOSIT_AMOUNT', 9999))
    if (
        not _is_text(pad_id)
        or not _is_number(amount, max_amount)
        or amount <= 0
        or (client_seq is not None and not _is_count(client_seq, 1))
        or not isinstance(pad_filled, bool)
        or event_type not in DECISION_EVENT_TYPES
    ):
        raise InvalidArgument('invalid_coin_deposit_params')

    if client_seq is None:
        current_app.logger.info(
            f"[coop/action] COIN_DEPOSIT without clientSeq match={ctx.match_id} pad={pad_id}: not deduplicated"
        )
    key = idempotency.deposit_key(ctx.match_id, pad_id, client_seq)
    if not idempotency.check_and_mark(key):
        _resend_deposit(ctx, key, pad_id, amount)
        return

    ctx.state.shared_coins = max(0, ctx.state.shared_coins - amount)

    if pad_filled and _current_decision_owner(ctx, pad_id) is None:
        idempotency.claim_decision(ctx.match_id, pad_id, ctx.player_id)
        owner_msg = ctx.emit(lambda seq: DecisionOwner(
            seq=seq, pad_id=pad_id, player_id=ctx.player_id, event_type=event_type,
        ))
        ctx.state.record_decision(pad_id, ctx.player_id, clock.now_ms(), owner_msg.seq)

    deposited = ctx.emit(lambda seq: CoinDeposited(
        seq=seq, pad_id=pad_id, player_id=ctx.player_id, amount=amount, remaining=ctx.state.shared_coins,
    ))
    idempotency.annotate(key, str(deposited.seq))


def _resend_deposit(ctx: ActionContext, key: str, pad_id: str, amount) -> None:
    marked = idempotency.marker_value(key) or ''
    original_seq = int(marked) if marked.isdigit() else ctx.state.seq
    original = replay.get(ctx.match_id, original_seq)
    if not isinstance(original, CoinDeposited):
        original = CoinDeposited(
            seq=original_seq, pad_id=pad_id, player_id=ctx.player_id,
            amount=amount, remaining=ctx.state.shared_coins,
        )
    current_app.logger.info(
        f"[coop/action] duplicate COIN_DEPOSIT match={ctx.match_id} pad={pad_id} resending seq={original.seq}"
    )
    ctx.resend(original)


def _authorize_tower_decision(ctx: ActionContext) -> None:
    pad_id = ctx.payload.get('padId')
    if _is_text(pad_id):
        owner = _current_decision_owner(ctx, pad_id)
        if owner and owner != ctx.player_id:
            raise Forbidden('not_decision_owner')
    _require_host(ctx)


@action('TOWER_DECISION', host_only=True, authorize=_authorize_tower_decision)
def handle_tower_decision(ctx: ActionContext) -> None:
    pad_id, building_type_id = ctx.payload.get('padId'), ctx.payload.get('buildingTypeId')
    if not (_is_text(pad_id) and _is_text(building_type_id)):
        raise InvalidArgument('invalid_tower_decision_params')
    msg = ctx.emit(lambda seq: TowerDecided(
        seq=seq, pad_id=pad_id, player_id=ctx.player_id, building_type_id=building_type_id,
    ))
    if ctx.state.decision_for(pad_id) is None:
        idempotency.claim_decision(ctx.match_id, pad_id, ctx.player_id)
        ctx.state.record_decision(pad_id, ctx.player_id, clock.now_ms(), msg.seq)


@action('COIN_PICKUP', host_only=True)
def handle_coin_pickup(ctx: ActionContext) -> None:
    x, z = ctx.payload.get('x'), ctx.payload.get('z')
    bound = _max_coordinate()
    if not (_is_number(x, bound) and _is_number(z, bound)):
        raise InvalidArgument('invalid_coin_pickup_params')
    ctx.emit(lambda seq: CoinPicked(seq=seq, player_id=ctx.player_id, x=x, z=z))


@action('WEAPON_PICK')
def handle_weapon_pick(ctx: ActionContext) -> None:
    weapon_id = ctx.payload.get('weaponId')
    if not _is_text(weapon_id):
        raise InvalidArgument('invalid_weapon_pick_params')
    ctx.player.pick_weapon(weapon_id)
    ctx.emit(lambda seq: WeaponAssigned(seq=seq, player_id=ctx.player_id, weapon_id=weapon_id))


@action('HEARTBEAT')
def handle_heartbeat(ctx: ActionContext) -> None:
    ctx.player.last_heartbeat = clock.now_ms()


@action('CLOCK_SYNC_REQUEST')
def handle_clock_sync(ctx: ActionContext) -> None:
    client_time = ctx.payload.get('clientTime')
    if not _is_number(client_time):
        raise InvalidArgument('invalid_clock_sync_params')
    ctx.emit(lambda seq: ClockSync(seq=seq, server_time=clock.now_ms(), client_time=client_time))


@action('WAVE_ADVANCE', host_only=True)
def handle_wave_advance(ctx: ActionContext) -> None:
    wave_index = ctx.payload.get('waveIndex')
    if not _is_count(wave_index, 1):
        raise InvalidArgument('invalid_wave_advance_params')
    state = ctx.state
    # Until the first wave starts, the initial wave number itself may be started.
    stale = wave_index < state.wave_number if state.wave_start_at is None else wave_index <= state.wave_number
    if stale:
        current_app.logger.warning(
            f"[coop/action] stale WAVE_ADVANCE match={ctx.match_id} wave={wave_index} current={state.wave_number}"
        )
        raise InvalidArgument('stale_wave_index')
    start_at = clock.now_ms()
    state.wave_number = wave_index
    state.wave_start_at = start_at
    ctx.emit(lambda seq: WaveStarted(seq=seq, wave_index=wave_index, start_at=start_at))


@action('DISCONNECT')
def handle_disconnect(ctx: ActionContext) -> None:
    ctx.player.connected = False
    ctx.emit_live(PlayerDisconnected(player_id=ctx.player_id))


@action('PAUSE_REQUEST')
def handle_pause(ctx: ActionContext) -> None:
    ctx.emit(lambda seq: GamePause(seq=seq))


@action('RESUME_REQUEST')
def handle_resume(ctx: ActionContext) -> None:
    ctx.emit(lambda seq: GameResume(seq=seq))


@action('MATCH_OVER')
def handle_match_over(ctx: ActionContext) -> None:
    victory = ctx.payload.get('victory', False)
    if not isinstance(victory, bool):
        raise InvalidArgument('invalid_match_over_params')
    ctx.state.status = STATUS_FINISHED
    ctx.emit(lambda seq: MatchOver(seq=seq, victory=victory))


def _valid_pad(pad) -> bool:
    return (
        isinstance(pad, dict)
        and _is_text(pad.get('padId'))
        and isinstance(pad.get('buildingTypeId', ''), str)
        and _is_count(pad.get('level', 0))
        and _is_number(pad.get('hpRatio', 1.0))
        and _is_number(pad.get('nextUpgradeCost', 0))
        and _is_number(pad.get('collectedCoins', 0))
        and pad.get('state', 'waiting') in PAD_STATES
    )


@action('BUILD_STATE_SYNC', host_only=True)
def handle_build_state_sync(ctx: ActionContext) -> None:
    raw = ctx.payload.get('snapshot')
    if (
        not isinstance(raw, dict)
        or not _is_count(raw.get('version'))
        or not _is_number(raw.get('sharedCoins'))
        or raw.get('sharedCoins') < 0
        or not isinstance(raw.get('pads', []), list)
        or not all(_valid_pad(pad) for pad in raw.get('pads', []))
    ):
        raise InvalidArgument('invalid_build_state_sync')
    current = ctx.state.build_state
    if current is not None and raw['version'] <= current.version:
        raise InvalidArgument('stale_build_state')

    snapshot = BuildStateSnapshot.from_dict(raw)
    ctx.state.build_state = snapshot
    ctx.state.shared_coins = snapshot.shared_coins
    ctx.emit(lambda seq: BuildStateMessage(seq=seq, snapshot=snapshot))


# ---- entry point ----

def apply_action(match_id: str, caller_id: str, action_type: str, payload: dict) -> int:
    """Validate and apply one action; returns the seq acknowledged to the caller."""
    state = store.load_match(match_id)
    if state is None:
        raise NotFound('match_not_found')
    if state.status == STATUS_FINISHED:
        raise Conflict('match_finished')

    player = state.find_player(caller_id)
    if player is None:
        current_app.logger.warning(f"[coop/action] match={match_id} rejected non-participant {caller_id}")
        raise Forbidden('player_not_in_match')

    entry = ACTIONS.get(action_type) if isinstance(action_type, str) else None
    if entry is None:
        raise InvalidArgument('unknown_action_type')
    if state.status == STATUS_WAITING and action_type not in ALLOWED_WHILE_WAITING:
        raise Conflict('match_not_started')

    ctx = ActionContext(state, player, payload or {})
    if entry.host_only:
        try:
            (entry.authorize or _require_host)(ctx)
        except Forbidden as exc:
            current_app.logger.warning(
                f"[coop/action] {action_type} rejected match={match_id} player={caller_id}: {exc.code}"
            )
            raise

    entry.handler(ctx)

    store.save_match(state)
    for msg in ctx.logged:
        replay.append(match_id, msg)
    if ctx.logged:
        replay.touch(match_id)
    store.commit()

    for msg in ctx.queued:
        broadcast.send(match_id, msg)

    ack = ctx.logged[-1].seq if ctx.logged else state.seq
    current_app.logger.debug(
        f"[coop/action] match={match_id} type={action_type} player={caller_id} seq={ack}"
    )
    return ack
