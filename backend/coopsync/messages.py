"""Server → client messages.

The union is closed: every kind is a subclass of exactly one of
``SequencedMessage`` (durable, carries ``seq``, goes to the replay log) or
``LiveMessage`` (live-only, no ``seq`` attribute at all, never logged).
"""
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Optional, Type

from .state import BuildStateSnapshot, MatchState, PlayerSlot


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


@dataclass
class ServerMessage:
    TYPE: ClassVar[str] = ''
    # field name -> snapshot class for nested documents
    NESTED: ClassVar[Dict[str, Any]] = {}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.TYPE}
        for f in fields(self):
            value = getattr(self, f.name)
            data[_camel(f.name)] = value.to_dict() if hasattr(value, 'to_dict') else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerMessage':
        kwargs = {}
        for f in fields(cls):
            value = data[_camel(f.name)]
            nested = cls.NESTED.get(f.name)
            kwargs[f.name] = nested.from_dict(value) if nested and value is not None else value
        return cls(**kwargs)


@dataclass
class SequencedMessage(ServerMessage):
    seq: int


@dataclass
class LiveMessage(ServerMessage):
    pass


# ---- sequenced kinds ----

@dataclass
class MatchStateMessage(SequencedMessage):
    TYPE = 'MATCH_STATE'
    NESTED = {'state': MatchState}
    state: MatchState


@dataclass
class CoinDeposited(SequencedMessage):
    TYPE = 'COIN_DEPOSITED'
    pad_id: str
    player_id: str
    amount: float
    remaining: float


@dataclass
class DecisionOwner(SequencedMessage):
    TYPE = 'DECISION_OWNER'
    pad_id: str
    player_id: str
    event_type: str


@dataclass
class TowerDecided(SequencedMessage):
    TYPE = 'TOWER_DECIDED'
    pad_id: str
    player_id: str
    building_type_id: str


@dataclass
class CoinPicked(SequencedMessage):
    TYPE = 'COIN_PICKED'
    player_id: str
    x: float
    z: float


@dataclass
class WeaponAssigned(SequencedMessage):
    TYPE = 'WEAPON_ASSIGNED'
    player_id: str
    weapon_id: str


@dataclass
class LevelUp(SequencedMessage):
    TYPE = 'LEVEL_UP'
    team_level: int


@dataclass
class GamePause(SequencedMessage):
    TYPE = 'GAME_PAUSE'


@dataclass
class GameResume(SequencedMessage):
    TYPE = 'GAME_RESUME'


@dataclass
class MatchOver(SequencedMessage):
    TYPE = 'MATCH_OVER'
    victory: bool


@dataclass
class BuildStateMessage(SequencedMessage):
    TYPE = 'BUILD_STATE_SNAPSHOT'
    NESTED = {'snapshot': BuildStateSnapshot}
    snapshot: BuildStateSnapshot


@dataclass
class ClockSync(SequencedMessage):
    TYPE = 'CLOCK_SYNC'
    server_time: int
    client_time: float


@dataclass
class WaveStarted(SequencedMessage):
    TYPE = 'WAVE_STARTED'
    wave_index: int
    start_at: int


@dataclass
class PhaseChange(SequencedMessage):
    TYPE = 'PHASE_CHANGE'
    phase: str
    server_time: int


# ---- live-only kinds ----

@dataclass
class PlayerInput(LiveMessage):
    TYPE = 'PLAYER_INPUT'
    player_id: str
    dx: float
    dz: float
    t: float


@dataclass
class PlayerDisconnected(LiveMessage):
    TYPE = 'PLAYER_DISCONNECTED'
    player_id: str


@dataclass
class PlayerReconnected(LiveMessage):
    TYPE = 'PLAYER_RECONNECTED'
    NESTED = {'state': PlayerSlot}
    player_id: str
    state: PlayerSlot


MESSAGE_TYPES: Dict[str, Type[ServerMessage]] = {
    cls.TYPE: cls
    for cls in (
        MatchStateMessage, CoinDeposited, DecisionOwner, TowerDecided, CoinPicked,
        WeaponAssigned, LevelUp, GamePause, GameResume, MatchOver, BuildStateMessage,
        ClockSync, WaveStarted, PhaseChange,
        PlayerInput, PlayerDisconnected, PlayerReconnected,
    )
}


def decode_message(data: Dict[str, Any]) -> Optional[ServerMessage]:
    """Rebuild a message from its wire form; None for unknown or malformed input."""
    if not isinstance(data, dict):
        return None
    cls = MESSAGE_TYPES.get(data.get('type'))
    if cls is None:
        return None
    try:
        return cls.from_dict(data)
    except (KeyError, TypeError, ValueError):
        return None
