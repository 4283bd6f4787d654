"""Match snapshot document.

One ``MatchState`` is the unit of mutation for a match: players, the
shared economy, building decisions and the host's build snapshot all live
inside it and are loaded, mutated and saved together.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STATUS_WAITING = 'waiting'
STATUS_PLAYING = 'playing'
STATUS_FINISHED = 'finished'

HOST_SLOT = 0
GUEST_SLOT = 1

PAD_STATES = ('waiting', 'building', 'upgrading', 'selecting', 'complete')

# Upper bound for seq, clientSeq, waveIndex and build-state versions (32-bit Integer column).
MAX_COUNTER = 2 ** 31 - 1


@dataclass
class HeroState:
    x: float = 0.0
    z: float = 0.0
    hp: float = 100
    max_hp: float = 100
    level: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': {'x': self.x, 'z': self.z},
            'hp': self.hp,
            'maxHp': self.max_hp,
            'level': self.level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HeroState':
        pos = data.get('position') or {}
        return cls(
            x=pos.get('x', 0.0),
            z=pos.get('z', 0.0),
            hp=data.get('hp', 100),
            max_hp=data.get('maxHp', 100),
            level=data.get('level', 1),
        )


@dataclass
class WeaponState:
    type: str
    level: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'level': self.level}


@dataclass
class PlayerSlot:
    player_id: str
    slot: int
    connected: bool = True
    last_heartbeat: int = 0
    hero: HeroState = field(default_factory=HeroState)
    weapons: List[WeaponState] = field(default_factory=list)
    active_weapon_type: Optional[str] = None

    def pick_weapon(self, weapon_type: str) -> WeaponState:
        """Level up a held weapon or add it at level 1, then make it active."""
        for w in self.weapons:
            if w.type == weapon_type:
                w.level += 1
                break
        else:
            w = WeaponState(type=weapon_type)
            self.weapons.append(w)
        self.active_weapon_type = weapon_type
        return w

    def to_dict(self) -> Dict[str, Any]:
        return {
            'playerId': self.player_id,
            'slot': self.slot,
            'connected': self.connected,
            'lastHeartbeat': self.last_heartbeat,
            'heroState': self.hero.to_dict(),
            'weapons': [w.to_dict() for w in self.weapons],
            'activeWeaponType': self.active_weapon_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerSlot':
        return cls(
            player_id=data['playerId'],
            slot=data['slot'],
            connected=data.get('connected', False),
            last_heartbeat=data.get('lastHeartbeat', 0),
            hero=HeroState.from_dict(data.get('heroState') or {}),
            weapons=[WeaponState(type=w['type'], level=w.get('level', 1)) for w in data.get('weapons') or []],
            active_weapon_type=data.get('activeWeaponType'),
        )


@dataclass
class BuildingDecision:
    pad_id: str
    decision_owner_id: str
    resolved_at: int
    seq: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'padId': self.pad_id,
            'decisionOwnerId': self.decision_owner_id,
            'resolvedAt': self.resolved_at,
            'seq': self.seq,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BuildingDecision':
        return cls(
            pad_id=data['padId'],
            decision_owner_id=data['decisionOwnerId'],
            resolved_at=data.get('resolvedAt', 0),
            seq=data.get('seq', 0),
        )


@dataclass
class PadSnapshot:
    pad_id: str
    building_type_id: str
    level: int
    hp_ratio: float
    next_upgrade_cost: float
    collected_coins: float
    state: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'padId': self.pad_id,
            'buildingTypeId': self.building_type_id,
            'level': self.level,
            'hpRatio': self.hp_ratio,
            'nextUpgradeCost': self.next_upgrade_cost,
            'collectedCoins': self.collected_coins,
            'state': self.state,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PadSnapshot':
        return cls(
            pad_id=data['padId'],
            building_type_id=data.get('buildingTypeId', ''),
            level=data.get('level', 0),
            hp_ratio=data.get('hpRatio', 1.0),
            next_upgrade_cost=data.get('nextUpgradeCost', 0),
            collected_coins=data.get('collectedCoins', 0),
            state=data.get('state', 'waiting'),
        )


@dataclass
class BuildStateSnapshot:
    version: int
    shared_coins: float
    pads: List[PadSnapshot] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'sharedCoins': self.shared_coins,
            'pads': [p.to_dict() for p in self.pads],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BuildStateSnapshot':
        return cls(
            version=data['version'],
            shared_coins=data.get('sharedCoins', 0),
            pads=[PadSnapshot.from_dict(p) for p in data.get('pads') or []],
        )


@dataclass
class MatchState:
    match_id: str
    origin_context_id: str
    created_at: int
    status: str = STATUS_WAITING
    players: List[PlayerSlot] = field(default_factory=list)
    team_xp: int = 0
    team_level: int = 1
    shared_coins: float = 0
    wave_number: int = 1
    wave_start_at: Optional[int] = None
    building_decisions: List[BuildingDecision] = field(default_factory=list)
    seq: int = 0
    build_state: Optional[BuildStateSnapshot] = None

    def find_player(self, player_id: str) -> Optional[PlayerSlot]:
        return next((p for p in self.players if p.player_id == player_id), None)

    @property
    def host_player_id(self) -> Optional[str]:
        host = next((p for p in self.players if p.slot == HOST_SLOT), None)
        return host.player_id if host else None

    def is_host(self, player_id: str) -> bool:
        return self.host_player_id == player_id

    def decision_for(self, pad_id: str) -> Optional[BuildingDecision]:
        return next((d for d in self.building_decisions if d.pad_id == pad_id), None)

    def record_decision(self, pad_id: str, owner_id: str, resolved_at: int, seq: int) -> BuildingDecision:
        """First writer wins: an existing decision for the pad is returned untouched."""
        existing = self.decision_for(pad_id)
        if existing:
            return existing
        decision = BuildingDecision(pad_id=pad_id, decision_owner_id=owner_id, resolved_at=resolved_at, seq=seq)
        self.building_decisions.append(decision)
        return decision

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'matchId': self.match_id,
            'originContextId': self.origin_context_id,
            'status': self.status,
            'createdAt': self.created_at,
            'players': [p.to_dict() for p in self.players],
            'teamXp': self.team_xp,
            'teamLevel': self.team_level,
            'sharedCoins': self.shared_coins,
            'waveNumber': self.wave_number,
            'waveStartAt': self.wave_start_at,
            'buildingDecisions': [d.to_dict() for d in self.building_decisions],
            'seq': self.seq,
        }
        if self.build_state is not None:
            data['buildState'] = self.build_state.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchState':
        build = data.get('buildState')
        return cls(
            match_id=data['matchId'],
            origin_context_id=data.get('originContextId', ''),
            created_at=data.get('createdAt', 0),
            status=data.get('status', STATUS_WAITING),
            players=[PlayerSlot.from_dict(p) for p in data.get('players') or []],
            team_xp=data.get('teamXp', 0),
            team_level=data.get('teamLevel', 1),
            shared_coins=data.get('sharedCoins', 0),
            wave_number=data.get('waveNumber', 1),
            wave_start_at=data.get('waveStartAt'),
            building_decisions=[BuildingDecision.from_dict(d) for d in data.get('buildingDecisions') or []],
            seq=data.get('seq', 0),
            build_state=BuildStateSnapshot.from_dict(build) if build else None,
        )
