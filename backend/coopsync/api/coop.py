import secrets

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from coopsync.errors import InvalidArgument, SyncError
from coopsync.services.match import actions, broadcast, lifecycle


coop = Blueprint('coop', __name__)

PLAYER_HEADER = 'X-Coop-Player-Id'
ORIGIN_HEADER = 'X-Origin-Context'


def resolve_player_id() -> str:
    """Caller identity: account name, optionally scoped by a per-session token.

    One account may run several independent sessions by sending different
    tokens; unauthenticated callers without a token get a throwaway id.
    """
    token = (request.headers.get(PLAYER_HEADER) or '').strip()
    username = current_user.username.strip() if current_user.is_authenticated else ''
    if username:
        return f"{username}:{token}" if token else username
    if token:
        return token
    return f"anonymous:{secrets.token_hex(4)}"


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _match_id(raw) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidArgument('missing_match_id')
    return raw.strip()


@coop.after_request
def _no_cache(response):
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate'
    response.headers['Pragma'] = 'no-cache'
    return response


@coop.errorhandler(SyncError)
def _sync_error(err: SyncError):
    return jsonify({'error': err.code}), err.status


@coop.errorhandler(Exception)
def _unexpected_error(err: Exception):
    if isinstance(err, HTTPException):
        return err
    current_app.logger.exception(f"[coop] {request.path} failed")
    return jsonify({'error': 'internal_error'}), 500


def _joined_payload(state, player_id: str):
    return {
        'matchId': state.match_id,
        'channel': broadcast.channel_for(state.match_id),
        'selfPlayerId': player_id,
        'state': state.to_dict(),
    }


def _recovery_payload(state, missed, player_id: str):
    return {
        'state': state.to_dict(),
        'missedActions': [m.to_dict() for m in missed],
        'selfPlayerId': player_id,
    }


@coop.route('/create-match', methods=['POST'])
def create_match():
    player_id = resolve_player_id()
    data = _body()
    origin = data.get('originContextId') or request.headers.get(ORIGIN_HEADER, '')
    state = lifecycle.create_match(player_id, str(origin))
    return jsonify(_joined_payload(state, player_id)), 201


@coop.route('/join-match', methods=['POST'])
def join_match():
    player_id = resolve_player_id()
    match_id = _match_id(_body().get('matchId'))
    state = lifecycle.join_match(match_id, player_id)
    return jsonify(_joined_payload(state, player_id))


@coop.route('/match-state', methods=['GET'])
def match_state():
    match_id = _match_id(request.args.get('matchId'))
    state = lifecycle.get_state(match_id)
    return jsonify({'state': state.to_dict()})


@coop.route('/rejoin', methods=['POST'])
def rejoin():
    player_id = resolve_player_id()
    data = _body()
    match_id = _match_id(data.get('matchId'))
    last_seq = lifecycle.parse_last_seq(data.get('lastSeq'))
    state, missed = lifecycle.rejoin(match_id, player_id, last_seq)
    return jsonify(_recovery_payload(state, missed, player_id))


@coop.route('/sync', methods=['POST'])
def sync():
    player_id = resolve_player_id()
    data = _body()
    match_id = _match_id(data.get('matchId'))
    last_seq = lifecycle.parse_last_seq(data.get('lastSeq'))
    state, missed = lifecycle.sync(match_id, player_id, last_seq)
    return jsonify(_recovery_payload(state, missed, player_id))


@coop.route('/action', methods=['POST'])
def action():
    player_id = resolve_player_id()
    data = _body()
    match_id = _match_id(data.pop('matchId', None))
    action_type = data.pop('type', None)
    seq = actions.apply_action(match_id, player_id, action_type, data)
    return jsonify({'ok': True, 'seq': seq})
