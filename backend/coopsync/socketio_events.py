from flask import current_app
from flask_socketio import join_room, leave_room, emit
from coopsync import socketio
from coopsync.services.match.broadcast import NAMESPACE, channel_for


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _match_id(data):
    return data.get('matchId') if isinstance(data, dict) else None


def handle_subscribe(data):
    """Join the match channel; live server_message events follow from here on."""
    match_id = _match_id(data)
    if not isinstance(match_id, str) or not match_id.strip():
        emit('error', {'message': 'matchId is required'})
        return
    channel = channel_for(match_id.strip())
    join_room(channel)
    current_app.logger.debug(f"[ws] subscribe channel={channel}")
    emit('subscribed', {'channel': channel})


def handle_unsubscribe(data):
    match_id = _match_id(data)
    if not isinstance(match_id, str) or not match_id.strip():
        emit('error', {'message': 'matchId is required'})
        return
    channel = channel_for(match_id.strip())
    leave_room(channel)
    emit('unsubscribed', {'channel': channel})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the broadcast namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('subscribe', handle_subscribe, namespace=NAMESPACE)
    socketio.on_event('unsubscribe', handle_unsubscribe, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
