from flask import current_app

from coopsync import socketio
from coopsync.errors import Internal
from coopsync.messages import ServerMessage

NAMESPACE = '/ws'
EVENT = 'server_message'


def channel_for(match_id: str) -> str:
    # Anyone who knows the match id can subscribe; there is no per-channel secret.
    return f"match-{match_id}"


def send(match_id: str, message: ServerMessage) -> None:
    """Best-effort fan-out to every socket subscribed to the match."""
    try:
        socketio.emit(EVENT, message.to_dict(), to=channel_for(match_id), namespace=NAMESPACE)
    except Exception:
        current_app.logger.exception(f"[coop/broadcast] send failed match={match_id} type={message.TYPE}")
        raise Internal('broadcast_failed')
