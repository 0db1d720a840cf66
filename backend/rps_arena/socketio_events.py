from flask_socketio import join_room, emit
from flask import current_app, request
from rps_arena import socketio
from rps_arena.services.games import matchmaker
from rps_arena.services.games.errors import MatchError
from rps_arena.services.games.scheduler import schedule_idle_timeout
from typing import Iterable, Optional

NAMESPACE = '/ws'


def deliver(outbound: Iterable) -> None:
    """Send matchmaker output to the sockets it is addressed to."""
    for msg in outbound:
        for sid in msg.join:
            join_room(msg.to, sid=sid, namespace=NAMESPACE)
        # Use socketio.emit since this may be called from a background task
        socketio.emit(msg.event, msg.payload, to=msg.to, namespace=NAMESPACE)
        if msg.close:
            socketio.close_room(msg.to, namespace=NAMESPACE)


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    deliver(matchmaker.disconnect(_get_sid()))


def handle_join_queue(data):
    data = data or {}
    user_id = _as_int(data.get('userId'))
    token = data.get('token')
    if user_id is None or not isinstance(token, str):
        emit('error', {'message': 'userId and token are required'})
        return
    try:
        out = matchmaker.join_queue(_get_sid(), user_id, token)
    except MatchError as exc:
        emit('error', {'message': exc.message})
        return
    deliver(out)


def handle_leave_queue(data=None):
    deliver(matchmaker.leave_queue(_get_sid()))


def handle_submit_move(data):
    # Late, duplicate or malformed moves are dropped without a reply
    data = data or {}
    room_id = data.get('roomId')
    user_id = _as_int(data.get('userId'))
    if not isinstance(room_id, str) or user_id is None:
        return
    deliver(matchmaker.submit_move(_get_sid(), room_id, user_id, data.get('move')))


def handle_ping(data):
    emit('pong', data or {})


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _arm_idle_timer(room_id: str, match_no: int, round_no: int) -> None:
    schedule_idle_timeout(current_app._get_current_object(), room_id, match_no, round_no)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_queue', handle_join_queue, namespace=NAMESPACE)
    socketio.on_event('leave_queue', handle_leave_queue, namespace=NAMESPACE)
    socketio.on_event('submit_move', handle_submit_move, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
    matchmaker.on_round_start = _arm_idle_timer
