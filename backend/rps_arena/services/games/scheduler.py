import time
from typing import Set, Tuple

from rps_arena import socketio


_scheduled_round_keys: Set[Tuple[str, int, int]] = set()


def schedule_idle_timeout(app, room_id: str, match_no: int, round_no: int) -> None:
    """Schedule an idle check for the given round of a PvP match.

    - No-ops unless MATCH_IDLE_TIMEOUT_SEC > 0
    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (room_id, match, round)
    - On fire, hands the round to the matchmaker, which ignores it if the
      round already resolved
    """
    try:
        delay = int(app.config.get('MATCH_IDLE_TIMEOUT_SEC', 0))
    except (TypeError, ValueError):
        delay = 0
    if delay <= 0:
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    key = (room_id, match_no, round_no)
    if key in _scheduled_round_keys:
        app.logger.info(f"[timer-skip] room={room_id} match={match_no} round={round_no} already scheduled")
        return
    _scheduled_round_keys.add(key)
    app.logger.info(f"[timer-set] room={room_id} match={match_no} round={round_no} timeout={delay}s")

    def _worker(rid: str, expected_match: int, expected_round: int, wait: int):
        time.sleep(wait)
        with app.app_context():
            from rps_arena.services.games import matchmaker
            from rps_arena.socketio_events import deliver

            _scheduled_round_keys.discard((rid, expected_match, expected_round))
            out = matchmaker.expire_round(rid, expected_match, expected_round)
            app.logger.info(
                f"[timer-fire] room={rid} match={expected_match} round={expected_round} {'expired' if out else 'already resolved'}"
            )
            deliver(out)

    socketio.start_background_task(_worker, room_id, match_no, round_no, delay)
