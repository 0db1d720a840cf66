"""Realtime PvP: the waiting queue, match sessions and their settlement.

The matchmaker never touches the socket layer. Each operation returns the
``Outbound`` messages it produced and the gateway delivers them, which keeps
the whole lifecycle testable without a server.
"""

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from flask import current_app

from rps_arena import db
from rps_arena.models import User
from rps_arena.services import ledger
from rps_arena.services.auth import resolve_token
from .errors import AuthMismatch, InsufficientFunds, InvalidMove
from .rules import Move, Outcome, parse_move, resolve_round

AWAITING_MOVES = 'awaiting_moves'
FINISHED = 'finished'
ABANDONED = 'abandoned'
CANCELLED = 'cancelled'


def room_name(room_id: str) -> str:
    return f"match:{room_id}"


@dataclass
class Outbound:
    event: str
    payload: dict
    to: str
    # sids to add to room ``to`` before emitting
    join: Tuple[str, ...] = ()
    # tear the room down after emitting
    close: bool = False


@dataclass
class QueueEntry:
    sid: str
    player_id: int
    identity: dict


@dataclass
class RoundResolution:
    round_no: int
    moves: Dict[int, Move]
    winner: Optional[int]
    scores: Dict[int, int]

    def to_dict(self, room_id: str) -> dict:
        return {
            'roomId': room_id,
            'round': self.round_no,
            'moves': {str(pid): m.value for pid, m in self.moves.items()},
            'winner': self.winner if self.winner is not None else 'draw',
            'scores': {str(pid): n for pid, n in self.scores.items()},
        }


@dataclass
class MatchSession:
    room_id: str
    players: List[dict]
    sids: Dict[int, str]
    stake: int
    # room ids repeat when the same pair meets again; this does not
    match_no: int = 0
    wins_to_finish: int = 3
    moves: Dict[int, Move] = field(default_factory=dict)
    scores: Dict[int, int] = field(default_factory=dict)
    state: str = AWAITING_MOVES
    escrowed: bool = False
    round_no: int = 1
    winner_id: Optional[int] = None
    reason: Optional[str] = None

    def __post_init__(self):
        for pid in self.player_ids:
            self.scores.setdefault(pid, 0)

    @property
    def player_ids(self) -> List[int]:
        return [p['userId'] for p in self.players]

    @property
    def active(self) -> bool:
        return self.state == AWAITING_MOVES

    @property
    def pool(self) -> int:
        return self.stake * 2

    def opponent_of(self, player_id: int) -> int:
        a, b = self.player_ids
        return b if player_id == a else a

    def player_for_sid(self, sid: str) -> Optional[int]:
        for pid, s in self.sids.items():
            if s == sid:
                return pid
        return None

    def record_move(self, player_id: int, move: Move) -> Optional[RoundResolution]:
        """Store a move; resolve the round once both are in.

        Returns None while waiting for the other player, and for moves that
        do not count (not a participant, already moved, match not running).
        """
        if not self.active or player_id not in self.scores or player_id in self.moves:
            return None
        self.moves[player_id] = move
        if len(self.moves) < 2:
            return None

        p1, p2 = self.player_ids
        outcome = resolve_round(self.moves[p1], self.moves[p2])
        winner = None
        if outcome == Outcome.WIN:
            winner = p1
        elif outcome == Outcome.LOSE:
            winner = p2
        if winner is not None:
            self.scores[winner] += 1

        resolution = RoundResolution(
            round_no=self.round_no,
            moves=dict(self.moves),
            winner=winner,
            scores=dict(self.scores),
        )
        self.moves.clear()
        if winner is not None and self.scores[winner] >= self.wins_to_finish:
            self.state = FINISHED
            self.winner_id = winner
        else:
            self.round_no += 1
        return resolution

    def abandon(self, leaver_id: int, reason: str = 'disconnect') -> Optional[int]:
        """active -> abandoned. The player who stayed wins; returns their id."""
        if not self.active or leaver_id not in self.scores:
            return None
        self.state = ABANDONED
        self.winner_id = self.opponent_of(leaver_id)
        self.reason = reason
        return self.winner_id

    def cancel(self, reason: str) -> bool:
        if not self.active:
            return False
        self.state = CANCELLED
        self.reason = reason
        return True


class Matchmaker:
    """Owns the PvP queue and every running match.

    A re-entrant lock serializes all operations, including the store writes
    made inside them, so no other handler sees a half-updated room.
    """

    def __init__(self, bot_matches=None):
        self.bots = bot_matches
        self.on_round_start: Optional[Callable[[str, int, int], None]] = None
        self._queue: Deque[QueueEntry] = deque()
        self._rooms: Dict[str, MatchSession] = {}
        self._room_by_sid: Dict[str, str] = {}
        self._room_by_player: Dict[int, str] = {}
        self._match_seq = itertools.count(1)
        self._lock = threading.RLock()

    # ---- read helpers ----

    def queued_players(self) -> List[int]:
        return [e.player_id for e in self._queue]

    def room(self, room_id: str) -> Optional[MatchSession]:
        return self._rooms.get(room_id)

    def room_for_player(self, player_id: int) -> Optional[MatchSession]:
        room_id = self._room_by_player.get(player_id)
        return self._rooms.get(room_id) if room_id else None

    def reset(self) -> None:
        with self._lock:
            self._queue.clear()
            self._rooms.clear()
            self._room_by_sid.clear()
            self._room_by_player.clear()

    # ---- operations ----

    def join_queue(self, sid: str, player_id: int, token) -> List[Outbound]:
        if resolve_token(token) != player_id:
            current_app.logger.info(f"[pvp-auth] sid={sid} claimed={player_id} rejected")
            raise AuthMismatch()
        user = db.session.get(User, player_id)
        if user is None:
            raise AuthMismatch()
        stake = int(current_app.config.get('PVP_STAKE', 50))
        if ledger.balance_of(player_id) < stake:
            with self._lock:
                self._drop_queued(lambda e: e.player_id == player_id)
            raise InsufficientFunds()

        entry = QueueEntry(sid=sid, player_id=player_id, identity=user.public_dict())
        with self._lock:
            if self.bots is not None:
                self.bots.cancel(player_id)
            self._drop_queued(lambda e: e.sid == sid)
            out = self._withdraw(player_id)

            while self._queue:
                opponent = self._queue.popleft()
                short = ledger.debit_stakes([opponent.player_id, player_id], stake)
                if not short:
                    out.append(self._open_room(opponent, entry, stake))
                    return out
                if player_id in short:
                    # The waiting player keeps their place
                    self._queue.appendleft(opponent)
                    current_app.logger.info(f"[pvp-escrow] player={player_id} short of stake={stake}")
                    out.append(Outbound('error', {'message': InsufficientFunds.default_message}, to=sid))
                    return out
                current_app.logger.info(
                    f"[pvp-escrow] waiting player={opponent.player_id} short of stake={stake}, dropped from queue"
                )
                out.append(Outbound('error', {'message': InsufficientFunds.default_message}, to=opponent.sid))

            self._queue.append(entry)
            current_app.logger.info(f"[pvp-wait] player={player_id} sid={sid} position={len(self._queue)}")
            out.append(Outbound('waiting', {'position': len(self._queue), 'stake': stake}, to=sid))
            return out

    def leave_queue(self, sid: str) -> List[Outbound]:
        with self._lock:
            removed = self._drop_queued(lambda e: e.sid == sid)
        if not removed:
            return []
        current_app.logger.info(f"[pvp-withdraw] sid={sid} left queue")
        return [Outbound('left_queue', {}, to=sid)]

    def submit_move(self, sid: str, room_id: str, player_id: int, move) -> List[Outbound]:
        try:
            move = parse_move(move)
        except InvalidMove:
            return []
        with self._lock:
            session = self._rooms.get(room_id)
            if session is None or not session.active or session.sids.get(player_id) != sid:
                return []
            resolution = session.record_move(player_id, move)
            if resolution is None:
                return []
            current_app.logger.info(
                f"[pvp-round] room={room_id} round={resolution.round_no} "
                f"winner={resolution.winner or 'draw'} scores={resolution.scores}"
            )
            out = [Outbound('round_result', resolution.to_dict(room_id), to=room_name(room_id))]
            if session.state == FINISHED:
                out.extend(self._settle(session))
            else:
                self._arm(session)
            return out

    def disconnect(self, sid: str) -> List[Outbound]:
        with self._lock:
            if self._drop_queued(lambda e: e.sid == sid):
                current_app.logger.info(f"[pvp-withdraw] sid={sid} disconnected while queued")
            room_id = self._room_by_sid.get(sid)
            session = self._rooms.get(room_id) if room_id else None
            if session is None:
                return []
            leaver = session.player_for_sid(sid)
            return self._forfeit(session, leaver, 'disconnect')

    def withdraw_player(self, player_id: int) -> List[Outbound]:
        """Pull a player out of PvP entirely (queue and any running match)."""
        with self._lock:
            return self._withdraw(player_id)

    def expire_round(self, room_id: str, match_no: int, round_no: int) -> List[Outbound]:
        """Idle-timeout hook: end a round nobody finished in time.

        Timers left over from an earlier match in the same room, or from a
        round that already resolved, are ignored.
        """
        with self._lock:
            session = self._rooms.get(room_id)
            if (session is None or not session.active
                    or session.match_no != match_no or session.round_no != round_no):
                return []
            movers = list(session.moves)
            if len(movers) == 1:
                return self._forfeit(session, session.opponent_of(movers[0]), 'timeout')
            session.cancel('timeout')
            ledger.refund(session.player_ids, session.stake)
            self._close(session)
            current_app.logger.info(f"[pvp-cancel] room={room_id} round={round_no} idle, stakes refunded")
            return [Outbound(
                'match_cancelled',
                {'roomId': room_id, 'reason': 'timeout', 'refund': session.stake},
                to=room_name(room_id),
                close=True,
            )]

    # ---- internals (call with the lock held) ----

    def _drop_queued(self, predicate) -> List[QueueEntry]:
        dropped = [e for e in self._queue if predicate(e)]
        if dropped:
            self._queue = deque(e for e in self._queue if not predicate(e))
        return dropped

    def _withdraw(self, player_id: int) -> List[Outbound]:
        self._drop_queued(lambda e: e.player_id == player_id)
        session = self.room_for_player(player_id)
        if session is None:
            return []
        return self._forfeit(session, player_id, 'forfeit')

    def _open_room(self, first: QueueEntry, second: QueueEntry, stake: int) -> Outbound:
        low, high = sorted((first.player_id, second.player_id))
        room_id = f"{low}:{high}"
        session = MatchSession(
            room_id=room_id,
            players=[first.identity, second.identity],
            sids={first.player_id: first.sid, second.player_id: second.sid},
            stake=stake,
            match_no=next(self._match_seq),
            wins_to_finish=int(current_app.config.get('WINS_TO_FINISH', 3)),
            escrowed=True,
        )
        self._rooms[room_id] = session
        for pid, sid in session.sids.items():
            self._room_by_sid[sid] = room_id
            self._room_by_player[pid] = room_id
        current_app.logger.info(
            f"[pvp-match] room={room_id} match={session.match_no} "
            f"p1={first.player_id} p2={second.player_id} stake={stake}"
        )
        self._arm(session)
        return Outbound(
            'match_found',
            {'roomId': room_id, 'players': session.players, 'stake': stake},
            to=room_name(room_id),
            join=(first.sid, second.sid),
        )

    def _forfeit(self, session: MatchSession, leaver_id: Optional[int], reason: str) -> List[Outbound]:
        winner = session.abandon(leaver_id, reason) if leaver_id is not None else None
        if winner is None:
            self._close(session)
            return []
        out = []
        if reason == 'disconnect':
            out.append(Outbound(
                'opponent_disconnected',
                {'roomId': session.room_id, 'userId': leaver_id},
                to=session.sids[winner],
            ))
        out.extend(self._settle(session))
        return out

    def _settle(self, session: MatchSession) -> List[Outbound]:
        winner = session.winner_id
        loser = session.opponent_of(winner)
        pool = session.pool if session.escrowed else 0
        try:
            balance = ledger.settle_match(winner, loser, pool)
        except Exception:
            current_app.logger.error(
                f"[pvp-unpaid] room={session.room_id} match={session.match_no} winner={winner} "
                f"loser={loser} reward={pool} settlement failed"
            )
            raise
        finally:
            self._close(session)
        current_app.logger.info(
            f"[pvp-over] room={session.room_id} winner={winner} loser={loser} reward={pool} "
            f"reason={session.reason or 'score'} balance={balance}"
        )
        return [Outbound(
            'match_over',
            {
                'roomId': session.room_id,
                'winnerId': winner,
                'loserId': loser,
                'reward': pool,
                'scores': {str(pid): n for pid, n in session.scores.items()},
                'reason': session.reason,
            },
            to=room_name(session.room_id),
            close=True,
        )]

    def _close(self, session: MatchSession) -> None:
        self._rooms.pop(session.room_id, None)
        for pid, sid in session.sids.items():
            if self._room_by_sid.get(sid) == session.room_id:
                del self._room_by_sid[sid]
            if self._room_by_player.get(pid) == session.room_id:
                del self._room_by_player[pid]

    def _arm(self, session: MatchSession) -> None:
        if self.on_round_start is not None:
            self.on_round_start(session.room_id, session.match_no, session.round_no)
