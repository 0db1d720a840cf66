import random
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from flask import current_app

from rps_arena.services import ledger
from .errors import MatchNotFinished, NoActiveMatch
from .rules import Move, Outcome, parse_move, random_move, resolve_round


def _wins_to_finish() -> int:
    return int(current_app.config.get('WINS_TO_FINISH', 3))


@dataclass
class BotMatch:
    player_id: int
    wins_to_finish: int = 3
    player_wins: int = 0
    bot_wins: int = 0
    mode: str = 'training'
    active: bool = True

    @property
    def is_over(self) -> bool:
        return max(self.player_wins, self.bot_wins) >= self.wins_to_finish

    @property
    def player_won(self) -> bool:
        return self.player_wins >= self.wins_to_finish


@dataclass
class RoundReport:
    player_move: Move
    bot_move: Move
    result: Outcome
    player_wins: int
    bot_wins: int
    match_over: bool

    def to_dict(self):
        return {
            'playerMove': self.player_move.value,
            'botMove': self.bot_move.value,
            'result': self.result.value,
            'playerWins': self.player_wins,
            'botWins': self.bot_wins,
            'matchOver': self.match_over,
        }


@dataclass
class Settlement:
    reward: int
    player_won: bool
    balance: int

    def to_dict(self):
        return {
            'reward': self.reward,
            'points_change': self.reward,
            'result': 'win' if self.player_won else 'lose',
            'balance': self.balance,
        }


class BotMatchService:
    """Best-of-five training matches against a random bot, one per player."""

    def __init__(self, rng=None):
        self.rng = rng or random.Random()
        self._sessions: Dict[int, BotMatch] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self._sessions.clear()

    def get(self, player_id: int) -> Optional[BotMatch]:
        return self._sessions.get(player_id)

    def start(self, player_id: int) -> BotMatch:
        session = BotMatch(player_id=player_id, wins_to_finish=_wins_to_finish())
        with self._lock:
            replaced = self._sessions.get(player_id)
            self._sessions[player_id] = session
        current_app.logger.info(
            f"[bot-start] player={player_id} replaced={'yes' if replaced else 'no'}"
        )
        return session

    def submit_move(self, player_id: int, move) -> RoundReport:
        player_move = parse_move(move)
        with self._lock:
            session = self._sessions.get(player_id)
            if not session or not session.active or session.is_over:
                raise NoActiveMatch()
            bot_move = random_move(self.rng)
            result = resolve_round(player_move, bot_move)
            if result == Outcome.WIN:
                session.player_wins += 1
            elif result == Outcome.LOSE:
                session.bot_wins += 1
            if session.is_over:
                session.active = False
            report = RoundReport(
                player_move=player_move,
                bot_move=bot_move,
                result=result,
                player_wins=session.player_wins,
                bot_wins=session.bot_wins,
                match_over=session.is_over,
            )
        current_app.logger.info(
            f"[bot-round] player={player_id} move={player_move.value} bot={bot_move.value} "
            f"result={result.value} score={report.player_wins}:{report.bot_wins}"
        )
        return report

    def settle(self, player_id: int) -> Settlement:
        """Pay out a finished match and drop it.

        The session is removed only after the credit went through, so a failed
        store write can be retried and a settled match cannot be paid twice.
        """
        with self._lock:
            session = self._sessions.get(player_id)
            if not session:
                raise NoActiveMatch()
            if not session.is_over:
                raise MatchNotFinished()
            reward = int(current_app.config.get('BOT_WIN_REWARD', 15)) if session.player_won else 0
            balance = ledger.settle_training(player_id, reward, session.player_won)
            del self._sessions[player_id]
        current_app.logger.info(
            f"[bot-settle] player={player_id} won={session.player_won} reward={reward} balance={balance}"
        )
        return Settlement(reward=reward, player_won=session.player_won, balance=balance)

    def cancel(self, player_id: int) -> bool:
        with self._lock:
            removed = self._sessions.pop(player_id, None)
        if removed:
            current_app.logger.info(f"[bot-cancel] player={player_id}")
        return removed is not None
