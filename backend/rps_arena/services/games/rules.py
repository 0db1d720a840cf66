import random
from enum import Enum

from .errors import InvalidMove


class Move(str, Enum):
    ROCK = 'rock'
    SCISSORS = 'scissors'
    PAPER = 'paper'


class Outcome(str, Enum):
    WIN = 'win'
    LOSE = 'lose'
    DRAW = 'draw'


# Each move beats exactly one other
BEATS = {
    Move.ROCK: Move.SCISSORS,
    Move.SCISSORS: Move.PAPER,
    Move.PAPER: Move.ROCK,
}


def parse_move(value) -> Move:
    if isinstance(value, Move):
        return value
    if isinstance(value, str):
        try:
            return Move(value.strip().lower())
        except ValueError:
            pass
    raise InvalidMove()


def resolve_round(mine: Move, theirs: Move) -> Outcome:
    """Outcome of a round from the point of view of whoever played ``mine``."""
    if mine == theirs:
        return Outcome.DRAW
    return Outcome.WIN if BEATS[mine] == theirs else Outcome.LOSE


def random_move(rng=None) -> Move:
    return (rng or random).choice(list(Move))
