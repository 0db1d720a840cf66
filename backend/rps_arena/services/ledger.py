"""Balance and match-counter writes against the account store.

Every mutation is a conditional ``UPDATE`` keyed by user id so the read and
the write happen in one statement; callers never pass in a cached balance.
Writes that belong together (a payout and the win/loss counters) share one
transaction.
"""

from typing import Iterable, List

from sqlalchemy import or_

from rps_arena import db
from rps_arena.models import User, user_item


def _apply(updates) -> None:
    """Run ``(user_id, values)`` updates in one transaction."""
    try:
        for user_id, values in updates:
            User.query.filter(User.id == user_id).update(values, synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()


def balance_of(user_id: int) -> int:
    coins = db.session.query(User.coins).filter(User.id == user_id).scalar()
    return int(coins) if coins is not None else 0


def debit_stakes(user_ids: Iterable[int], amount: int) -> List[int]:
    """Debit ``amount`` from every user, all or nothing.

    Returns the ids that could not pay. When that list is non-empty the
    transaction is rolled back and no one has been charged.
    """
    short = []
    try:
        for uid in user_ids:
            updated = (
                User.query
                .filter(User.id == uid, User.coins >= amount)
                .update({User.coins: User.coins - amount}, synchronize_session=False)
            )
            if updated != 1:
                short.append(uid)
        if short:
            db.session.rollback()
        else:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return short


def spend(user_id: int, amount: int) -> bool:
    """Single-user guarded debit; False if the balance is too low."""
    return not debit_stakes([user_id], amount)


def buy_item(user_id: int, item_id: int, price: int) -> bool:
    """Debit ``price`` and add the item to the inventory in one transaction.

    Returns False if the balance is too low. An inventory write that fails
    (the item is already owned) rolls the debit back and re-raises.
    """
    try:
        updated = (
            User.query
            .filter(User.id == user_id, User.coins >= price)
            .update({User.coins: User.coins - price}, synchronize_session=False)
        )
        if updated != 1:
            db.session.rollback()
            return False
        db.session.execute(user_item.insert().values(user_id=user_id, item_id=item_id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    finally:
        db.session.expire_all()
    return True


def credit(user_id: int, amount: int) -> int:
    """Add coins (and lifetime earnings) to a user. Returns the new balance."""
    if amount < 0:
        raise ValueError('amount must not be negative')
    if amount:
        _apply([(user_id, {User.coins: User.coins + amount,
                           User.total_earned: User.total_earned + amount})])
    return balance_of(user_id)


def refund(user_ids: Iterable[int], amount: int) -> None:
    """Hand escrowed coins back without counting them as earnings."""
    _apply([(uid, {User.coins: User.coins + amount}) for uid in user_ids])


def settle_match(winner_id: int, loser_id: int, pool: int) -> int:
    """Credit the pool to the winner and bump both counters. Returns winner balance."""
    _apply([
        (winner_id, {User.coins: User.coins + pool,
                     User.total_earned: User.total_earned + pool,
                     User.wins: User.wins + 1}),
        (loser_id, {User.losses: User.losses + 1}),
    ])
    return balance_of(winner_id)


def settle_training(player_id: int, reward: int, player_won: bool) -> int:
    values = {User.coins: User.coins + reward, User.total_earned: User.total_earned + reward}
    if player_won:
        values[User.wins] = User.wins + 1
    else:
        values[User.losses] = User.losses + 1
    _apply([(player_id, values)])
    return balance_of(player_id)


def claim_daily_bonus(user_id: int, today, streak: int, reward: int) -> bool:
    """Credit the daily reward unless it was already claimed ``today``."""
    try:
        updated = (
            User.query
            .filter(User.id == user_id,
                    or_(User.last_claim_date.is_(None), User.last_claim_date != today))
            .update({User.coins: User.coins + reward,
                     User.total_earned: User.total_earned + reward,
                     User.last_claim_date: today,
                     User.login_streak: streak},
                    synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return updated == 1
