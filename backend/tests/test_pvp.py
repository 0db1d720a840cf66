import pytest

from rps_arena.services import ledger
from rps_arena.services.games.bot import BotMatchService
from rps_arena.services.games.errors import AuthMismatch, InsufficientFunds
from rps_arena.services.games.pvp import (
    ABANDONED, CANCELLED, FINISHED, MatchSession, Matchmaker, room_name,
)
from rps_arena.services.games.rules import Move


def _session(stake=50):
    return MatchSession(
        room_id='1:2',
        players=[{'userId': 1}, {'userId': 2}],
        sids={1: 'sid-1', 2: 'sid-2'},
        stake=stake,
        escrowed=True,
    )


# ---- MatchSession state machine ----

def test_round_waits_for_both_moves():
    s = _session()
    assert s.record_move(1, Move.ROCK) is None
    res = s.record_move(2, Move.SCISSORS)
    assert res.winner == 1
    assert res.scores == {1: 1, 2: 0}
    assert res.moves == {1: Move.ROCK, 2: Move.SCISSORS}
    assert s.moves == {}
    assert s.round_no == 2


def test_second_move_from_same_player_is_ignored():
    s = _session()
    s.record_move(1, Move.ROCK)
    assert s.record_move(1, Move.PAPER) is None
    assert s.moves == {1: Move.ROCK}


def test_strangers_cannot_move():
    s = _session()
    assert s.record_move(99, Move.ROCK) is None
    assert s.moves == {}


def test_draw_leaves_scores_alone():
    s = _session()
    s.record_move(1, Move.PAPER)
    res = s.record_move(2, Move.PAPER)
    assert res.winner is None
    assert res.to_dict('1:2')['winner'] == 'draw'
    assert s.scores == {1: 0, 2: 0}
    assert s.active


def test_first_to_three_finishes():
    s = _session()
    for _ in range(2):
        s.record_move(1, Move.ROCK)
        s.record_move(2, Move.PAPER)
    for _ in range(3):
        s.record_move(1, Move.ROCK)
        s.record_move(2, Move.SCISSORS)
    assert s.state == FINISHED
    assert s.winner_id == 1
    assert s.scores == {1: 3, 2: 2}
    assert s.record_move(1, Move.ROCK) is None
    assert s.pool == 100


def test_abandon_hands_the_win_to_the_other_player():
    s = _session()
    assert s.abandon(2) == 1
    assert s.state == ABANDONED
    assert s.reason == 'disconnect'
    assert s.abandon(1) is None


def test_cancel_only_from_active():
    s = _session()
    assert s.cancel('timeout')
    assert s.state == CANCELLED
    assert not s.cancel('timeout')


# ---- Matchmaker ----

@pytest.fixture()
def mm(flask_app):
    return Matchmaker(BotMatchService())


def _names(outbound):
    return [o.event for o in outbound]


def test_lone_player_waits_without_debit(mm, make_user):
    uid, token = make_user('alice', coins=200)
    out = mm.join_queue('sid-a', uid, token)
    assert _names(out) == ['waiting']
    assert out[0].to == 'sid-a'
    assert mm.queued_players() == [uid]
    assert ledger.balance_of(uid) == 200


def test_pairing_escrows_both_stakes(mm, make_user):
    a, ta = make_user('alice')
    b, tb = make_user('bob')
    mm.join_queue('sid-a', a, ta)
    out = mm.join_queue('sid-b', b, tb)
    assert _names(out) == ['match_found']
    found = out[0]
    assert found.payload['roomId'] == f'{min(a, b)}:{max(a, b)}'
    assert found.to == room_name(found.payload['roomId'])
    assert set(found.join) == {'sid-a', 'sid-b'}
    assert [p['userId'] for p in found.payload['players']] == [a, b]
    assert 'equippedHandsId' in found.payload['players'][0]
    assert mm.queued_players() == []
    assert ledger.balance_of(a) == 950
    assert ledger.balance_of(b) == 950


def test_auth_mismatch_is_rejected(mm, make_user):
    a, _ = make_user('alice')
    b, tb = make_user('bob')
    with pytest.raises(AuthMismatch):
        mm.join_queue('sid-a', a, tb)
    with pytest.raises(AuthMismatch):
        mm.join_queue('sid-a', a, 'not-a-token')
    assert mm.queued_players() == []


def test_broke_player_cannot_queue(mm, make_user):
    uid, token = make_user('alice', coins=49)
    with pytest.raises(InsufficientFunds):
        mm.join_queue('sid-a', uid, token)
    assert mm.queued_players() == []


def test_broke_waiting_opponent_is_dropped(mm, make_user):
    a, ta = make_user('alice')
    b, tb = make_user('bob')
    c, tc = make_user('carol')
    mm.join_queue('sid-a', a, ta)
    # alice spends her coins elsewhere while waiting
    assert ledger.spend(a, 990)

    out = mm.join_queue('sid-b', b, tb)
    assert _names(out) == ['error', 'waiting']
    assert out[0].to == 'sid-a'
    assert out[0].payload == {'message': 'insufficient funds'}
    assert mm.queued_players() == [b]
    assert ledger.balance_of(a) == 10
    assert ledger.balance_of(b) == 1000

    out = mm.join_queue('sid-c', c, tc)
    assert _names(out) == ['match_found']
    assert ledger.balance_of(b) == 950
    assert ledger.balance_of(c) == 950


def test_joiner_short_at_escrow_keeps_opponent_queued(mm, make_user, monkeypatch):
    a, ta = make_user('alice')
    b, tb = make_user('bob')
    mm.join_queue('sid-a', a, ta)

    # bob passed the balance check but was drained before escrow
    monkeypatch.setattr(ledger, 'debit_stakes', lambda user_ids, amount: [b])
    out = mm.join_queue('sid-b', b, tb)
    assert _names(out) == ['error']
    assert out[0].to == 'sid-b'
    assert mm.queued_players() == [a]
    assert ledger.balance_of(a) == 1000
    assert ledger.balance_of(b) == 1000


def test_escrow_is_all_or_nothing(flask_app, make_user):
    a, _ = make_user('alice', coins=100)
    b, _ = make_user('bob', coins=20)
    assert ledger.debit_stakes([a, b], 50) == [b]
    assert ledger.balance_of(a) == 100
    assert ledger.balance_of(b) == 20


def test_rejoin_replaces_stale_entry(mm, make_user):
    a, ta = make_user('alice')
    mm.join_queue('sid-old', a, ta)
    out = mm.join_queue('sid-new', a, ta)
    assert _names(out) == ['waiting']
    assert mm.queued_players() == [a]
    assert mm._queue[0].sid == 'sid-new'


def test_joining_pvp_cancels_training(mm, make_user):
    a, ta = make_user('alice')
    mm.bots.start(a)
    mm.join_queue('sid-a', a, ta)
    assert mm.bots.get(a) is None


def _pair(mm, make_user):
    a, ta = make_user('alice')
    b, tb = make_user('bob')
    mm.join_queue('sid-a', a, ta)
    room_id = mm.join_queue('sid-b', b, tb)[0].payload['roomId']
    return a, b, room_id


def test_full_match_pays_the_pool_once(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    for n in range(1, 4):
        assert mm.submit_move('sid-a', room_id, a, 'rock') == []
        out = mm.submit_move('sid-b', room_id, b, 'scissors')
        result = out[0].payload
        assert result['winner'] == a
        assert result['scores'] == {str(a): n, str(b): 0}
        assert result['moves'] == {str(a): 'rock', str(b): 'scissors'}
    assert _names(out) == ['round_result', 'match_over']
    over = out[1]
    assert over.payload['winnerId'] == a
    assert over.payload['reward'] == 100
    assert over.payload['reason'] is None
    assert over.close
    assert mm.room(room_id) is None
    assert ledger.balance_of(a) == 1050
    assert ledger.balance_of(b) == 950
    # late message after settlement
    assert mm.submit_move('sid-a', room_id, a, 'rock') == []
    assert ledger.balance_of(a) == 1050


def test_moves_are_checked_against_the_connection(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    assert mm.submit_move('sid-b', room_id, a, 'rock') == []
    assert mm.submit_move('sid-a', room_id, a, 'lizard') == []
    assert mm.submit_move('sid-a', 'nope', a, 'rock') == []
    assert mm.room(room_id).moves == {}


def test_disconnect_mid_match_pays_the_survivor(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    mm.submit_move('sid-a', room_id, a, 'rock')
    out = mm.disconnect('sid-b')
    assert _names(out) == ['opponent_disconnected', 'match_over']
    assert out[0].to == 'sid-a'
    assert out[1].payload['winnerId'] == a
    assert out[1].payload['reward'] == 100
    assert out[1].payload['reason'] == 'disconnect'
    assert mm.room(room_id) is None
    assert ledger.balance_of(a) == 1050
    assert ledger.balance_of(b) == 950
    assert mm.disconnect('sid-a') == []


def test_disconnect_while_queued_withdraws(mm, make_user):
    a, ta = make_user('alice')
    mm.join_queue('sid-a', a, ta)
    assert mm.disconnect('sid-a') == []
    assert mm.queued_players() == []


def test_leave_queue(mm, make_user):
    a, ta = make_user('alice')
    mm.join_queue('sid-a', a, ta)
    assert _names(mm.leave_queue('sid-a')) == ['left_queue']
    assert mm.leave_queue('sid-a') == []


def test_withdraw_player_forfeits_running_match(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    out = mm.withdraw_player(a)
    assert _names(out) == ['match_over']
    assert out[0].payload['winnerId'] == b
    assert out[0].payload['reason'] == 'forfeit'
    assert ledger.balance_of(b) == 1050


def test_idle_round_with_one_mover_forfeits_the_other(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    mm.submit_move('sid-b', room_id, b, 'paper')
    out = mm.expire_round(room_id, mm.room(room_id).match_no, 1)
    assert _names(out) == ['match_over']
    assert out[0].payload['winnerId'] == b
    assert out[0].payload['reason'] == 'timeout'


def test_idle_round_with_no_movers_refunds(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    out = mm.expire_round(room_id, mm.room(room_id).match_no, 1)
    assert _names(out) == ['match_cancelled']
    assert out[0].payload['refund'] == 50
    assert ledger.balance_of(a) == 1000
    assert ledger.balance_of(b) == 1000
    assert mm.room(room_id) is None


def test_stale_idle_timer_is_ignored(mm, make_user):
    a, b, room_id = _pair(mm, make_user)
    mm.submit_move('sid-a', room_id, a, 'rock')
    mm.submit_move('sid-b', room_id, b, 'rock')
    assert mm.expire_round(room_id, mm.room(room_id).match_no, 1) == []
    assert mm.room(room_id).active


def test_round_start_hook_fires_per_round(mm, make_user):
    armed = []
    mm.on_round_start = lambda rid, match_no, rn: armed.append(rn)
    a, b, room_id = _pair(mm, make_user)
    mm.submit_move('sid-a', room_id, a, 'rock')
    mm.submit_move('sid-b', room_id, b, 'paper')
    assert armed == [1, 2]


def test_broke_rejoin_clears_the_stale_entry(mm, make_user):
    a, ta = make_user('alice', coins=60)
    mm.join_queue('sid-old', a, ta)
    assert ledger.spend(a, 20)
    with pytest.raises(InsufficientFunds):
        mm.join_queue('sid-new', a, ta)
    assert mm.queued_players() == []


def test_failed_payout_still_closes_the_room(mm, make_user, monkeypatch):
    a, b, room_id = _pair(mm, make_user)

    def store_down(*args):
        raise RuntimeError('store down')

    monkeypatch.setattr(ledger, 'settle_match', store_down)
    with pytest.raises(RuntimeError):
        mm.withdraw_player(a)
    assert mm.room(room_id) is None
    assert mm.room_for_player(a) is None
    assert mm.room_for_player(b) is None


def test_rematch_ignores_timers_from_the_previous_match(mm, make_user):
    armed = []
    mm.on_round_start = lambda rid, match_no, rn: armed.append((rid, match_no, rn))
    a, ta = make_user('alice')
    b, tb = make_user('bob')

    mm.join_queue('sid-a', a, ta)
    room_id = mm.join_queue('sid-b', b, tb)[0].payload['roomId']
    first = mm.room(room_id).match_no
    for _ in range(3):
        mm.submit_move('sid-a', room_id, a, 'rock')
        mm.submit_move('sid-b', room_id, b, 'scissors')
    assert mm.room(room_id) is None

    mm.join_queue('sid-a', a, ta)
    assert mm.join_queue('sid-b', b, tb)[0].payload['roomId'] == room_id
    second = mm.room(room_id).match_no
    assert second != first
    assert (room_id, second, 1) in armed

    assert mm.expire_round(room_id, first, 1) == []
    assert mm.room(room_id).active
    assert ledger.balance_of(a) == 1000
    assert ledger.balance_of(b) == 900


def test_idle_timer_is_armed_for_every_match_of_a_pair(flask_app, make_user, monkeypatch):
    from rps_arena import socketio
    from rps_arena.services.games import matchmaker, scheduler

    flask_app.config.update(MATCH_IDLE_TIMEOUT_SEC=30, ENABLE_SCHEDULER_IN_TESTS=True)
    monkeypatch.setattr(scheduler, '_scheduled_round_keys', set())
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda fn, *args: started.append(args))

    a, ta = make_user('alice')
    b, tb = make_user('bob')
    matchmaker.join_queue('sid-a', a, ta)
    room_id = matchmaker.join_queue('sid-b', b, tb)[0].payload['roomId']
    for _ in range(3):
        matchmaker.submit_move('sid-a', room_id, a, 'rock')
        matchmaker.submit_move('sid-b', room_id, b, 'scissors')
    assert [args[2] for args in started] == [1, 2, 3]

    matchmaker.join_queue('sid-a', a, ta)
    matchmaker.join_queue('sid-b', b, tb)
    assert len(started) == 4
    rid, match_no, round_no, delay = started[3]
    assert (rid, round_no, delay) == (room_id, 1, 30)
    assert match_no != started[0][1]

    # the first match's round-1 timer fires late
    assert matchmaker.expire_round(*started[0][:3]) == []
    assert matchmaker.room(room_id).active
