from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from rps_arena.services.games import bot_matches, matchmaker
from rps_arena.services.games.errors import MatchError
from rps_arena.socketio_events import deliver


match = Blueprint('match', __name__)


@match.errorhandler(MatchError)
def handle_match_error(exc):
    return jsonify({'error': exc.message}), exc.status_code


@match.route('/start-training', methods=['POST'])
@login_required
def start_training():
    """Open a fresh best-of-five against the bot, dropping any PvP presence."""
    deliver(matchmaker.withdraw_player(current_user.id))
    session = bot_matches.start(current_user.id)
    return jsonify({
        'success': True,
        'mode': session.mode,
        'playerWins': session.player_wins,
        'botWins': session.bot_wins,
    })


@match.route('/round', methods=['POST'])
@login_required
def play_round():
    data = request.get_json(silent=True) or {}
    report = bot_matches.submit_move(current_user.id, data.get('playerMove'))
    return jsonify(report.to_dict())


@match.route('/end', methods=['POST'])
@login_required
def end_match():
    settlement = bot_matches.settle(current_user.id)
    return jsonify(settlement.to_dict())


@match.route('/cancel', methods=['POST'])
@login_required
def cancel_match():
    bot_matches.cancel(current_user.id)
    return jsonify({'success': True})
