from datetime import datetime, timedelta, timezone

from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from rps_arena import db
from rps_arena.models import User
from rps_arena.services import ledger
from rps_arena.services.auth import issue_token

main = Blueprint('main', __name__)


def _today():
    return datetime.now(timezone.utc).date()


def _auth_payload(user):
    return {'token': issue_token(user.id), 'user': user.to_dict()}


@main.route('/health')
def health():
    return jsonify({'ok': True})


@main.route('/api/auth/register', methods=['POST'])
@main.route('/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or data.get('nickname') or '').strip()
    password = data.get('password') or ''
    email = (data.get('email') or '').strip() or None
    if not username or not password:
        return jsonify({'error': 'username and password are required'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400
    if email and User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    user = User(username=username, email=email, coins=current_app.config['STARTING_COINS'])
    if data.get('avatar'):
        user.avatar = data['avatar']
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[register] user={user.id} username={username}")
    return jsonify(_auth_payload(user)), 201


@main.route('/api/auth/login', methods=['POST'])
@main.route('/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or data.get('nickname') or '').strip()
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(data.get('password') or ''):
        current_app.logger.info(f"[login] user={user.id}")
        return jsonify(_auth_payload(user))
    return jsonify({'error': 'Invalid username or password'}), 401


@main.route('/api/user', methods=['GET'])
@login_required
def get_user():
    return jsonify({'user': current_user.to_dict()})


@main.route('/api/user/avatar', methods=['POST'])
@login_required
def set_avatar():
    data = request.get_json(silent=True) or {}
    avatar = data.get('avatar')
    if not avatar or not isinstance(avatar, str):
        return jsonify({'error': 'avatar is required'}), 400
    current_user.avatar = avatar
    db.session.commit()
    return jsonify({'user': current_user.to_dict()})


@main.route('/api/daily-bonus', methods=['POST'])
@login_required
def claim_daily_bonus():
    today = _today()
    if current_user.last_claim_date == today:
        return jsonify({'success': False, 'message': 'Bonus already claimed today'}), 409

    # The streak continues only if yesterday was claimed
    if current_user.last_claim_date == today - timedelta(days=1):
        streak = current_user.login_streak + 1
    else:
        streak = 1
    rewards = current_app.config['DAILY_BONUS_REWARDS']
    reward = rewards[(streak - 1) % len(rewards)]

    user_id = current_user.id
    if not ledger.claim_daily_bonus(user_id, today, streak, reward):
        return jsonify({'success': False, 'message': 'Bonus already claimed today'}), 409
    current_app.logger.info(f"[daily-bonus] user={user_id} streak={streak} reward={reward}")
    return jsonify({
        'success': True,
        'reward': reward,
        'streak': streak,
        'balance': ledger.balance_of(user_id),
    })
