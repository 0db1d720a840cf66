import os
import sys
import pytest

# Ensure the backend root (containing the `rps_arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from rps_arena import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']
    AUTH_TOKEN_MAX_AGE_SEC = 3600
    STARTING_COINS = 1000
    PVP_STAKE = 50
    BOT_WIN_REWARD = 15
    WINS_TO_FINISH = 3
    DAILY_BONUS_REWARDS = [50, 100, 150, 200, 250, 300, 1000]
    MATCH_IDLE_TIMEOUT_SEC = 0


class FixedRng:
    """Stands in for random.Random so the bot plays a known move."""

    def __init__(self, *moves):
        self.moves = list(moves)
        self.calls = 0

    def choice(self, seq):
        move = self.moves[min(self.calls, len(self.moves) - 1)]
        self.calls += 1
        return move


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import rps_arena.models  # noqa: F401
        from rps_arena.services.games import bot_matches, matchmaker
        db.create_all()
        bot_matches.reset()
        matchmaker.reset()
        yield application
        bot_matches.reset()
        matchmaker.reset()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    """Create a user directly in the store; returns (user_id, token)."""
    from rps_arena.models import User
    from rps_arena.services.auth import issue_token

    def _make(username, coins=1000):
        user = User(username=username, coins=coins)
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user.id, issue_token(user.id)

    return _make


@pytest.fixture()
def sio_factory(flask_app):
    """Open Socket.IO test clients on /ws; all are disconnected on teardown."""
    clients = []

    def _open():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        test_client.get_received('/ws')  # flush 'connected'
        clients.append(test_client)
        return test_client

    yield _open
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


def events(received, name):
    """Payloads of every packet named `name` in a get_received() list."""
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]
