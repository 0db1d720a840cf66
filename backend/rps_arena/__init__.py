from flask import Flask, g, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

SHOP_CATALOG = [
    {'name': 'Neon Border', 'price': 500, 'image_id': 'neon_green', 'color': '#22c55e', 'type': 'border'},
    {'name': 'Gold Border', 'price': 2000, 'image_id': 'gold_rush', 'color': '#facc15', 'type': 'border'},
    {'name': 'Cyber Grid', 'price': 800, 'image_id': 'cyber_grid', 'color': '#38bdf8', 'type': 'background'},
    {'name': 'Sunset', 'price': 1200, 'image_id': 'sunset', 'color': '#f97316', 'type': 'background'},
    {'name': 'Robot Hands', 'price': 1500, 'image_id': 'robot_hands', 'color': '#a3a3a3', 'type': 'hands'},
    {'name': 'Cyberpunk Hands', 'price': 5000, 'image_id': 'cyber_punk', 'color': '#ec4899', 'type': 'hands'},
]

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS', [])

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from rps_arena.main import main
    flask_app.register_blueprint(main)

    from rps_arena.api.match import match
    flask_app.register_blueprint(match, url_prefix='/api/match')

    from rps_arena.api.shop import shop
    flask_app.register_blueprint(shop, url_prefix='/api/shop')

    from rps_arena.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    # Bearer-token auth for the API; the mini-app has no cookie session
    from rps_arena.models import User
    from rps_arena.services.auth import resolve_token

    @login_manager.request_loader
    def load_user_from_request(request):
        header = request.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return None
        user_id = resolve_token(header[len('Bearer '):].strip())
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    # current_user is cached on g, which outlives the request when an app
    # context is already pushed (CLI, tests); tokens are per request
    @flask_app.teardown_request
    def forget_request_user(exc=None):
        g.pop('_login_user', None)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from rps_arena.models import Item
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for entry in SHOP_CATALOG:
                db.session.add(Item(**entry))

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u, coins=flask_app.config['STARTING_COINS'])
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
