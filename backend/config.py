import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///rps_arena.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Browser / Telegram mini-app origins allowed to call the API and socket
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173'
    ).split(',') if o.strip()]
    # Auth token lifetime (seconds). 0 disables expiry.
    AUTH_TOKEN_MAX_AGE_SEC = int(os.environ.get('AUTH_TOKEN_MAX_AGE_SEC', str(30 * 24 * 3600)))
    # Economy
    STARTING_COINS = int(os.environ.get('STARTING_COINS', '1000'))
    PVP_STAKE = int(os.environ.get('PVP_STAKE', '50'))
    BOT_WIN_REWARD = int(os.environ.get('BOT_WIN_REWARD', '15'))
    DAILY_BONUS_REWARDS = [50, 100, 150, 200, 250, 300, 1000]
    # Best-of-five: first to this many round wins takes the match
    WINS_TO_FINISH = int(os.environ.get('WINS_TO_FINISH', '3'))
    # Optional: forfeit a PvP round nobody finished within this many seconds. 0 disables.
    MATCH_IDLE_TIMEOUT_SEC = int(os.environ.get('MATCH_IDLE_TIMEOUT_SEC', '0'))
