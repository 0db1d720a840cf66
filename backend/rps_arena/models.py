from rps_arena import db, bcrypt
from flask import current_app
from flask_login import UserMixin

ITEM_TYPES = ('border', 'background', 'hands')
DEFAULT_AVATAR = '/avatars/skin-1.jpg'

# Inventory: which shop items a user owns
user_item = db.Table(
    'user_item',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('item_id', db.Integer, db.ForeignKey('item.id'), primary_key=True),
)


def _starting_coins():
    try:
        return int(current_app.config.get('STARTING_COINS', 1000))
    except RuntimeError:
        return 1000


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    avatar = db.Column(db.String(256), default=DEFAULT_AVATAR, nullable=False)
    coins = db.Column(db.Integer, default=_starting_coins, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)
    total_earned = db.Column(db.Integer, default=0, nullable=False)
    # Daily bonus bookkeeping
    last_claim_date = db.Column(db.Date, nullable=True)
    login_streak = db.Column(db.Integer, default=0, nullable=False)
    # Equipped cosmetics, one slot per item type
    equipped_border_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=True)
    equipped_background_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=True)
    equipped_hands_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=True)
    items = db.relationship('Item', secondary=user_item, lazy='select')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def owns(self, item_id):
        return any(i.id == item_id for i in self.items)

    def to_dict(self):
        return {
            'id': self.id,
            'nickname': self.username,
            'email': self.email,
            'avatar': self.avatar,
            'coins': self.coins,
            'wins': self.wins,
            'losses': self.losses,
            'total_earned': self.total_earned,
            'last_claim_date': self.last_claim_date.isoformat() if self.last_claim_date else None,
            'streak': self.login_streak,
            'inventory': sorted(i.id for i in self.items),
            'equippedBorderId': self.equipped_border_id,
            'equippedBackgroundId': self.equipped_background_id,
            'equippedHandsId': self.equipped_hands_id,
        }

    def public_dict(self):
        """What an opponent gets to see."""
        return {
            'userId': self.id,
            'nickname': self.username,
            'avatar': self.avatar,
            'equippedHandsId': self.equipped_hands_id,
            'equippedBorderId': self.equipped_border_id,
        }


class Item(db.Model):
    __tablename__ = 'item'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    image_id = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(16), default='#ffffff', nullable=False)
    type = db.Column(db.String(16), nullable=False)  # border, background, hands

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'imageId': self.image_id,
            'color': self.color,
            'type': self.type,
        }
