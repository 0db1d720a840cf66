from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError
from rps_arena import db
from rps_arena.models import Item, ITEM_TYPES
from rps_arena.services import ledger


shop = Blueprint('shop', __name__)

EQUIP_SLOTS = {
    'border': 'equipped_border_id',
    'background': 'equipped_background_id',
    'hands': 'equipped_hands_id',
}


def _item_id(data):
    try:
        return int(data.get('item_id'))
    except (TypeError, ValueError):
        return None


@shop.route('/items', methods=['GET'])
def list_items():
    items = Item.query.order_by(Item.type, Item.price).all()
    return jsonify([i.to_dict() for i in items])


@shop.route('/buy', methods=['POST'])
@login_required
def buy_item():
    data = request.get_json(silent=True) or {}
    item_id = _item_id(data)
    if item_id is None:
        return jsonify({'error': 'item_id is required'}), 400
    item = db.session.get(Item, item_id)
    if not item:
        return jsonify({'error': 'Item not found'}), 404
    user = current_user._get_current_object()
    if user.owns(item.id):
        return jsonify({'error': 'Item already owned'}), 409

    try:
        bought = ledger.buy_item(user.id, item.id, item.price)
    except IntegrityError:
        # a concurrent request bought it first; the debit was rolled back
        return jsonify({'error': 'Item already owned'}), 409
    if not bought:
        return jsonify({'error': 'Insufficient funds'}), 402
    current_app.logger.info(f"[purchase] user={user.id} item={item.id} price={item.price}")
    return jsonify({'user': user.to_dict()})


@shop.route('/equip', methods=['POST'])
@login_required
def equip_item():
    data = request.get_json(silent=True) or {}
    user = current_user._get_current_object()

    # Unequip: {item_id: null, type: 'hands'}
    if data.get('item_id') is None:
        slot = EQUIP_SLOTS.get(data.get('type'))
        if not slot:
            return jsonify({'error': f"type must be one of {', '.join(ITEM_TYPES)}"}), 400
        setattr(user, slot, None)
        db.session.commit()
        return jsonify({'user': user.to_dict()})

    item_id = _item_id(data)
    item = db.session.get(Item, item_id) if item_id is not None else None
    if not item:
        return jsonify({'error': 'Item not found'}), 404
    if not user.owns(item.id):
        return jsonify({'error': 'You do not own this item'}), 403
    setattr(user, EQUIP_SLOTS[item.type], item.id)
    db.session.commit()
    return jsonify({'user': user.to_dict()})
