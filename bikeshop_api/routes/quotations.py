# bikeshop_api/routes/quotations.py
from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
import logging

from . import json_body
from ..middleware.auth import active_user_required, store_staff_required, customer_required
from ..services import quotation_service
from ..services.date_utils import utcnow

store_quotations_bp = Blueprint('store_quotations', __name__)
customer_quotations_bp = Blueprint('customer_quotations', __name__)
logger = logging.getLogger(__name__)


# --- Store side ---

@store_quotations_bp.route('', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def create_quotation(store_id):
    """Create a draft quotation for a pending service request"""
    data = json_body()
    quotation = quotation_service.create_quotation(
        current_user,
        store_id,
        service_request_id=data.get('service_request_id'),
        line_items=data.get('line_items'),
        tax_rate=data.get('tax_rate', 0),
        valid_until=data.get('valid_until'),
        validity_days=data.get('validity_days'),
        notes=data.get('notes'),
    )
    return jsonify(quotation.to_dict()), 201


@store_quotations_bp.route('', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def list_quotations(store_id):
    """List the store's quotations with filters and optional pagination"""
    return jsonify(quotation_service.list_store_quotations(current_user, store_id, request.args))


@store_quotations_bp.route('/stats', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def quotation_stats(store_id):
    return jsonify(quotation_service.get_store_quotation_stats(current_user, store_id))


@store_quotations_bp.route('/expiring', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def expiring_quotations(store_id):
    """Open quotations whose validity ends within the next few days"""
    now = utcnow()
    quotations = quotation_service.get_expiring_quotations(
        current_user, store_id, days=request.args.get('days', type=int), now=now
    )
    return jsonify({'items': [quotation.to_dict(now=now) for quotation in quotations]})


@store_quotations_bp.route('/<int:quotation_id>', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def get_quotation(store_id, quotation_id):
    quotation = quotation_service.get_quotation(current_user, store_id, quotation_id)
    return jsonify(quotation.to_dict(include_request=True))


@store_quotations_bp.route('/<int:quotation_id>', methods=['PUT'])
@login_required
@active_user_required
@store_staff_required
def update_quotation(store_id, quotation_id):
    quotation = quotation_service.update_quotation(current_user, store_id, quotation_id, json_body())
    return jsonify(quotation.to_dict())


@store_quotations_bp.route('/<int:quotation_id>/send', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def send_quotation(store_id, quotation_id):
    quotation = quotation_service.send_quotation(current_user, store_id, quotation_id)
    return jsonify(quotation.to_dict())


@store_quotations_bp.route('/<int:quotation_id>/line-items', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def add_line_item(store_id, quotation_id):
    quotation = quotation_service.add_line_item(current_user, store_id, quotation_id, json_body())
    return jsonify(quotation.to_dict()), 201


@store_quotations_bp.route('/<int:quotation_id>/line-items/<item_id>', methods=['PUT'])
@login_required
@active_user_required
@store_staff_required
def update_line_item(store_id, quotation_id, item_id):
    quotation = quotation_service.update_line_item(current_user, store_id, quotation_id, item_id, json_body())
    return jsonify(quotation.to_dict())


@store_quotations_bp.route('/<int:quotation_id>/line-items/<item_id>', methods=['DELETE'])
@login_required
@active_user_required
@store_staff_required
def remove_line_item(store_id, quotation_id, item_id):
    quotation = quotation_service.remove_line_item(current_user, store_id, quotation_id, item_id)
    return jsonify(quotation.to_dict())


# --- Customer side ---

@customer_quotations_bp.route('', methods=['GET'])
@login_required
@active_user_required
@customer_required
def list_my_quotations():
    return jsonify(quotation_service.list_customer_quotations(current_user, request.args))


@customer_quotations_bp.route('/stats', methods=['GET'])
@login_required
@active_user_required
@customer_required
def my_quotation_stats():
    return jsonify(quotation_service.get_customer_quotation_stats(current_user))


@customer_quotations_bp.route('/<int:quotation_id>', methods=['GET'])
@login_required
@active_user_required
@customer_required
def get_my_quotation(quotation_id):
    quotation = quotation_service.get_customer_quotation(current_user, quotation_id)
    return jsonify(quotation.to_dict(include_request=True))


@customer_quotations_bp.route('/<int:quotation_id>/approve', methods=['POST'])
@login_required
@active_user_required
@customer_required
def approve_quotation(quotation_id):
    """Accept a sent quotation; the service request moves to approved"""
    quotation = quotation_service.approve_quotation(current_user, quotation_id)
    return jsonify(quotation.to_dict())


@customer_quotations_bp.route('/<int:quotation_id>/reject', methods=['POST'])
@login_required
@active_user_required
@customer_required
def reject_quotation(quotation_id):
    """Decline a sent quotation; the service request goes back to pending"""
    quotation = quotation_service.reject_quotation(current_user, quotation_id)
    return jsonify(quotation.to_dict())
