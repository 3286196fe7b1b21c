# bikeshop_api/routes/invoices.py
from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
import logging

from . import json_body
from ..middleware.auth import active_user_required, store_staff_required, customer_required
from ..services import invoice_service
from ..services.date_utils import utcnow

store_invoices_bp = Blueprint('store_invoices', __name__)
customer_invoices_bp = Blueprint('customer_invoices', __name__)
logger = logging.getLogger(__name__)


# --- Store side ---

@store_invoices_bp.route('', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def create_invoice(store_id):
    """Bill a completed service record, optionally from its approved quotation"""
    data = json_body()
    invoice = invoice_service.create_invoice(
        current_user,
        store_id,
        service_record_id=data.get('service_record_id'),
        line_items=data.get('line_items'),
        tax_rate=data.get('tax_rate'),
        due_days=data.get('due_days'),
        notes=data.get('notes'),
        quotation_id=data.get('quotation_id'),
    )
    return jsonify(invoice.to_dict()), 201


@store_invoices_bp.route('', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def list_invoices(store_id):
    return jsonify(invoice_service.list_store_invoices(current_user, store_id, request.args))


@store_invoices_bp.route('/stats', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def invoice_stats(store_id):
    return jsonify(invoice_service.get_store_invoice_stats(current_user, store_id))


@store_invoices_bp.route('/overdue', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def overdue_invoices(store_id):
    now = utcnow()
    invoices = invoice_service.get_overdue_invoices(current_user, store_id, now=now)
    return jsonify({'items': [invoice.to_dict(now=now) for invoice in invoices]})


@store_invoices_bp.route('/due-soon', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def due_soon_invoices(store_id):
    now = utcnow()
    invoices = invoice_service.get_due_soon_invoices(
        current_user, store_id, days=request.args.get('days', type=int), now=now
    )
    return jsonify({'items': [invoice.to_dict(now=now) for invoice in invoices]})


@store_invoices_bp.route('/number/<invoice_number>', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def get_invoice_by_number(store_id, invoice_number):
    invoice = invoice_service.get_invoice_by_number(current_user, store_id, invoice_number)
    return jsonify(invoice.to_dict(include_record=True))


@store_invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@login_required
@active_user_required
@store_staff_required
def get_invoice(store_id, invoice_id):
    invoice = invoice_service.get_invoice(current_user, store_id, invoice_id)
    return jsonify(invoice.to_dict(include_record=True))


@store_invoices_bp.route('/<int:invoice_id>', methods=['PUT'])
@login_required
@active_user_required
@store_staff_required
def update_invoice(store_id, invoice_id):
    invoice = invoice_service.update_invoice(current_user, store_id, invoice_id, json_body())
    return jsonify(invoice.to_dict())


@store_invoices_bp.route('/<int:invoice_id>/payments', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def record_payment(store_id, invoice_id):
    data = json_body()
    invoice = invoice_service.record_payment(
        current_user,
        store_id,
        invoice_id,
        amount=data.get('amount'),
        payment_date=data.get('payment_date'),
        notes=data.get('notes'),
    )
    return jsonify(invoice.to_dict())


@store_invoices_bp.route('/<int:invoice_id>/cancel', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def cancel_invoice(store_id, invoice_id):
    invoice = invoice_service.cancel_invoice(current_user, store_id, invoice_id, reason=json_body().get('reason'))
    return jsonify(invoice.to_dict())


@store_invoices_bp.route('/<int:invoice_id>/line-items', methods=['POST'])
@login_required
@active_user_required
@store_staff_required
def add_line_item(store_id, invoice_id):
    invoice = invoice_service.add_line_item(current_user, store_id, invoice_id, json_body())
    return jsonify(invoice.to_dict()), 201


@store_invoices_bp.route('/<int:invoice_id>/line-items/<item_id>', methods=['PUT'])
@login_required
@active_user_required
@store_staff_required
def update_line_item(store_id, invoice_id, item_id):
    invoice = invoice_service.update_line_item(current_user, store_id, invoice_id, item_id, json_body())
    return jsonify(invoice.to_dict())


@store_invoices_bp.route('/<int:invoice_id>/line-items/<item_id>', methods=['DELETE'])
@login_required
@active_user_required
@store_staff_required
def remove_line_item(store_id, invoice_id, item_id):
    invoice = invoice_service.remove_line_item(current_user, store_id, invoice_id, item_id)
    return jsonify(invoice.to_dict())


# --- Customer side ---

@customer_invoices_bp.route('', methods=['GET'])
@login_required
@active_user_required
@customer_required
def list_my_invoices():
    return jsonify(invoice_service.list_customer_invoices(current_user, request.args))


@customer_invoices_bp.route('/stats', methods=['GET'])
@login_required
@active_user_required
@customer_required
def my_invoice_stats():
    return jsonify(invoice_service.get_customer_invoice_stats(current_user))


@customer_invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@login_required
@active_user_required
@customer_required
def get_my_invoice(invoice_id):
    invoice = invoice_service.get_customer_invoice(current_user, invoice_id)
    return jsonify(invoice.to_dict(include_record=True))
