"""
Routes package for the Bike Shop Service API.
This package contains all the Flask blueprints for the API endpoints.
"""

import logging

from flask import request

from ..services.errors import ValidationError

logger = logging.getLogger(__name__)


def json_body():
    """The request's JSON object; {} without a body, VALIDATION_ERROR for any other JSON value."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def get_blueprints():
    """
    Every blueprint with the URL prefix it is mounted at.

    Imported here rather than at module level so the view modules can use
    ``json_body`` from this package.
    """
    from .auth import auth_bp
    from .health import health_bp
    from .quotations import store_quotations_bp, customer_quotations_bp
    from .invoices import store_invoices_bp, customer_invoices_bp

    return [
        (auth_bp, '/api/auth'),
        (health_bp, '/api'),
        (store_quotations_bp, '/api/stores/<int:store_id>/quotations'),
        (customer_quotations_bp, '/api/customer/quotations'),
        (store_invoices_bp, '/api/stores/<int:store_id>/invoices'),
        (customer_invoices_bp, '/api/customer/invoices'),
    ]


__all__ = ['json_body', 'get_blueprints']
