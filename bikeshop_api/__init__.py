"""
Bike shop service API.

Quotation and invoice lifecycle for bicycle service stores, exposed as a
Flask application. Use ``bikeshop_api.app.create_app`` to build an app.
"""

__version__ = '1.0.0'
