# bikeshop_api/middleware/__init__.py
