# bikeshop_api/scripts/__init__.py
