# logwarden/api/routes/__init__.py
