"""
asgi.py -- ASGI entry point for TodoVault.

Run with:  uvicorn asgi:app --reload

Settings come from the environment / .env via get_settings(). Importing this
module without SECRET_KEY (and without DEBUG=true) fails at import.
"""

from api.main import create_app

app = create_app()
