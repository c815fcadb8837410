"""Passenger (cPanel) entrypoint for the ERD Studio API.

Passenger only speaks WSGI and looks for a module-level ``application``.
a2wsgi does not drive the ASGI lifespan, so tables and the AI provider
registry are prepared here before the app is wrapped.
"""
import sys
from pathlib import Path

from a2wsgi import ASGIMiddleware
from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

load_dotenv(BACKEND_DIR / ".env", override=False)

from erdstudio.main import app, prepare  # noqa: E402

prepare(app)

application = ASGIMiddleware(app)
