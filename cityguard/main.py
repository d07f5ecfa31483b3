"""
ASGI entry point: ``uvicorn cityguard.main:app``.
"""
from . import create_app

app = create_app()
