"""
WSGI entry point for hosts that only speak WSGI.
FastAPI is ASGI, so we use a2wsgi adapter. Chat subscriptions (websockets) need an ASGI server.
"""
from a2wsgi import ASGIMiddleware
from psicochat.main import app

# Wrap ASGI app in WSGI adapter
application = ASGIMiddleware(app)
