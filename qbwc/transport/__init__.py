# Transport Layer
# FastAPI application serving the Web Connector SOAP endpoint

from qbwc.transport.app import app, create_app

__all__ = [
    "app",
    "create_app",
]
