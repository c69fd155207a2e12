"""
offersign server - HTTP API for viewing and signing offers.

Run with:
    offersign-server              # CLI entry point
    python -m offersign.server    # Module entry point

Or programmatically:
    from offersign.server import OfferSignServer
    server = OfferSignServer(port=8000, record_store="memory")
    server.run()
"""

from .app import OfferSignServer, build_store, create_app
from .config import ServerConfig

__all__ = [
    "create_app",
    "build_store",
    "OfferSignServer",
    "ServerConfig",
]
