"""
Webmention protocol support.

Receiving: claims are checked against the index, then verified by fetching
the source and looking for a link back. Sending: articles that changed on a
reload notify the sites they link to.
"""

from .service import ClaimResponse, WebmentionService
from .store import WebmentionStore, create_store_engine

__all__ = ["ClaimResponse", "WebmentionService", "WebmentionStore", "create_store_engine"]
