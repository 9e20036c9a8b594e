"""
Session context for request handlers.

Login and credential storage live outside this service. Incoming requests carry
a bearer token that is resolved once into a ``SessionContext`` and handed to the
handlers that need to know who is acting.
"""

from .schemas import SessionContext
from .dependencies import get_session_context, require_admin
from .utils import create_access_token, decode_access_token

__all__ = [
    "SessionContext",
    "get_session_context",
    "require_admin",
    "create_access_token",
    "decode_access_token",
]
