"""
Lynx.fm authentication module.

Session model, credential persistence, identity provider client and the
guard that resolves tokens for authenticated requests.
"""

from .guard import SessionGuard
from .identity import IdentityClient, PendingVerification
from .session import Session, decode_jwt_claims
from .store import CredentialStore

__all__ = [
    "CredentialStore",
    "IdentityClient",
    "PendingVerification",
    "Session",
    "SessionGuard",
    "decode_jwt_claims",
]
