"""
Session guard.

Resolves the access token for each authenticated call: returns the stored
token while it is fresh, refreshes it when it is about to expire, and
demands a new login when refresh is impossible.
"""

import logging
import time
from typing import Callable, Optional

from lynx_fm.exceptions import InvalidRefreshToken, LoginRequired
from .identity import IdentityClient
from .session import Session
from .store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = 60


class SessionGuard:
    """Hands out usable access tokens backed by a CredentialStore."""

    def __init__(
        self,
        store: CredentialStore,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        identity_factory: Optional[Callable[[Session], IdentityClient]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the guard.

        Args:
            store: Where the session is loaded from and saved to
            refresh_margin: Tokens expiring within this many seconds are
                treated as already expired
            identity_factory: Builds the IdentityClient used for refresh
            clock: Returns the current epoch time in seconds
        """
        self._store = store
        self._refresh_margin = refresh_margin
        self._identity_factory = identity_factory or IdentityClient
        self._clock = clock

    async def authorized_token(self) -> str:
        """
        Return an access token believed to be valid.

        The media server remains the judge of validity; a token returned
        here may still be rejected there.

        Raises:
            LoginRequired: If there is no token, or it expired and cannot
                be refreshed
            TransportError: If the provider could not be reached during
                refresh (the stored session is left untouched)
        """
        session = self._store.load()
        if not session.access_token:
            raise LoginRequired("Not logged in. Run 'lynx-fm login'.")

        if not session.is_expired(self._refresh_margin, now=self._clock()):
            return session.access_token

        if not session.refresh_token:
            logger.info("Access token expired and no refresh token is stored")
            self._store.clear()
            raise LoginRequired("Session expired. Run 'lynx-fm login'.")

        logger.debug("Access token expired or about to expire, refreshing")
        identity = self._identity_factory(session)
        try:
            refreshed = await identity.refresh(session.refresh_token)
        except InvalidRefreshToken as e:
            logger.warning(f"Token refresh rejected: {e}")
            self._store.clear()
            raise LoginRequired("Session expired and could not be renewed. Run 'lynx-fm login'.")

        self._store.save(refreshed)
        logger.info("Session refreshed")
        return str(refreshed.access_token)
