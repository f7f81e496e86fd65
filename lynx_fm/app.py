"""
Lynx.fm application.

Wires the session store, identity client, session guard, media client and
local player together. Every command of the CLI is one method here; the
CLI only adds prompts and output formatting.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from lynx_fm.auth import (
    CredentialStore,
    IdentityClient,
    PendingVerification,
    Session,
    SessionGuard,
    decode_jwt_claims,
)
from lynx_fm.config import Config, ConfigError
from lynx_fm.exceptions import LynxError
from lynx_fm.media import (
    HealthStatus,
    MediaClient,
    PrefetchOutcome,
    TrackMetadata,
    prefetch_path,
)
from lynx_fm.playback import LocalPlayer

logger = logging.getLogger(__name__)


class LynxFM:
    """
    Main lynx-fm application.

    Usage:
        config = load_config(...)
        app = LynxFM(config)
        await app.play("track-id")
    """

    def __init__(
        self,
        config: Config,
        store: Optional[CredentialStore] = None,
        player: Optional[LocalPlayer] = None,
    ):
        """
        Initialize the application.

        Args:
            config: Validated settings
            store: Session store (default: file under config.home)
            player: Audio player (default: LocalPlayer from playback settings)
        """
        self._config = config
        self.store = store or CredentialStore(
            config.session_path, legacy_path=config.legacy_session_path
        )
        self.guard = SessionGuard(
            self.store,
            refresh_margin=config.auth.refresh_margin,
            identity_factory=self.identity_client,
        )
        self.player = player or LocalPlayer(
            device=config.playback.device,
            blocksize=config.playback.blocksize,
            volume=config.playback.volume,
        )

    @property
    def config(self) -> Config:
        return self._config

    def identity_client(self, session: Session) -> IdentityClient:
        return IdentityClient(session, timeout=self._config.http.timeout)

    def media_client(self, session: Optional[Session] = None) -> MediaClient:
        return MediaClient(
            session or self.store.load(),
            self.guard.authorized_token,
            timeout=self._config.http.timeout,
            connect_timeout=self._config.http.connect_timeout,
        )

    # Configuration

    def configure(
        self,
        provider_url: Optional[str] = None,
        provider_key: Optional[str] = None,
        server_url: Optional[str] = None,
    ) -> Session:
        """
        Update endpoint settings, leaving tokens alone.

        Raises:
            ConfigError: If the key is a service-role key
        """
        session = self.store.load()
        if provider_key is not None:
            if decode_jwt_claims(provider_key).get("role") == "service_role":
                raise ConfigError(
                    "Refusing to store a service_role key: the session file is not "
                    "encrypted. Use the project's public anon key."
                )
            session.provider_key = provider_key
        if provider_url is not None:
            session.provider_url = provider_url.rstrip("/")
        if server_url is not None:
            session.server_url = server_url.rstrip("/")
        self.store.save(session)
        logger.info("Configuration updated")
        return session

    # Authentication

    async def signup(self, email: str, password: str) -> Union[PendingVerification, Session]:
        """Start account creation; persists the session if the provider auto-confirms."""
        result = await self.identity_client(self.store.load()).signup(email, password)
        if isinstance(result, Session):
            self.store.save(result)
        return result

    async def confirm_signup(self, email: str, code: str) -> Session:
        session = await self.identity_client(self.store.load()).confirm_signup(email, code)
        self.store.save(session)
        return session

    async def login(self, email: str, password: str) -> Session:
        session = await self.identity_client(self.store.load()).login(email, password)
        self.store.save(session)
        return session

    async def logout(self) -> bool:
        """
        Log out at the provider (best effort) and clear local tokens.

        Returns:
            True if the provider confirmed the logout
        """
        session = self.store.load()
        revoked = False
        if session.access_token:
            try:
                await self.identity_client(session).logout(session.access_token)
                revoked = True
            except LynxError as e:
                logger.warning(f"Provider logout failed, clearing local session anyway: {e}")
        self.store.clear()
        return revoked

    # Media

    async def health(self) -> HealthStatus:
        return await self.media_client().health()

    async def random_track(self) -> TrackMetadata:
        return await self.media_client().random_track()

    async def play(self, track_id: str) -> None:
        """Play a track, from the prefetch directory when it was downloaded before."""
        local = prefetch_path(self._config.prefetch_dir, track_id)
        if local.exists():
            logger.info(f"Playing prefetched copy {local}")
            await self.player.play_file(local)
            return

        async with self.media_client().stream_track(track_id) as stream:
            await self.player.play_stream(stream)

    async def prefetch(
        self, track_ids: list[str], directory: Optional[Path] = None
    ) -> dict[str, PrefetchOutcome]:
        return await self.media_client().prefetch(
            track_ids,
            directory or self._config.prefetch_dir,
            concurrency=self._config.prefetch.concurrency,
        )
