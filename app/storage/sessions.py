"""
Session engine: opaque bearer tokens mapped to session records.

A session is written to whichever backend is active when it is created.
Sessions are not mirrored between backends, so a session created while Redis
is available is not found after Redis becomes unavailable (and vice versa).
"""

import logging
import secrets
import time
from typing import Callable, Optional

from app.exceptions import StoreConnectionError
from app.metrics import store_sessions_created_total
from app.settings import settings
from app.storage.base import BACKEND_MEMORY, BACKEND_REDIS, DualBackendStore
from app.storage.codec import Codec, SessionRecordCodec
from app.storage.models import SessionRecord
from app.storage.primary import ConnectionManager
from app.storage.utils import mask_session_id

logger = logging.getLogger(__name__)

SESSION_NAMESPACE = "session:"
SESSION_TOKEN_PREFIX = "session_"
SESSION_TOKEN_BYTES = 32


def generate_session_token() -> str:
    """Return a fresh token: ``session_`` + 64 hex chars (256 random bits)."""
    return SESSION_TOKEN_PREFIX + secrets.token_hex(SESSION_TOKEN_BYTES)


class SessionStore(DualBackendStore):
    """Session storage on Redis with in-memory fallback."""

    engine = "session"

    def __init__(
        self,
        connection: ConnectionManager,
        codec: Optional[Codec] = None,
        ttl_seconds: Optional[int] = None,
        cleanup_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        key_prefix: Optional[str] = None,
    ):
        super().__init__(
            connection,
            namespace=SESSION_NAMESPACE,
            codec=codec or SessionRecordCodec(),
            cleanup_interval=cleanup_interval or settings.session.cleanup_interval_seconds,
            clock=clock,
            key_prefix=key_prefix,
        )
        self.ttl_seconds = ttl_seconds or settings.session.ttl_seconds

    def is_remote_enabled(self) -> bool:
        """Whether new sessions currently go to Redis."""
        return self._connection.is_available()

    async def create_session(self, user_id: Optional[str] = None) -> str:
        """Create a session and return its token.

        Args:
            user_id: Owner of the session (default from settings, "admin")

        Returns:
            The new session token
        """
        user_id = user_id or settings.session.default_user_id
        token = generate_session_token()
        now = self._clock()
        record = SessionRecord(
            user_id=user_id, created_at=now, expires_at=now + self.ttl_seconds
        )
        full_key = self._key(token)
        payload = self._codec.dumps(record)

        client = self._remote()
        if client is not None:
            try:
                await self._execute(
                    "create", client.set(full_key, payload, ex=self.ttl_seconds)
                )
                store_sessions_created_total.labels(backend=BACKEND_REDIS).inc()
                logger.info(f"Created session {mask_session_id(token)} in Redis")
                return token
            except StoreConnectionError as e:
                logger.error(f"Redis session write failed, using memory: {e}")

        self._fallback.set_until(full_key, payload, record.expires_at)
        self._record_fallback("create")
        store_sessions_created_total.labels(backend=BACKEND_MEMORY).inc()
        logger.info(f"Created session {mask_session_id(token)} in memory")
        return token

    async def validate_session(self, token: Optional[str]) -> Optional[SessionRecord]:
        """Return the live record for ``token``, or None.

        Expired records are destroyed on sight.

        Raises:
            SerializationError: If the stored record is malformed
        """
        if not token:
            return None

        full_key = self._key(token)
        data = None

        client = self._remote()
        if client is not None:
            try:
                data = await self._execute("validate", client.get(full_key))
            except StoreConnectionError as e:
                logger.error(f"Redis session read failed, using memory: {e}")
                data = self._read_fallback(full_key)
        else:
            data = self._read_fallback(full_key)

        if data is None:
            return None

        record = self._codec.loads(data)
        if record.is_expired(self._clock()):
            logger.debug(f"Session {mask_session_id(token)} expired")
            await self.destroy_session(token)
            return None

        return record

    async def destroy_session(self, token: Optional[str]) -> None:
        """Delete a session. Deleting an unknown token is a no-op."""
        if not token:
            return

        full_key = self._key(token)

        client = self._remote()
        if client is not None:
            try:
                await self._execute("destroy", client.delete(full_key))
            except StoreConnectionError as e:
                logger.error(f"Redis session delete failed: {e}")

        if self._fallback.delete(full_key):
            logger.debug(f"Removed session {mask_session_id(token)} from memory")
        self._record_fallback("destroy")

    async def active_session_count(self) -> int:
        client = self._remote()
        if client is not None:
            try:
                return len(await self._scan(client, self._prefix + "*"))
            except StoreConnectionError as e:
                logger.error(f"Redis session count failed, using memory: {e}")

        return self.fallback_size

    def _read_fallback(self, full_key: str) -> Optional[str]:
        self._record_fallback("validate")
        return self._fallback.get(full_key)
