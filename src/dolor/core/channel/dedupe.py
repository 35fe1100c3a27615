"""At-most-once claim for inbound chat updates."""

from __future__ import annotations

import logging

from ...infra.errors import BackingStoreUnavailable
from ...infra.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class UpdateDedupeGuard:
    """Cross-process idempotency token per inbound update id.

    One create-if-absent write with expiry per claim. When the store cannot be
    reached the claim succeeds anyway: a possible duplicate turn during an
    outage is preferred over dropping the user's message.
    """

    KEY_PREFIX = "telegram:update:"
    DEFAULT_TTL_SECONDS = 600

    def __init__(self, kv: KeyValueStore, *, ttl_seconds: int = DEFAULT_TTL_SECONDS, key_prefix: str = KEY_PREFIX):
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def key_for(self, update_id) -> str:
        return f"{self.key_prefix}{update_id}"

    async def claim(self, update_id) -> bool:
        """True the first time *update_id* is seen within the TTL window."""
        try:
            claimed = await self._kv.set(
                self.key_for(update_id),
                "1",
                ttl_seconds=self.ttl_seconds,
                only_if_absent=True,
            )
        except BackingStoreUnavailable as e:
            logger.warning("Failed to claim update %s; proceeding without dedupe: %s", update_id, e)
            return True
        if not claimed:
            logger.info("Duplicate update %s dropped", update_id)
        return claimed
