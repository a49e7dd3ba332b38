# storefront/app/services/presence.py
"""
Presence tracker: per-user online / last-seen state with a sliding TTL.

Expiry is driven by ONE reaper loop that removes every record whose
lastSeen is older than the TTL. Refreshing a record just moves lastSeen
forward, so a refresh can never be undone by an older expiry.

Backends:
 - RedisPresenceStore: JSON value per user + a sorted-set index scored by
   lastSeen; the reaper runs as a Lua script so the stale scan and the
   delete are atomic against a concurrent refresh.
 - MemoryPresenceStore: single-process dict.
"""
import asyncio
import json
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol

import redis.asyncio as redis

from storefront.app.config import settings
from storefront.app.exceptions import SchedulerFault
from storefront.app.schemas.events import PresenceRecord, PresenceStatus
from storefront.app.services.realtime.metrics import PRESENCE_ONLINE_USERS, REALTIME_SCHEDULER_FAULTS_TOTAL

logger = logging.getLogger(__name__)


class PresenceStore(Protocol):
    async def upsert(self, record: PresenceRecord) -> None: ...

    async def get(self, user_id: str) -> Optional[PresenceRecord]: ...

    async def remove(self, user_id: str) -> None: ...

    async def remove_stale(self, cutoff: float) -> List[str]: ...

    async def count_since(self, cutoff: float) -> int: ...

    async def close(self) -> None: ...


# -----------------------------------------------------
# In-memory backend
# -----------------------------------------------------
class MemoryPresenceStore:
    def __init__(self):
        self.records: Dict[str, PresenceRecord] = {}

    async def upsert(self, record: PresenceRecord) -> None:
        self.records[record.userId] = record

    async def get(self, user_id: str) -> Optional[PresenceRecord]:
        return self.records.get(user_id)

    async def remove(self, user_id: str) -> None:
        self.records.pop(user_id, None)

    async def remove_stale(self, cutoff: float) -> List[str]:
        stale = [uid for uid, r in self.records.items() if r.lastSeen < cutoff]
        for uid in stale:
            del self.records[uid]
        return stale

    async def count_since(self, cutoff: float) -> int:
        return sum(1 for r in self.records.values() if r.lastSeen >= cutoff)

    async def close(self) -> None:
        self.records.clear()


# -----------------------------------------------------
# Redis backend
# -----------------------------------------------------
_REAP_LUA = """
local index = KEYS[1]
local prefix = ARGV[1]
local cutoff = ARGV[2]

local stale = redis.call('ZRANGEBYSCORE', index, '-inf', '(' .. cutoff)
for _, uid in ipairs(stale) do
  redis.call('DEL', prefix .. uid)
  redis.call('ZREM', index, uid)
end
return stale
"""


class RedisPresenceStore:
    KEY_PREFIX = "presence:user:"
    INDEX_KEY = "presence:last_seen"

    def __init__(self, url: str = settings.REDIS_URL, client: Optional[redis.Redis] = None):
        self.redis = client or redis.from_url(url, decode_responses=True, encoding="utf-8")

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def upsert(self, record: PresenceRecord) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(record.userId), record.model_dump_json())
            pipe.zadd(self.INDEX_KEY, {record.userId: record.lastSeen})
            await pipe.execute()

    async def get(self, user_id: str) -> Optional[PresenceRecord]:
        raw = await self.redis.get(self._key(user_id))
        if raw is None:
            return None
        return PresenceRecord.model_validate(json.loads(raw))

    async def remove(self, user_id: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(user_id))
            pipe.zrem(self.INDEX_KEY, user_id)
            await pipe.execute()

    async def remove_stale(self, cutoff: float) -> List[str]:
        res = await self.redis.eval(_REAP_LUA, 1, self.INDEX_KEY, self.KEY_PREFIX, repr(cutoff))
        return list(res or [])

    async def count_since(self, cutoff: float) -> int:
        return int(await self.redis.zcount(self.INDEX_KEY, cutoff, "+inf"))

    async def close(self) -> None:
        await self.redis.aclose()


def make_presence_store(backend: str = settings.PRESENCE_BACKEND) -> PresenceStore:
    if backend == "memory":
        return MemoryPresenceStore()
    if backend == "redis":
        return RedisPresenceStore(settings.REDIS_URL)
    raise ValueError(f"unknown presence backend: {backend}")


# -----------------------------------------------------
# Tracker
# -----------------------------------------------------
class PresenceTracker:
    def __init__(self, store: PresenceStore,
                 ttl: float = settings.PRESENCE_TTL_SECONDS,
                 reap_interval: float = settings.PRESENCE_REAP_INTERVAL_SECONDS,
                 clock: Callable[[], float] = time.time,
                 sleep=asyncio.sleep):
        self.store = store
        self.ttl = ttl
        self.reap_interval = reap_interval
        self.clock = clock
        self._sleep = sleep
        self._reaper: Optional[asyncio.Task] = None

    def _cutoff(self) -> float:
        return self.clock() - self.ttl

    async def set_presence(self, user_id: str, status: str = PresenceStatus.ONLINE.value,
                           page: Optional[str] = None, user_agent: Optional[str] = None) -> PresenceRecord:
        record = PresenceRecord(
            userId=str(user_id),
            status=PresenceStatus(status),
            currentPage=page,
            lastSeen=self.clock(),
            userAgent=user_agent or "Unknown",
        )
        await self.store.upsert(record)
        return record

    async def get_presence(self, user_id: str) -> Optional[PresenceRecord]:
        record = await self.store.get(str(user_id))
        if record is None or record.lastSeen < self._cutoff():
            return None
        return record

    async def remove(self, user_id: str) -> None:
        await self.store.remove(str(user_id))

    async def get_online_count(self) -> int:
        count = await self.store.count_since(self._cutoff())
        PRESENCE_ONLINE_USERS.set(count)
        return count

    async def reap(self) -> List[str]:
        expired = await self.store.remove_stale(self._cutoff())
        if expired:
            logger.info("presence expired for %d user(s)", len(expired))
        return expired

    # -----------------------------
    # REAPER LOOP
    # -----------------------------
    def start_reaper(self) -> None:
        if self._reaper is None:
            self._reaper = asyncio.create_task(self._reap_loop(), name="presence-reaper")

    async def _reap_loop(self) -> None:
        while True:
            await self._sleep(self.reap_interval)
            try:
                await self.reap()
                await self.get_online_count()
            except Exception as e:
                REALTIME_SCHEDULER_FAULTS_TOTAL.labels(loop="presence-reaper").inc()
                logger.exception("%s", SchedulerFault("presence-reaper", e))

    async def stop(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None
        await self.store.close()
