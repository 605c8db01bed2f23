"""
feature_cache.py
----------------
Caché en memoria de snapshots de perfil por usuario.

Disciplina de concurrencia:
  - Lectores: nunca toman lock. Leen una referencia a un snapshot
    inmutable; si está vigente se usa tal cual.
  - Escritor: un asyncio.Lock por usuario. Solo quien encuentra un miss
    carga el perfil; los demás requests del MISMO usuario esperan ese
    lock y reutilizan el resultado (single-flight).
  - Un escritor nunca bloquea lectores ni escritores de otro usuario.

Memoria acotada:
  - El lock de un usuario vive solo mientras alguien carga o espera.
  - Una entrada vencida se descarta en el primer miss que la encuentra.
  - Al llegar a max_entries se purgan las vencidas y, si no alcanza,
    las escritas hace más tiempo.

El snapshot se reemplaza completo (swap de referencia), nunca se muta.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from guardian.services.profile_store import UserProfile

logger = logging.getLogger(__name__)

ProfileLoader = Callable[[str], Awaitable[UserProfile]]


@dataclass(frozen=True)
class _CacheEntry:
    profile:    UserProfile
    expires_at: float


class FeatureCache:

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_entries: int = 100_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock   = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._locks:   dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def peek(self, user_id: str) -> Optional[UserProfile]:
        """Lectura sin lock. None si no hay entrada vigente."""
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            # Solo se descarta si nadie la reemplazó entretanto
            if self._entries.get(user_id) is entry:
                del self._entries[user_id]
            return None
        return entry.profile

    async def get_or_load(self, user_id: str, loader: ProfileLoader) -> UserProfile:
        cached = self.peek(user_id)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiting[user_id] = self._waiting.get(user_id, 0) + 1
        try:
            async with lock:
                # Otro request pudo haber cargado mientras esperábamos el lock
                cached = self.peek(user_id)
                if cached is not None:
                    return cached

                profile = await loader(user_id)
                self.put(profile)
                logger.debug(f"[FeatureCache] Miss user={user_id}, perfil cargado")
                return profile
        finally:
            remaining = self._waiting.get(user_id, 1) - 1
            if remaining > 0:
                self._waiting[user_id] = remaining
            else:
                self._waiting.pop(user_id, None)
                self._locks.pop(user_id, None)

    def put(self, profile: UserProfile) -> None:
        self._entries.pop(profile.user_id, None)
        if len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[profile.user_id] = _CacheEntry(
            profile    = profile,
            expires_at = self._clock() + self.ttl_seconds,
        )

    def _evict(self) -> None:
        now = self._clock()
        expired = [uid for uid, e in self._entries.items() if e.expires_at <= now]
        for user_id in expired:
            del self._entries[user_id]

        # dict conserva orden de inserción: las primeras son las más viejas
        while self._entries and len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]

        logger.debug(
            f"[FeatureCache] Purga: {len(expired)} vencidas, {len(self._entries)} vigentes"
        )

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()
        self._waiting.clear()

    def __len__(self) -> int:
        return len(self._entries)
