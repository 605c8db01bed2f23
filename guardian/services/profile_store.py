"""
profile_store.py
----------------
Perfil histórico de comportamiento de cada usuario, persistido en Redis.

El orquestador SOLO LEE el perfil durante el análisis (get). La escritura
(record_transaction) ocurre en background, después de entregar la
respuesta, y solo para transacciones permitidas.

Estructura de keys en Redis:
  profile:user:{user_id}
    → JSON con los campos de UserProfile
    → TTL: 90 días (se refresca con cada escritura)

Principio de diseño:
  - get() nunca falla: usuario nuevo, JSON corrupto o Redis caído
    → perfil por defecto con valores neutros de población
  - record_transaction() NO usa get(): si la lectura falla se omite la
    escritura, nunca se pisa un historial con un perfil vacío
  - Read-modify-write atómico con WATCH/MULTI: dos escrituras
    concurrentes del mismo usuario no pierden actualizaciones
  - El perfil se entrega como snapshot inmutable (frozen dataclass):
    el caché y los extractores nunca ven una mutación a medias
"""

import json
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from guardian.infrastructure.cache.redis_client import redis_manager

logger = logging.getLogger(__name__)

PROFILE_TTL_SEC      = 60 * 60 * 24 * 90
MAX_KNOWN_DEVICES    = 20
MAX_KNOWN_RECEIVERS  = 200
MAX_WRITE_RETRIES    = 3


@dataclass(frozen=True)
class UserProfile:
    """
    Snapshot del comportamiento histórico de un usuario.
    Los defaults son los valores neutros para un usuario sin historial.
    """
    user_id:              str
    avg_amount:           float          = 0.0
    std_amount:           float          = 0.0
    typical_hours:        frozenset[int] = field(default_factory=frozenset)
    known_devices:        frozenset[str] = field(default_factory=frozenset)
    known_receivers:      frozenset[str] = field(default_factory=frozenset)
    primary_currency:     Optional[str]  = None
    home_country:         Optional[str]  = None
    first_seen_ts:        float          = 0.0
    tx_count:             int            = 0
    last_transaction_ts:  float          = 0.0
    typical_typing_speed: float          = 0.0

    @property
    def has_history(self) -> bool:
        return self.tx_count > 0

    def age_days(self, at_ts: float) -> float:
        """Días desde la primera transacción registrada. 0 sin historial."""
        if self.first_seen_ts <= 0:
            return 0.0
        return max(0.0, (at_ts - self.first_seen_ts) / 86400)

    def to_json(self) -> str:
        return json.dumps({
            "avg_amount":           self.avg_amount,
            "std_amount":           self.std_amount,
            "typical_hours":        sorted(self.typical_hours),
            "known_devices":        sorted(self.known_devices),
            "known_receivers":      sorted(self.known_receivers),
            "primary_currency":     self.primary_currency,
            "home_country":         self.home_country,
            "first_seen_ts":        self.first_seen_ts,
            "tx_count":             self.tx_count,
            "last_transaction_ts":  self.last_transaction_ts,
            "typical_typing_speed": self.typical_typing_speed,
        })

    @classmethod
    def from_json(cls, user_id: str, raw: bytes | str) -> "UserProfile":
        data = json.loads(raw)
        return cls(
            user_id              = user_id,
            avg_amount           = float(data.get("avg_amount", 0.0)),
            std_amount           = float(data.get("std_amount", 0.0)),
            typical_hours        = frozenset(int(h) for h in data.get("typical_hours", [])),
            known_devices        = frozenset(data.get("known_devices", [])),
            known_receivers      = frozenset(data.get("known_receivers", [])),
            primary_currency     = data.get("primary_currency"),
            home_country         = data.get("home_country"),
            first_seen_ts        = float(data.get("first_seen_ts", 0.0)),
            tx_count             = int(data.get("tx_count", 0)),
            last_transaction_ts  = float(data.get("last_transaction_ts", 0.0)),
            typical_typing_speed = float(data.get("typical_typing_speed", 0.0)),
        )


class ProfileStore:
    """
    Lee y actualiza perfiles de usuario en Redis.

    Si no se inyecta un cliente se usa el del RedisManager global,
    resuelto en cada llamada (el pool se crea en el lifespan de la app).
    """

    PROFILE_KEY = "profile:user:{user_id}"

    def __init__(self, redis_client: Optional[Redis] = None):
        self._redis = redis_client

    @property
    def redis(self) -> Redis:
        return self._redis or redis_manager.require_client()

    # ------------------------------------------------------------------ #
    #  Lectura, dentro del pipeline de análisis                          #
    # ------------------------------------------------------------------ #

    async def get(self, user_id: str) -> UserProfile:
        """Retorna el perfil del usuario o uno por defecto. Nunca lanza."""
        key = self.PROFILE_KEY.format(user_id=user_id)
        try:
            return self._parse(user_id, await self.redis.get(key))
        except Exception as e:
            logger.error(f"[ProfileStore] Error leyendo perfil user={user_id}: {e}")
            return UserProfile(user_id=user_id)

    # ------------------------------------------------------------------ #
    #  Escritura, solo desde tareas en background                        #
    # ------------------------------------------------------------------ #

    async def record_transaction(
        self,
        user_id:      str,
        amount:       float,
        currency:     str,
        hour:         int,
        timestamp:    float,
        device_id:    Optional[str] = None,
        receiver_id:  Optional[str] = None,
        country:      Optional[str] = None,
        typing_speed: Optional[float] = None,
    ) -> Optional[UserProfile]:
        """
        Incorpora una transacción permitida al perfil del usuario.

        Media y desviación estándar se actualizan de forma incremental
        (Welford) sin guardar el historial completo.

        La lectura va dentro de WATCH: si otro writer toca la key antes
        del EXEC, la transacción se aborta (WatchError) y se reintenta
        sobre el perfil nuevo, hasta MAX_WRITE_RETRIES veces.

        Retorna el perfil actualizado, o None si Redis falló o se
        agotaron los reintentos. En ese caso el perfil guardado queda intacto.
        """
        key = self.PROFILE_KEY.format(user_id=user_id)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, MAX_WRITE_RETRIES + 1):
                    try:
                        await pipe.watch(key)
                        current = self._parse(user_id, await pipe.get(key))
                        updated = self.apply_transaction(
                            current,
                            amount       = amount,
                            currency     = currency,
                            hour         = hour,
                            timestamp    = timestamp,
                            device_id    = device_id,
                            receiver_id  = receiver_id,
                            country      = country,
                            typing_speed = typing_speed,
                        )
                        pipe.multi()
                        pipe.setex(key, PROFILE_TTL_SEC, updated.to_json())
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.warning(
                            f"[ProfileStore] Escritura concurrente user={user_id} "
                            f"(intento {attempt}/{MAX_WRITE_RETRIES})"
                        )
        except Exception as e:
            logger.error(f"[ProfileStore] Error actualizando perfil user={user_id}: {e}")
            return None

        logger.error(
            f"[ProfileStore] Perfil user={user_id} sin actualizar tras "
            f"{MAX_WRITE_RETRIES} intentos"
        )
        return None

    @staticmethod
    def _parse(user_id: str, raw: Optional[bytes]) -> UserProfile:
        if not raw:
            return UserProfile(user_id=user_id)
        try:
            return UserProfile.from_json(user_id, raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"[ProfileStore] Perfil corrupto user={user_id}, se reinicia: {e}")
            return UserProfile(user_id=user_id)

    @staticmethod
    def apply_transaction(
        profile:      UserProfile,
        amount:       float,
        currency:     str,
        hour:         int,
        timestamp:    float,
        device_id:    Optional[str] = None,
        receiver_id:  Optional[str] = None,
        country:      Optional[str] = None,
        typing_speed: Optional[float] = None,
    ) -> UserProfile:
        """Calcula el nuevo snapshot sin tocar Redis."""
        n     = profile.tx_count + 1
        delta = amount - profile.avg_amount
        mean  = profile.avg_amount + delta / n
        m2    = (profile.std_amount ** 2) * profile.tx_count + delta * (amount - mean)
        std   = math.sqrt(max(m2, 0.0) / n)

        devices = set(profile.known_devices)
        if device_id and len(devices) < MAX_KNOWN_DEVICES:
            devices.add(device_id)

        receivers = set(profile.known_receivers)
        if receiver_id and len(receivers) < MAX_KNOWN_RECEIVERS:
            receivers.add(receiver_id)

        speed = profile.typical_typing_speed
        if typing_speed:
            speed = typing_speed if speed == 0 else speed + (typing_speed - speed) / n

        return replace(
            profile,
            avg_amount           = mean,
            std_amount           = std,
            typical_hours        = profile.typical_hours | {hour},
            known_devices        = frozenset(devices),
            known_receivers      = frozenset(receivers),
            primary_currency     = profile.primary_currency or currency,
            home_country         = profile.home_country or country,
            tx_count             = n,
            first_seen_ts        = (
                min(profile.first_seen_ts, timestamp) if profile.first_seen_ts else timestamp
            ),
            last_transaction_ts  = timestamp,
            typical_typing_speed = speed,
        )
