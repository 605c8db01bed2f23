"""
redis_client.py
---------------
Cliente Redis del motor de riesgo GuardianAI.

  - Pool de conexiones con parámetros explícitos para alto volumen
  - Health check al conectar: falla rápido si Redis no está disponible
  - Retry automático con backoff exponencial (3 intentos antes de fallar)
  - socket_timeout corto: una lectura de perfil nunca debe comerse
    el deadline global del análisis
  - decode_responses=False: los módulos manejan bytes/str explícitamente

Se conecta y desconecta desde el lifespan de FastAPI (guardian/main.py).
"""

import asyncio
import logging

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import BusyLoadingError, ConnectionError, TimeoutError

from guardian.core.config import settings
from guardian.core.exceptions import RedisUnavailableException

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Gestor del cliente Redis con reconexión automática y health check.

    Parámetros del pool:
      max_connections=200        → coroutines simultáneas esperando conexión
      socket_timeout=0.1         → máx 100ms por operación; por encima de eso
                                   el perfil llega tarde para el deadline
      socket_connect_timeout=2.0 → más generoso que el timeout de operación
      health_check_interval=30   → verificación interna de conexiones del pool
    """

    def __init__(self):
        self.client: redis.Redis | None = None
        self._connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self.client is not None

    def require_client(self) -> redis.Redis:
        """Retorna el cliente activo o lanza RedisUnavailableException."""
        if not self.is_connected:
            raise RedisUnavailableException()
        return self.client

    async def connect(self) -> None:
        """
        Inicializa el pool de conexiones y verifica que Redis responda.
        Lanza excepción si Redis no está disponible al arrancar.
        """
        logger.info(f"[Redis] Conectando a {settings.REDIS_URL} ...")

        retry = Retry(
            backoff          = ExponentialBackoff(cap=0.5, base=0.05),
            retries          = 3,
            supported_errors = (ConnectionError, TimeoutError, BusyLoadingError),
        )

        self.client = redis.Redis.from_url(
            settings.REDIS_URL,
            max_connections        = 200,
            socket_timeout         = 0.1,
            socket_connect_timeout = 2.0,
            socket_keepalive       = True,
            health_check_interval  = 30,
            retry                  = retry,
            retry_on_timeout       = True,
            decode_responses       = False,
        )

        await self._health_check(raise_on_fail=True)
        self._connected = True
        logger.info("[Redis] Conexión establecida y verificada")

    async def disconnect(self) -> None:
        """Cierra todas las conexiones del pool limpiamente."""
        if self.client:
            try:
                await self.client.aclose()
                self._connected = False
                logger.info("[Redis] Conexiones cerradas correctamente")
            except Exception as e:
                logger.error(f"[Redis] Error al cerrar conexiones: {e}")

    async def _health_check(self, raise_on_fail: bool = False) -> bool:
        """
        Envía un PING a Redis y verifica la respuesta.

        raise_on_fail=True  → lanza excepción (usar en startup)
        raise_on_fail=False → retorna bool (usar en /health)
        """
        try:
            response = await asyncio.wait_for(self.client.ping(), timeout=2.0)
            if response:
                return True
            raise ConnectionError("Redis PING retornó False")

        except asyncio.TimeoutError:
            msg = "[Redis] Health check timeout — Redis no responde en 2s"
            logger.error(msg)
            if raise_on_fail:
                raise ConnectionError(msg)
            return False

        except Exception as e:
            logger.error(f"[Redis] Health check falló: {e}")
            if raise_on_fail:
                raise
            return False

    async def ping(self) -> bool:
        """Health check público para el endpoint /health."""
        if not self.client:
            return False
        return await self._health_check(raise_on_fail=False)


# Singleton
redis_manager = RedisManager()
