"""
session.py
----------
Configuración de la conexión asíncrona a PostgreSQL.

Provee:
  - engine: motor SQLAlchemy async con pool configurado
  - AsyncSessionLocal: fábrica de sesiones (la usa el LedgerRepository)
  - init_db: crea tablas en desarrollo
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from guardian.core.config import settings

# asyncpg no acepta sslmode en la URL
db_url = settings.DATABASE_URL
if "?sslmode=" in db_url:
    db_url = db_url.split("?sslmode=")[0]

engine = create_async_engine(
    db_url,
    echo          = settings.DEBUG,
    pool_pre_ping = True,
    pool_size     = 10,
    max_overflow  = 20,
)

AsyncSessionLocal = async_sessionmaker(
    bind             = engine,
    class_           = AsyncSession,
    expire_on_commit = False,
    autoflush        = False,
)


async def init_db() -> None:
    """
    Crea todas las tablas definidas en models.py.
    Solo en desarrollo (DEBUG=True); en producción las crea el equipo de plataforma.
    """
    from guardian.domain.models import Base
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
