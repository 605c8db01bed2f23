from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Configuracion general
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str

    # PostgreSQL (ledger de decisiones)
    DATABASE_URL: str

    # Redis (perfiles de usuario)
    REDIS_URL: str

    # HMAC para firma de respuestas del motor
    GUARDIAN_HMAC_SECRET: str = "dev-secret-change-in-production"

    # CORS: lista de orígenes permitidos separados por coma en el .env
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Presupuestos de latencia (milisegundos)
    RISK_DEADLINE_MS:   int = 200   # deadline global para una respuesta normal
    FAILSAFE_BUDGET_MS: int = 50    # techo del camino failsafe
    SIGNAL_TIMEOUT_MS:  int = 150   # timeout individual de cada señal

    # Umbrales de decisión sobre el score compuesto [0, 1]
    MEDIUM_THRESHOLD:   float = 0.40
    CRITICAL_THRESHOLD: float = 0.70

    # Caché de perfiles en memoria
    PROFILE_CACHE_TTL_SEC: float = 30.0

    # Monto absoluto a partir del cual la señal de monto penaliza siempre
    HIGH_AMOUNT_LIMIT: float = 10_000.0

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Permite definir ALLOWED_ORIGINS como string separado por comas en .env"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @model_validator(mode="after")
    def check_thresholds(self):
        if not 0.0 < self.MEDIUM_THRESHOLD < self.CRITICAL_THRESHOLD <= 1.0:
            raise ValueError(
                "Se requiere 0 < MEDIUM_THRESHOLD < CRITICAL_THRESHOLD <= 1"
            )
        if self.SIGNAL_TIMEOUT_MS > self.RISK_DEADLINE_MS:
            raise ValueError("SIGNAL_TIMEOUT_MS no puede superar RISK_DEADLINE_MS")
        return self

    model_config = SettingsConfigDict(
        env_file          = ".env",
        env_file_encoding = "utf-8",
        case_sensitive    = True,
        extra             = "ignore",
    )


settings = Settings()
