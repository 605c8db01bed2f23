"""
exceptions.py
-------------
Excepciones del motor de riesgo GuardianAI.

Todas heredan de GuardianException para poder capturarlas en un solo
handler global en main.py.

Política de propagación:
  - InvalidTransactionException es la ÚNICA que llega al caller.
  - Las de señal se registran en el SignalResult y las absorbe el dispatcher.
  - OrchestratorDeadlineExceeded y cualquier error inesperado los absorbe
    el FailsafeController → respuesta degradada con failsafe=True.
  - Las de infraestructura solo se loguean.
"""


class GuardianException(Exception):
    """Base de todas las excepciones del motor."""
    status_code: int = 500
    message: str = "Error interno del motor de riesgo."

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


# ─────────────────────────────────────────────────────────────────────
# Errores de validación
# ─────────────────────────────────────────────────────────────────────

class InvalidTransactionException(GuardianException):
    """La transacción no cumple el esquema o sus invariantes."""
    status_code = 422
    message = "Solicitud de transacción inválida."

    def __init__(self, message: str | None = None, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


# ─────────────────────────────────────────────────────────────────────
# Errores de señales (se recuperan localmente en el dispatcher)
# ─────────────────────────────────────────────────────────────────────

class SignalTimeoutException(GuardianException):
    """Una señal superó su timeout individual."""
    status_code = 504
    message = "La señal no respondió a tiempo."

    def __init__(self, signal_name: str, timeout_s: float):
        super().__init__(f"Señal '{signal_name}' excedió {timeout_s * 1000:.0f}ms")
        self.signal_name = signal_name
        self.timeout_s = timeout_s


class SignalFailureException(GuardianException):
    """Una señal lanzó una excepción durante el scoring."""
    status_code = 500
    message = "La señal falló."

    def __init__(self, signal_name: str, cause: BaseException):
        super().__init__(f"Señal '{signal_name}' falló: {cause!r}")
        self.signal_name = signal_name
        self.cause = cause


# ─────────────────────────────────────────────────────────────────────
# Errores del pipeline (se recuperan vía FailsafeController)
# ─────────────────────────────────────────────────────────────────────

class OrchestratorDeadlineExceeded(GuardianException):
    """El pipeline completo superó el deadline global."""
    status_code = 504
    message = "El análisis superó el deadline global."

    def __init__(self, elapsed_ms: float, deadline_ms: float):
        super().__init__(
            f"Pipeline tardó {elapsed_ms:.1f}ms (deadline {deadline_ms:.0f}ms)"
        )
        self.elapsed_ms = elapsed_ms
        self.deadline_ms = deadline_ms


# ─────────────────────────────────────────────────────────────────────
# Errores de infraestructura
# ─────────────────────────────────────────────────────────────────────

class RedisUnavailableException(GuardianException):
    """Redis no está disponible. El motor opera con perfiles por defecto."""
    status_code = 503
    message = "Servicio temporalmente no disponible. Intenta en unos momentos."


class LedgerWriteException(GuardianException):
    """No se pudo persistir un registro en el ledger."""
    status_code = 500
    message = "Error al escribir en el ledger de decisiones."
