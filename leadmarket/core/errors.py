"""
Error taxonomy for the marketplace core.

Every error carries an HTTP status, a machine-readable code and a short
German message that is safe to show to end users. Internal details go to the
log, never into `message`.
"""
from typing import Optional


class MarketplaceError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "Ein unerwarteter Fehler ist aufgetreten."

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Malformed input."""
    status_code = 400
    code = "validation_error"
    default_message = "Ungültige Eingabe."


class AuthError(MarketplaceError):
    """Bad or missing credential (token, signature, ownership)."""
    status_code = 401
    code = "unauthorized"
    default_message = "Zugriff verweigert."

    def __init__(self, reason: str = "not_found", message: Optional[str] = None, *, status_code: int = 401):
        self.reason = reason
        self.status_code = status_code
        super().__init__(message or _AUTH_MESSAGES.get(reason, self.default_message), code=reason)


_AUTH_MESSAGES = {
    "expired": "Der Link ist abgelaufen.",
    "not_found": "Ungültiger oder bereits verwendeter Link.",
    "invalid_signature": "Ungültige Signatur.",
    "missing_signature": "Signatur fehlt.",
    "forbidden": "Keine Berechtigung für diese Aktion.",
}


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"
    default_message = "Nicht gefunden."


class ConflictError(MarketplaceError):
    """Lost a race or hit a uniqueness rule (e.g. proposal already decided)."""
    status_code = 409
    code = "conflict"
    default_message = "Bereits entschieden."


class QuotaExceededError(MarketplaceError):
    status_code = 429
    code = "quota_exceeded"
    default_message = "Ihr Offerten-Kontingent für diese Periode ist aufgebraucht."


class ProviderError(MarketplaceError):
    """Outbound provider (email, gateway) failure."""
    status_code = 502
    code = "provider_error"
    default_message = "Externer Dienst nicht erreichbar."


class TransientProviderError(ProviderError):
    """5xx or network failure; safe to retry."""
    code = "provider_transient"


class PermanentProviderError(ProviderError):
    """4xx; retrying will not help."""
    code = "provider_permanent"
