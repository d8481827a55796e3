from typing import Optional


class UnsealerError(Exception):
    """Basisklasse. Trägt Ziel-Adresse und Phase für das Logging mit."""

    def __init__(self, message: str, target: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.target = target
        self.stage = stage

    def __str__(self):
        parts = [p for p in (self.target, self.stage) if p]
        if parts:
            return f"[{' / '.join(parts)}] {self.message}"
        return self.message


class ConfigError(UnsealerError):
    pass


class AuthError(UnsealerError):
    """Credential nicht lesbar oder Login am Primary abgelehnt."""


class KeyFetchError(UnsealerError):
    """Keine oder kaputte Unseal-Keys am konfigurierten KV-Pfad."""


class UnreachableError(UnsealerError):
    pass


class ProtocolError(UnsealerError):
    """Unerwarteter HTTP-Status oder unerwartete Antwortstruktur."""


class PartialUnsealError(UnsealerError):
    """Alle Shares eingereicht, Node ist trotzdem noch versiegelt."""

    def __init__(self, message: str, target: Optional[str] = None, submitted: int = 0,
                 progress: int = 0, threshold: Optional[int] = None):
        super().__init__(message, target=target, stage="unseal")
        self.submitted = submitted
        self.progress = progress
        self.threshold = threshold
