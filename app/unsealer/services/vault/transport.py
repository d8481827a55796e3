from contextlib import contextmanager
from typing import Optional, Type

import hvac
import requests
import urllib3

from unsealer.config import UnsealerConfig
from unsealer.errors import ProtocolError, UnreachableError, UnsealerError
from unsealer.logger import get_logger

log = get_logger("VaultTransport")


class VaultTransport:
    """
    Baut hvac-Clients für eine Adresse. TLS-Policy und Timeout kommen aus der
    Konfiguration, damit kein Service selbst einen Client zusammenstecken muss.
    """

    def __init__(self, verify_tls: bool = True, timeout: float = 30.0):
        self.verify_tls = verify_tls
        self.timeout = timeout
        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_config(cls, config: UnsealerConfig) -> "VaultTransport":
        return cls(verify_tls=not config.insecure_tls, timeout=config.request_timeout_s)

    def client(self, url: str, token: Optional[str] = None, namespace: Optional[str] = None) -> hvac.Client:
        # Pro Aufruf ein frischer Client, Tokens werden nie wiederverwendet.
        # None würde hvac auf VAULT_TOKEN / ~/.vault-token bzw. VAULT_NAMESPACE
        # zurückfallen lassen, "" sendet keinen Header.
        return hvac.Client(
            url=url,
            token=token or "",
            verify=self.verify_tls,
            timeout=self.timeout,
            namespace=namespace or "",
        )


@contextmanager
def translate_errors(target: str, stage: str,
                     unreachable: Type[UnsealerError] = UnreachableError,
                     protocol: Type[UnsealerError] = ProtocolError):
    """Übersetzt requests/hvac-Fehler in die Fehlerklassen des Unsealers."""
    try:
        yield
    except UnsealerError:
        raise
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
        log.debug(f"Transportfehler bei {target} ({stage}): {e}")
        raise unreachable(f"Nicht erreichbar: {e}", target=target, stage=stage) from e
    except hvac.exceptions.VaultError as e:
        raise protocol(f"Vault-Fehler: {e}", target=target, stage=stage) from e
    except requests.exceptions.RequestException as e:
        raise protocol(f"HTTP-Fehler: {e}", target=target, stage=stage) from e
    except ValueError as e:
        # Kaputtes JSON im Body
        raise protocol(f"Ungültige Antwort: {e}", target=target, stage=stage) from e
