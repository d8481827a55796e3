from typing import Tuple

from unsealer.config import UnsealerConfig
from unsealer.errors import AuthError, KeyFetchError
from unsealer.logger import get_logger
from .credentials import FileCredentialProvider
from .transport import VaultTransport, translate_errors

log = get_logger("KeySource")


class KeySourceClient:
    """
    Holt die Unseal-Keys vom Primary-Vault.
    Jeder Abruf macht einen frischen Login, es wird nichts gecacht.
    """

    def __init__(self, config: UnsealerConfig, transport: VaultTransport, credentials: FileCredentialProvider):
        self.primary_addr = config.primary_vault_addr
        self.role = config.k8s_auth_role
        self.auth_mount = config.k8s_auth_mount
        self.namespace = config.vault_namespace
        self.keys_path = config.unseal_keys_path.lstrip("/")
        self.transport = transport
        self.credentials = credentials

    def login(self) -> str:
        """Kubernetes-Auth am Primary, liefert ein Client-Token."""
        log.info("🔐 Login am Primary-Vault...")
        jwt = self.credentials.read_token()

        client = self.transport.client(self.primary_addr)
        with translate_errors(self.primary_addr, "login", unreachable=AuthError, protocol=AuthError):
            # use_token=False: Token selbst prüfen statt KeyError aus hvac
            response = client.auth.kubernetes.login(
                role=self.role, jwt=jwt, use_token=False, mount_point=self.auth_mount
            )

        token = None
        if isinstance(response, dict):
            token = (response.get("auth") or {}).get("client_token")
        if not token:
            raise AuthError("Kein client_token in der Login-Antwort.", target=self.primary_addr, stage="login")

        log.info("✅ Login am Primary-Vault erfolgreich.")
        return token

    def fetch_unseal_keys(self) -> Tuple[str, ...]:
        token = self.login()

        log.info("🔑 Lade Unseal-Keys...")
        client = self.transport.client(self.primary_addr, token=token, namespace=self.namespace)
        with translate_errors(self.primary_addr, "fetch_keys", unreachable=KeyFetchError, protocol=KeyFetchError):
            response = client.read(self.keys_path)

        # KV v2: die eigentlichen Werte liegen unter data.data
        try:
            keys = response["data"]["data"]
        except (KeyError, TypeError):
            raise KeyFetchError(
                f"Keine Unseal-Keys unter '{self.keys_path}' gefunden (Pfad falsch?).",
                target=self.primary_addr, stage="fetch_keys",
            ) from None

        if not isinstance(keys, dict) or not keys:
            raise KeyFetchError(
                f"Keine Unseal-Keys unter '{self.keys_path}' gefunden (Pfad falsch?).",
                target=self.primary_addr, stage="fetch_keys",
            )

        values = tuple(keys.values())
        if not all(isinstance(v, str) and v for v in values):
            raise KeyFetchError("Unseal-Keys enthalten leere oder nicht-String Werte.",
                                target=self.primary_addr, stage="fetch_keys")

        log.info(f"✅ {len(values)} Unseal-Keys geladen.")
        return values
