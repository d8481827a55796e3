import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unsealer.errors import ConfigError

DEFAULT_POLL_INTERVAL_MS = 30000


class UnsealerConfig(BaseModel):
    """Einmal beim Start gelesen, danach unveränderlich."""
    model_config = ConfigDict(frozen=True)

    primary_vault_addr: str = Field(default="https://vault.vault.svc.cluster.local:8200")
    target_vault_addrs: Tuple[str, ...] = Field(default_factory=tuple)
    poll_interval_ms: int = Field(default=DEFAULT_POLL_INTERVAL_MS, gt=0)
    k8s_auth_role: str = Field(default="auto-unsealer")
    k8s_auth_mount: str = Field(default="kubernetes")
    vault_namespace: str = Field(default="vault")
    unseal_keys_path: str = Field(default="kv/data/internal/config/unseal-keys")
    jwt_token_path: str = Field(default="/var/run/secrets/vault/token")
    insecure_tls: bool = False
    request_timeout_s: float = Field(default=30.0, gt=0)
    max_parallel_targets: int = Field(default=4, ge=1)
    debug: bool = False
    log_file: Optional[str] = None

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000


def _split_addrs(raw: str) -> Tuple[str, ...]:
    addrs = (part.strip().rstrip("/") for part in raw.split(","))
    return tuple(addr for addr in addrs if addr)


def _poll_interval(raw: Optional[str]) -> int:
    # Wie beim alten Node-Service: ungültig oder 0 -> Default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_POLL_INTERVAL_MS
    return value if value > 0 else DEFAULT_POLL_INTERVAL_MS


def _flag(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() == "true"


def load_config(env: Optional[Mapping[str, str]] = None) -> UnsealerConfig:
    """
    Liest die Konfiguration aus Umgebungsvariablen (.env / Docker / K8s).
    Nicht gesetzte Werte fallen auf die Defaults des Modells zurück.
    """
    if env is None:
        env = os.environ

    values = {
        "target_vault_addrs": _split_addrs(env.get("TARGET_VAULT_ADDRS", "")),
        "poll_interval_ms": _poll_interval(env.get("POLL_INTERVAL_MS")),
        "insecure_tls": _flag(env.get("INSECURE_TLS")),
        "debug": _flag(env.get("UNSEALER_DEBUG")),
    }

    plain = {
        "primary_vault_addr": "PRIMARY_VAULT_ADDR",
        "k8s_auth_role": "K8S_AUTH_ROLE",
        "k8s_auth_mount": "K8S_AUTH_MOUNT",
        "vault_namespace": "VAULT_NAMESPACE",
        "unseal_keys_path": "UNSEAL_KEYS_PATH",
        "jwt_token_path": "JWT_TOKEN_PATH",
        "request_timeout_s": "REQUEST_TIMEOUT_S",
        "max_parallel_targets": "MAX_PARALLEL_TARGETS",
        "log_file": "UNSEALER_LOG_FILE",
    }
    for field, var in plain.items():
        raw = env.get(var)
        if raw is not None and raw.strip():
            values[field] = raw.strip()

    if "primary_vault_addr" in values:
        values["primary_vault_addr"] = values["primary_vault_addr"].rstrip("/")

    try:
        return UnsealerConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Ungültige Konfiguration: {e}", stage="config") from e
