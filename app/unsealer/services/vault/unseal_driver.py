from typing import Sequence

from unsealer.errors import (
    AuthError, KeyFetchError, PartialUnsealError, ProtocolError, UnreachableError, UnsealerError,
)
from unsealer.logger import get_logger
from unsealer.models import FailureReason, Outcome, ReconcileResult, SealStatus
from .key_source import KeySourceClient
from .seal_probe import SealStateProber, parse_seal_status
from .transport import VaultTransport, translate_errors

log = get_logger("UnsealDriver")

# Falls der Node keinen Threshold meldet
DEFAULT_THRESHOLD = 3


def _failure_reason(error: UnsealerError) -> FailureReason:
    if isinstance(error, UnreachableError):
        return FailureReason.UNREACHABLE
    if isinstance(error, (AuthError, KeyFetchError)):
        return FailureReason.KEY_FETCH
    return FailureReason.PROTOCOL


class UnsealDriver:
    """Prüft einen Node und entsperrt ihn bei Bedarf mit frischen Keys vom Primary."""

    def __init__(self, prober: SealStateProber, key_source: KeySourceClient, transport: VaultTransport):
        self.prober = prober
        self.key_source = key_source
        self.transport = transport

    def reconcile(self, target: str) -> ReconcileResult:
        log.info(f"Prüfe Seal-Status von {target}...")
        try:
            status = self.prober.probe(target)
        except (UnreachableError, ProtocolError) as e:
            log.error(f"❌ Seal-Status von {target} nicht abrufbar: {e}")
            return ReconcileResult(target=target, outcome=Outcome.FAILED,
                                   reason=_failure_reason(e), detail=str(e))

        if not status.sealed:
            log.info(f"✔️ Vault {target} ist bereits entsperrt.")
            return ReconcileResult(target=target, outcome=Outcome.ALREADY_UNSEALED,
                                   progress=status.progress, threshold=status.threshold)

        log.warning(f"🔒 Vault {target} ist VERSIEGELT. Starte Unseal...")
        try:
            keys = self.key_source.fetch_unseal_keys()
        except (AuthError, KeyFetchError) as e:
            log.error(f"❌ Unseal-Keys für {target} nicht verfügbar: {e}")
            return ReconcileResult(target=target, outcome=Outcome.FAILED, reason=FailureReason.KEY_FETCH,
                                   detail=str(e), progress=status.progress, threshold=status.threshold)

        try:
            return self._submit_shares(target, status, keys)
        except PartialUnsealError as e:
            log.warning(f"⚠️ {e} Nächster Poll-Zyklus versucht es erneut.")
            return ReconcileResult(target=target, outcome=Outcome.PARTIALLY_SUBMITTED, detail=e.message,
                                   submitted=e.submitted, progress=e.progress, threshold=e.threshold)

    def _submit_shares(self, target: str, status: SealStatus, keys: Sequence[str]) -> ReconcileResult:
        # Reihenfolge wie vom Primary geliefert, nie sortieren, nie parallel
        threshold = status.threshold or DEFAULT_THRESHOLD
        shares = list(keys)[:threshold]

        client = self.transport.client(target)
        submitted = 0
        last = status
        for key in shares:
            log.info(f"Sende Unseal-Key {submitted + 1}/{len(shares)} an {target}...")
            try:
                with translate_errors(target, "unseal"):
                    response = client.sys.submit_unseal_key(key=key)
                last = parse_seal_status(target, "unseal", response)
            except (UnreachableError, ProtocolError) as e:
                log.error(f"❌ Unseal von {target} abgebrochen nach {submitted} Keys: {e}")
                return ReconcileResult(target=target, outcome=Outcome.FAILED, reason=_failure_reason(e),
                                       detail=str(e), submitted=submitted,
                                       progress=last.progress, threshold=last.threshold)
            submitted += 1

            if not last.sealed:
                log.info(f"✅ Vault {target} ist jetzt ENTSPERRT.")
                return ReconcileResult(target=target, outcome=Outcome.UNSEALED, submitted=submitted,
                                       progress=last.progress, threshold=last.threshold)
            log.info(f"Unseal-Fortschritt {target}: {last.progress}/{last.threshold}")

        raise PartialUnsealError(
            f"Vault {target} nach {submitted} Keys noch versiegelt ({last.progress}/{last.threshold}).",
            target=target, submitted=submitted, progress=last.progress, threshold=last.threshold,
        )
