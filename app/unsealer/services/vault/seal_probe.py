from pydantic import ValidationError

from unsealer.errors import ProtocolError
from unsealer.logger import get_logger
from unsealer.models import SealStatus
from .transport import VaultTransport, translate_errors

log = get_logger("SealProbe")


def parse_seal_status(target: str, stage: str, response) -> SealStatus:
    if not isinstance(response, dict):
        raise ProtocolError(f"Unerwartete Antwort: {response!r}", target=target, stage=stage)
    try:
        return SealStatus.model_validate(response)
    except ValidationError as e:
        raise ProtocolError(f"Ungültiger Seal-Status: {e}", target=target, stage=stage) from e


class SealStateProber:
    def __init__(self, transport: VaultTransport):
        self.transport = transport

    def probe(self, target: str) -> SealStatus:
        """Unauthentifiziertes GET auf /v1/sys/seal-status."""
        client = self.transport.client(target)
        with translate_errors(target, "probe"):
            response = client.sys.read_seal_status()

        status = parse_seal_status(target, "probe", response)
        log.debug(f"Seal-Status {target}: sealed={status.sealed} progress={status.progress} t={status.threshold}")
        return status
