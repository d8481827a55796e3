import asyncio
import signal
import sys
from typing import Optional

from unsealer.bus import bus
from unsealer.config import UnsealerConfig, load_config
from unsealer.errors import ConfigError
from unsealer.logger import get_logger, setup_logging
from unsealer.services.scheduler.poll_service import TOPIC_SWEEP_FINISHED, PollScheduler
from unsealer.services.vault.credentials import FileCredentialProvider
from unsealer.services.vault.key_source import KeySourceClient
from unsealer.services.vault.seal_probe import SealStateProber
from unsealer.services.vault.transport import VaultTransport
from unsealer.services.vault.unseal_driver import UnsealDriver

log = get_logger("Runtime")


def build_scheduler(config: UnsealerConfig, transport: Optional[VaultTransport] = None) -> PollScheduler:
    """Verdrahtet alle Services mit derselben Konfiguration und demselben Transport."""
    transport = transport or VaultTransport.from_config(config)
    key_source = KeySourceClient(config, transport, FileCredentialProvider(config.jwt_token_path))
    driver = UnsealDriver(SealStateProber(transport), key_source, transport)
    return PollScheduler(config, driver, bus=bus)


@bus.subscribe(TOPIC_SWEEP_FINISHED)
def log_sweep_summary(payload):
    outcomes = ", ".join(f"{k}={v}" for k, v in sorted(payload.get("outcomes", {}).items()))
    log.info(f"📊 Poll-Zyklus beendet: {payload.get('targets', 0)} Nodes ({outcomes or 'keine'})")
    if payload.get("failures"):
        log.warning(f"⚠️ {payload['failures']} Node(s) noch versiegelt oder fehlerhaft, nächster Zyklus versucht es erneut.")


def log_banner(config: UnsealerConfig):
    log.info("🚀 Vault Auto-Unsealer startet...")
    log.info(f"Primary: {config.primary_vault_addr} | Ziele: {len(config.target_vault_addrs)}")
    log.info(f"Poll-Intervall: {config.poll_interval_s:g} Sekunden")
    if config.insecure_tls:
        log.warning("⚠️ INSECURE_TLS ist aktiv. TLS-Zertifikate werden NICHT geprüft.")


async def serve(config: UnsealerConfig, stop_event: Optional[asyncio.Event] = None):
    scheduler = build_scheduler(config)
    stop_event = stop_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # z.B. Windows oder nicht im Main-Thread
            pass

    scheduler.start()
    await stop_event.wait()
    log.info("Stop-Signal empfangen, fahre herunter...")
    await scheduler.stop()


def run():
    try:
        config = load_config()
    except ConfigError as e:
        setup_logging()
        log.critical(f"🛑 {e}")
        sys.exit(1)

    setup_logging(debug=config.debug, log_file=config.log_file)
    log_banner(config)
    asyncio.run(serve(config))
