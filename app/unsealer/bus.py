import asyncio
import inspect
from collections import defaultdict

from unsealer.logger import get_logger


class GlobalEventBus:
    """In-Process Pub/Sub für Unseal-Ergebnisse und Sweep-Zusammenfassungen."""

    def __init__(self):
        self.subscribers = defaultdict(list)
        self.log = get_logger("UnsealerBus")

    def subscribe(self, topic: str):
        def decorator(callback):
            self.subscribers[topic].append(callback)
            return callback
        return decorator

    def emit(self, topic: str, payload: dict = None):
        # Payloads enthalten nur Status, nie Schlüsselmaterial
        payload = payload or {}
        for callback in list(self.subscribers.get(topic, ())):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                self.log.error(f"❌ Subscriber {callback.__name__} für '{topic}' fehlgeschlagen: {e}", exc_info=True)


bus = GlobalEventBus()
