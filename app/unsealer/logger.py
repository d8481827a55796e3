import logging
import os
import sys
from logging.handlers import RotatingFileHandler

FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)-7s | %(name)-15s | %(message)s",
    datefmt="%H:%M:%S"
)

# Bibliotheken, die im Normalbetrieb nur Warnungen loggen dürfen
THIRD_PARTY_LOGGERS = ["urllib3", "urllib3.connectionpool", "hvac"]


class LogNoiseFilter(logging.Filter):
    """Filtert Connection-Pool-Geplapper aus der Konsole, außer im Debug-Modus."""

    noise_keywords = ["Starting new HTTP", "Resetting dropped connection", "Connection pool is full"]

    def __init__(self, debug: bool = False):
        super().__init__()
        self.debug = debug

    def filter(self, record):
        if self.debug:
            return True
        return not any(keyword in record.getMessage() for keyword in self.noise_keywords)


def setup_logging(debug: bool = False, log_file: str = None):
    # 1. Root-Logger immer auf DEBUG, die Handler filtern
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # 2. Konsole (Container stdout)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(FORMATTER)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.addFilter(LogNoiseFilter(debug))
    root_logger.addHandler(console_handler)

    # 3. Optionale Logdatei, dort landet immer alles
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10*1024*1024, backupCount=5)
        file_handler.setFormatter(FORMATTER)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    # 4. Drittanbieter leiser stellen
    third_party_level = logging.DEBUG if debug else logging.WARNING
    for l_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(l_name).setLevel(third_party_level)

    logging.info(f"✨ Unsealer Logging initialisiert (Level: {'DEBUG' if debug else 'INFO'})")


def get_logger(name: str):
    return logging.getLogger(name)
