import json
import os
import sys

from loguru import logger

from core.config import ConfigStore
from core.dispatcher import Dispatcher
from core.errors import ConfigurationError


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def main(argv=None) -> int:
    """Dispatch one saved webhook payload, e.g. to replay a failed notification."""
    argv = sys.argv[1:] if argv is None else argv
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    if len(argv) < 2:
        logger.error("Usage: python main.py <config.yaml> <payload.json>")
        return 1

    config_path, payload_path = argv[0], argv[1]

    if not os.path.exists(payload_path):
        logger.error(f"Path {payload_path} does not exist")
        return 1

    try:
        store = ConfigStore(config_path)
    except ConfigurationError as e:
        logger.critical(str(e))
        return 1

    try:
        with open(payload_path, encoding="utf-8") as f:
            payload = json.load(f)
    except ValueError as e:
        logger.error(f"Cannot parse {payload_path}: {e}")
        return 1

    result = Dispatcher(store).dispatch_payload(payload)
    logger.info(f"Dispatch result: {result.status.value}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
