"""Process-wide logging setup."""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str) -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format=LOG_FORMAT)
    # kafka-python is chatty at INFO about every connection attempt
    logging.getLogger("kafka").setLevel(max(lvl, logging.WARNING))
