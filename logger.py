# logger.py
import logging
import os

LOG_LEVEL = os.environ.get("TRIBETRIP_LOG_LEVEL", "INFO").upper()

# Create logger
logger = logging.getLogger("tribetrip")
logger.setLevel(LOG_LEVEL)

# Console Handler
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
