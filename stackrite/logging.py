import logging

logger = logging.getLogger("stackrite")
logger.setLevel(logging.INFO)
