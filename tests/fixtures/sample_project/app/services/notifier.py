import logging

logger = logging.getLogger(__name__)


class Notifier:
    def send(self, message: str) -> None:
        logger.info(message)
