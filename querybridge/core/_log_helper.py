import logging

_logger = logging.getLogger("querybridge")


def warn(message: str, *args) -> None:
    _logger.warning(message, *args)
