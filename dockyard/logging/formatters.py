"""Logging formatters for service-tagged records."""

import logging


class ServiceFormatter(logging.Formatter):
    """Logging formatter that prepends the service tag from the extra parameter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a service prefix if present.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message, prefixed with ``[service]`` when the record
            was logged with ``extra={"service": ...}``
        """
        msg = super().format(record)
        service = getattr(record, "service", None)

        if service:
            return f"[{service}] {msg}"

        return msg


def configure_logging(debug: bool = False, fmt: str = "%(message)s") -> logging.Handler:
    """Install a stderr handler using :class:`ServiceFormatter` on the root logger.

    Noisy SDK loggers are capped at WARNING.

    Returns
    -------
    logging.Handler
        The installed handler
    """
    handler = logging.StreamHandler()
    handler.setFormatter(ServiceFormatter(fmt))
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, handlers=[handler])

    for name in ["botocore", "boto3", "urllib3", "docker"]:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
