from dockyard.logging.formatters import ServiceFormatter, configure_logging

__all__ = ["ServiceFormatter", "configure_logging"]
