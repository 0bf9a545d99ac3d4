import logging

from partner_billing.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return
    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO, including the payment id in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
