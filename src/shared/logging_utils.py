import logging
import os
from typing import Any, Dict, Optional


LOGGER_NAME = "campaignstore"
_LOGGER = logging.getLogger(LOGGER_NAME)


def configure_logging() -> None:
    lvl = (os.getenv("AZURE_SDK_LOG_LEVEL") or "").upper()
    if lvl:
        level = getattr(logging, lvl, logging.INFO)
        logging.getLogger("azure").setLevel(level)
        logging.getLogger("azure.cosmos").setLevel(level)
    _LOGGER.setLevel(logging.INFO)


def log(level: int, tenant_id: Optional[str], message: str, **dimensions: Any) -> None:
    dims: Dict[str, Any] = {"tenantId": tenant_id} if tenant_id else {}
    dims.update(dimensions)
    _LOGGER.log(level, message, extra={"custom_dimensions": dims})


def info(tenant_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.INFO, tenant_id, message, **dimensions)


def warning(tenant_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.WARNING, tenant_id, message, **dimensions)


def error(tenant_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.ERROR, tenant_id, message, **dimensions)


def debug(tenant_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.DEBUG, tenant_id, message, **dimensions)
