from __future__ import annotations
import os


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _seconds(name: str) -> float | None:
    raw = os.getenv(name)
    if not raw:
        return None
    return float(raw)


# Root of the ERP REST API; /inventory and /production hang off it.
ERP_API_BASE_URL = os.getenv("ERP_API_BASE_URL", "https://localhost:7093/api/v1").rstrip("/")
ERP_VERIFY_TLS = _flag("ERP_VERIFY_TLS", True)
# Unset means requests wait until the backend answers.
ERP_HTTP_TIMEOUT = _seconds("ERP_HTTP_TIMEOUT")

# Legacy flow: post the BOM to /production/bom before creating the order.
PERSIST_BOM_ON_SUBMIT = _flag("PERSIST_BOM_ON_SUBMIT", False)

# Wizard sessions idle longer than this are forgotten.
WIZARD_IDLE_TIMEOUT = float(os.getenv("WIZARD_IDLE_TIMEOUT", "3600"))

LOG_LEVEL =os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
)
