import enum
import logging
from typing import Any, Dict, Optional

import httpx

from config import settings

log = logging.getLogger("entitlements.telemetry")


class TelemetryEventName(str, enum.Enum):
    KEY_ACTIVATED = "key.activated"
    TRIAL_REQUESTED = "trial.requested"
    PLATFORM_DOWNGRADED = "platform.downgraded"


class Telemetry:
    """
    Best-effort event sink. track_event never raises: transport errors
    and non-2xx responses are logged and dropped. Callers on the
    activation and trial paths rely on this.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def track_event(self, name: TelemetryEventName, payload: Dict[str, Any]) -> None:
        try:
            if not self.url:
                log.info("telemetry event %s %s", name.value, payload)
                return
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json={"name": name.value, "payload": payload})
                response.raise_for_status()
        except Exception:
            log.debug("dropping telemetry event %s", name.value, exc_info=True)


class ExceptionHandler:
    """Error-reporting side channel used by background jobs."""

    def handle(self, exc: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        log.error(
            "[ERROR] %s context=%s", exc, context or {},
            exc_info=(type(exc), exc, exc.__traceback__),
        )


telemetry = Telemetry(url=settings.telemetry_url)
exception_handler = ExceptionHandler()
