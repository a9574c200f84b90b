"""
Client for the remote licensing authority.

The authority owns license records. This service only requests trials,
confirms activations and fetches the current record for a key.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from errors import DuplicateActivationError, UnexpectedAuthorityError
from schemas import CreateTrialRequest, LicenseRecord
from telemetry import Telemetry, TelemetryEventName, telemetry as default_telemetry

log = logging.getLogger("entitlements.authority")


def _unexpected(response: httpx.Response) -> UnexpectedAuthorityError:
    log.error(
        "[ERROR]: Unexpected error from license authority: %s %s",
        response.status_code, response.text,
    )
    return UnexpectedAuthorityError(response.status_code, response.text)


class LicenseAuthority:
    """Capability interface; swap implementations at construction time."""

    async def request_trial(self, request: CreateTrialRequest) -> None:
        raise NotImplementedError

    async def mark_as_activated(self, key: str, platform_id: str) -> None:
        raise NotImplementedError

    async def get_key(self, license: Optional[str]) -> Optional[LicenseRecord]:
        raise NotImplementedError


class HttpLicenseAuthority(LicenseAuthority):

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        telemetry: Optional[Telemetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.telemetry = telemetry or default_telemetry
        self.transport = transport

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            log.error("[ERROR]: License authority unreachable: %s", exc)
            raise UnexpectedAuthorityError(None, str(exc)) from exc

    async def request_trial(self, request: CreateTrialRequest) -> None:
        response = await self._send(
            "POST", self.base_url,
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
        if response.status_code == httpx.codes.CONFLICT:
            raise DuplicateActivationError(request.email)
        if not response.is_success:
            raise _unexpected(response)

    async def mark_as_activated(self, key: str, platform_id: str) -> None:
        response = await self._send(
            "POST", f"{self.base_url}/activate",
            json={"key": key, "platformId": platform_id},
        )
        # activating twice, or a key the authority dropped, is not an error
        if response.status_code in (httpx.codes.CONFLICT, httpx.codes.NOT_FOUND):
            return
        if not response.is_success:
            raise _unexpected(response)

        await self.telemetry.track_event(TelemetryEventName.KEY_ACTIVATED, {
            "platformId": platform_id,
            "date": datetime.now(timezone.utc).isoformat(),
        })

    async def get_key(self, license: Optional[str]) -> Optional[LicenseRecord]:
        if not license:
            return None
        response = await self._send("GET", f"{self.base_url}/{license}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            raise _unexpected(response)
        try:
            return LicenseRecord.model_validate(response.json())
        except (ValueError, ValidationError):
            raise _unexpected(response)


class FixedLicenseAuthority(LicenseAuthority):
    """
    Always-valid authority for tests and local development.
    Never selected unless AUTHORITY_MODE=fixed.
    """

    def __init__(self, email: str = "enterprise@local.dev"):
        self.email = email
        self.activated = []

    async def request_trial(self, request: CreateTrialRequest) -> None:
        return None

    async def mark_as_activated(self, key: str, platform_id: str) -> None:
        self.activated.append((key, platform_id))

    async def get_key(self, license: Optional[str]) -> Optional[LicenseRecord]:
        if not license:
            return None
        now = datetime.now(timezone.utc)
        return LicenseRecord(
            id="enterprise-license",
            key=license,
            email=self.email,
            is_trial=False,
            activation_date=now,
            expiration_date=now + timedelta(days=365 * 100),
            created_at=now,
            updated_at=now,
        )


def build_authority(settings) -> LicenseAuthority:
    if settings.authority_mode == "fixed":
        log.warning("AUTHORITY_MODE=fixed: license checks are bypassed")
        return FixedLicenseAuthority()
    return HttpLicenseAuthority(
        settings.license_authority_url,
        timeout=settings.license_authority_timeout,
    )
