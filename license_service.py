"""
License keys service: resolves a platform's entitlement against the
licensing authority, projects it onto the platform's feature flags, and
runs the downgrade saga when the entitlement is gone.

Nothing here caches a LicenseRecord; every call re-fetches it.
"""

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional

from authority import LicenseAuthority
from models import ApEdition, PackageType, PlatformRole, UserStatus
from schemas import ENTERPRISE_DEFAULTS, TURNED_OFF_FEATURES, CreateTrialRequest, LicenseRecord
from stores import PieceStore, PlatformStore, SagaStore, UserStore
from telemetry import Telemetry, TelemetryEventName, telemetry as default_telemetry

log = logging.getLogger("entitlements.license")


async def _settle(calls: List[Awaitable]) -> None:
    """Run every call to completion, then raise the first failure if any."""
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result


class LicenseKeysService:

    def __init__(
        self,
        authority: LicenseAuthority,
        platforms: PlatformStore,
        users: UserStore,
        pieces: PieceStore,
        sagas: SagaStore,
        enterprise_edition: bool = True,
        current_release: Optional[str] = None,
        telemetry: Optional[Telemetry] = None,
    ):
        self.authority = authority
        self.platforms = platforms
        self.users = users
        self.pieces = pieces
        self.sagas = sagas
        self.edition = ApEdition.ENTERPRISE if enterprise_edition else ApEdition.COMMUNITY
        self.current_release = current_release
        self.telemetry = telemetry or default_telemetry

    # ===========================================================
    # USER-TRIGGERED PATH
    # ===========================================================

    async def request_trial(self, request: CreateTrialRequest) -> None:
        await self.authority.request_trial(request)
        await self.telemetry.track_event(TelemetryEventName.TRIAL_REQUESTED, {"email": request.email})

    async def mark_as_activated(self, key: str, platform_id: str) -> None:
        await self.authority.mark_as_activated(key, platform_id)

    async def get_key(self, key: Optional[str]) -> Optional[LicenseRecord]:
        return await self.authority.get_key(key)

    # ===========================================================
    # RESOLVER
    # ===========================================================

    async def verify_key_or_return_null(self, platform_id: str, license: Optional[str]) -> Optional[LicenseRecord]:
        if not license:
            return None

        # authority errors propagate; only a not-found is a null result
        record = await self.authority.get_key(license)
        if record is None:
            log.info("License key for platform %s not found by authority", platform_id)
            return None
        if record.is_expired():
            log.info("License key for platform %s expired at %s", platform_id, record.expiration_date)
            return None
        return record

    # ===========================================================
    # PROJECTOR
    # ===========================================================

    @staticmethod
    def effective_features(record: Optional[LicenseRecord] = None) -> Dict[str, bool]:
        features = ENTERPRISE_DEFAULTS.model_dump()
        if record is not None:
            features.update(record.feature_overrides())
        return features

    async def apply_limits(self, platform_id: str, record: Optional[LicenseRecord] = None) -> None:
        await self.platforms.update(platform_id, **self.effective_features(record))
        # entitlement is back; a later loss starts a fresh downgrade
        await self.sagas.clear(platform_id)

    # ===========================================================
    # DOWNGRADE SAGA
    # ===========================================================

    async def downgrade_to_free_plan(self, platform_id: str) -> None:
        platform = await self.platforms.get_one(platform_id)
        if platform is None:
            raise LookupError(f"platform {platform_id} not found")

        saga = await self.sagas.get_or_create(platform_id, platform.license_key)
        # a finished run only means the last sweep closed out; start over so
        # reactivated or newly joined users are caught. Steps are idempotent.
        if saga.completed:
            await self.sagas.mark(
                platform_id,
                features_disabled=False,
                users_deactivated=False,
                pieces_deleted=False,
            )

        if not saga.features_disabled:
            await self.platforms.update(platform_id, **TURNED_OFF_FEATURES.model_dump())
            await self.sagas.mark(platform_id, features_disabled=True)
            log.info("Platform %s: features turned off", platform_id)

        steps = {}
        if not saga.users_deactivated:
            steps["users_deactivated"] = self._deactivate_platform_users_other_than_admin(platform_id)
        if not saga.pieces_deleted:
            steps["pieces_deleted"] = self._delete_private_pieces(platform_id)

        results = await asyncio.gather(*steps.values(), return_exceptions=True)
        failures = []
        for step, result in zip(steps, results):
            if isinstance(result, BaseException):
                log.warning("Platform %s: downgrade step %s failed: %s", platform_id, step, result)
                failures.append(result)
            else:
                await self.sagas.mark(platform_id, **{step: True})
        if failures:
            raise failures[0]

        log.info("Platform %s downgraded to free plan", platform_id)
        await self.telemetry.track_event(TelemetryEventName.PLATFORM_DOWNGRADED, {"platformId": platform_id})

    async def _deactivate_platform_users_other_than_admin(self, platform_id: str) -> None:
        users = await self.users.list(platform_id)
        await _settle([
            self.users.update(u.id, status=UserStatus.INACTIVE.value, platform_role=u.platform_role)
            for u in users
            if u.platform_role != PlatformRole.ADMIN.value and u.status != UserStatus.INACTIVE.value
        ])

    async def _delete_private_pieces(self, platform_id: str) -> None:
        pieces = await self.pieces.list(
            edition=self.edition,
            include_hidden=True,
            release=self.current_release,
            platform_id=platform_id,
        )
        await _settle([
            self.pieces.delete(piece.id, piece.project_id)
            for piece in pieces
            if piece.package_type == PackageType.ARCHIVE.value and piece.id
        ])
