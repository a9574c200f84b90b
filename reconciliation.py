import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from authority import LicenseAuthority
from errors import PerPlatformReconciliationError
from license_service import LicenseKeysService
from stores import PieceStore, PlatformStore, SagaStore, UserStore
from telemetry import ExceptionHandler, exception_handler

log = logging.getLogger("entitlements.reconcile")


@dataclass
class ReconciliationResult:
    """Totals for one firing of the trial tracker."""
    processed: int = 0
    skipped: int = 0
    projected: List[str] = field(default_factory=list)
    downgraded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


async def reconcile_platforms(
    service: LicenseKeysService,
    platforms: PlatformStore,
    reporter: ExceptionHandler = exception_handler,
    rollback: Optional[Callable[[], None]] = None,
) -> ReconciliationResult:
    """
    Full sweep over every platform. A failure on one platform is
    reported and the sweep moves on.
    """
    result = ReconciliationResult()
    snapshot = [(p.id, p.license_key) for p in await platforms.get_all()]
    log.info("Trial tracker: starting sweep over %d platforms", len(snapshot))

    for platform_id, license_key in snapshot:
        if not license_key:
            result.skipped += 1
            continue

        result.processed += 1
        try:
            key = await service.verify_key_or_return_null(platform_id, license_key)
            if key is None:
                await service.downgrade_to_free_plan(platform_id)
                result.downgraded.append(platform_id)
                continue
            await service.apply_limits(platform_id, key)
            result.projected.append(platform_id)
        except Exception as exc:
            if rollback is not None:
                rollback()
            error = PerPlatformReconciliationError(platform_id, exc)
            error.__cause__ = exc
            reporter.handle(error, {"platformId": platform_id})
            result.failed.append(platform_id)

    log.info(
        "Trial tracker: processed=%d skipped=%d projected=%d downgraded=%d failed=%d",
        result.processed, result.skipped, len(result.projected),
        len(result.downgraded), len(result.failed),
    )
    return result


def make_trial_tracker(session_factory, authority: LicenseAuthority, settings):
    """Build the job handler. Each firing gets its own session and service."""

    async def trial_tracker() -> ReconciliationResult:
        db = session_factory()
        try:
            service = LicenseKeysService(
                authority,
                PlatformStore(db),
                UserStore(db),
                PieceStore(db),
                SagaStore(db),
                enterprise_edition=settings.enterprise_edition,
                current_release=settings.current_release,
            )
            return await reconcile_platforms(service, service.platforms, rollback=db.rollback)
        finally:
            db.close()

    return trial_tracker
