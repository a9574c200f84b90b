from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from errors import InvalidLicenseKeyError
from license_service import LicenseKeysService
from schemas import ActivateRequest, CreateTrialRequest, FeatureFlags
from stores import PieceStore, PlatformStore, SagaStore, UserStore


router = APIRouter(prefix="/v1/license-keys", tags=["license-keys"])


def get_license_service(request: Request, db: Session = Depends(get_db)) -> LicenseKeysService:
    return LicenseKeysService(
        request.app.state.authority,
        PlatformStore(db),
        UserStore(db),
        PieceStore(db),
        SagaStore(db),
        enterprise_edition=settings.enterprise_edition,
        current_release=settings.current_release,
    )


@router.post("", status_code=201)
async def request_trial(body: CreateTrialRequest, service: LicenseKeysService = Depends(get_license_service)):
    await service.request_trial(body)
    return {}


@router.post("/activate")
async def activate(body: ActivateRequest, service: LicenseKeysService = Depends(get_license_service)):
    """
    Attach a key to a platform:
    - the authority must know the key and it must not be expired
    - the key is marked activated (idempotent)
    - the platform gets the key and its feature set
    """
    platform = await service.platforms.get_one(body.platform_id)
    if platform is None:
        raise HTTPException(404, "platform not found")

    record = await service.verify_key_or_return_null(body.platform_id, body.key)
    if record is None:
        raise InvalidLicenseKeyError(body.key)

    await service.mark_as_activated(body.key, body.platform_id)
    await service.platforms.update(body.platform_id, license_key=body.key)
    await service.apply_limits(body.platform_id, record)

    return {
        "platformId": body.platform_id,
        "features": FeatureFlags(**service.effective_features(record)).model_dump(by_alias=True),
    }


@router.get("/{license_key}")
async def get_key(license_key: str, service: LicenseKeysService = Depends(get_license_service)):
    record = await service.get_key(license_key)
    if record is None:
        raise InvalidLicenseKeyError(license_key)
    return record.model_dump(by_alias=True, mode="json")
