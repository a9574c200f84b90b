"""
Test helpers: authority payloads, a MockTransport-backed authority,
and seed functions for the in-memory database.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx

import models
from authority import HttpLicenseAuthority
from telemetry import Telemetry

AUTHORITY_URL = "https://authority.test/license-keys"


def license_json(key="abc", **overrides):
    """Authority payload for a valid, non-trial key."""
    now = datetime.now(timezone.utc)
    data = {
        "id": f"lic-{key}",
        "key": key,
        "email": "e@x.com",
        "isTrial": False,
        "activationDate": (now - timedelta(days=1)).isoformat(),
        "expirationDate": (now + timedelta(days=30)).isoformat(),
        "created": (now - timedelta(days=1)).isoformat(),
        "updated": now.isoformat(),
    }
    data.update(overrides)
    return data


def make_authority(handler, telemetry=None):
    return HttpLicenseAuthority(
        AUTHORITY_URL,
        telemetry=telemetry or AsyncMock(spec=Telemetry),
        transport=httpx.MockTransport(handler),
    )


def keys_handler(keys, calls=None):
    """
    MockTransport handler serving GET {base}/{key} from a dict.
    A value that is an int is returned as that status code.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        key = request.url.path.rsplit("/", 1)[-1]
        value = keys.get(key)
        if value is None:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(value, int):
            return httpx.Response(value, text="boom")
        return httpx.Response(200, json=value)
    return handler


def add_platform(db, platform_id, license_key=None, **flags):
    platform = models.Platform(id=platform_id, name=platform_id, license_key=license_key, **flags)
    db.add(platform)
    db.commit()
    return platform


def add_user(db, user_id, platform_id, role=models.PlatformRole.MEMBER, status=models.UserStatus.ACTIVE):
    user = models.User(
        id=user_id, platform_id=platform_id, email=f"{user_id}@x.com",
        platform_role=role.value, status=status.value,
    )
    db.add(user)
    db.commit()
    return user


def add_piece(db, pk, platform_id, piece_id=None, package_type=models.PackageType.ARCHIVE,
              hidden=False, project_id="proj-1", release="0.0.1"):
    piece = models.Piece(
        pk=pk, id=piece_id, name=pk, platform_id=platform_id, project_id=project_id,
        package_type=package_type.value, release=release, hidden=hidden,
    )
    db.add(piece)
    db.commit()
    return piece
