"""
Shared fixtures: an in-memory database per test and a service factory.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import models  # noqa: E402,F401
from database import Base  # noqa: E402
from license_service import LicenseKeysService  # noqa: E402
from stores import PieceStore, PlatformStore, SagaStore, UserStore  # noqa: E402
from telemetry import Telemetry  # noqa: E402


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def telemetry():
    return AsyncMock(spec=Telemetry)


@pytest.fixture()
def make_service(db, telemetry):
    def _make(authority):
        return LicenseKeysService(
            authority,
            PlatformStore(db),
            UserStore(db),
            PieceStore(db),
            SagaStore(db),
            enterprise_edition=True,
            current_release="0.1.0",
            telemetry=telemetry,
        )
    return _make
