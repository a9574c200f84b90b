from typing import Any, List, Optional

from sqlalchemy.orm import Session

from models import ApEdition, DowngradeSaga, PackageType, Piece, Platform, User


class PlatformStore:
    def __init__(self, db: Session):
        self.db = db

    async def get_one(self, platform_id: str) -> Optional[Platform]:
        return self.db.query(Platform).filter(Platform.id == platform_id).first()

    async def get_all(self) -> List[Platform]:
        return self.db.query(Platform).order_by(Platform.id).all()

    async def update(self, platform_id: str, **fields: Any) -> Platform:
        platform = await self.get_one(platform_id)
        if platform is None:
            raise LookupError(f"platform {platform_id} not found")
        for name, value in fields.items():
            setattr(platform, name, value)
        # single commit: flag writes are never half-applied
        self.db.commit()
        self.db.refresh(platform)
        return platform


class UserStore:
    def __init__(self, db: Session):
        self.db = db

    async def list(self, platform_id: str) -> List[User]:
        return self.db.query(User).filter(User.platform_id == platform_id).all()

    async def update(self, user_id: str, status: str, platform_role: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise LookupError(f"user {user_id} not found")
        user.status = status
        user.platform_role = platform_role
        self.db.commit()
        return user


class PieceStore:
    def __init__(self, db: Session):
        self.db = db

    async def list(
        self,
        edition: ApEdition,
        include_hidden: bool,
        release: Optional[str],
        platform_id: str,
    ) -> List[Piece]:
        q = self.db.query(Piece).filter(Piece.platform_id == platform_id)
        if not include_hidden:
            q = q.filter(Piece.hidden.is_(False))
        if edition == ApEdition.COMMUNITY:
            q = q.filter(Piece.package_type == PackageType.REGISTRY.value)
        pieces = q.all()
        if release is None:
            return pieces
        return [p for p in pieces if _release_supported(p.release, release)]

    async def delete(self, piece_id: str, project_id: Optional[str]) -> None:
        # deleting an already-deleted piece is a no-op
        self.db.query(Piece).filter(
            Piece.id == piece_id,
            Piece.project_id == project_id,
        ).delete(synchronize_session=False)
        self.db.commit()


def _release_supported(piece_release: Optional[str], current: str) -> bool:
    if not piece_release:
        return True
    try:
        return _version_tuple(piece_release) <= _version_tuple(current)
    except ValueError:
        return True


def _version_tuple(version: str):
    return tuple(int(part) for part in version.split("."))


class SagaStore:
    def __init__(self, db: Session):
        self.db = db

    async def get_or_create(self, platform_id: str, license_key: Optional[str]) -> DowngradeSaga:
        saga = self.db.query(DowngradeSaga).filter(DowngradeSaga.platform_id == platform_id).first()
        if saga is None:
            saga = DowngradeSaga(platform_id=platform_id, license_key=license_key)
            self.db.add(saga)
            self.db.commit()
            self.db.refresh(saga)
        return saga

    async def get(self, platform_id: str) -> Optional[DowngradeSaga]:
        return self.db.query(DowngradeSaga).filter(DowngradeSaga.platform_id == platform_id).first()

    async def mark(self, platform_id: str, **steps: bool) -> None:
        saga = await self.get(platform_id)
        if saga is None:
            return
        for name, value in steps.items():
            setattr(saga, name, value)
        self.db.commit()

    async def clear(self, platform_id: str) -> None:
        self.db.query(DowngradeSaga).filter(
            DowngradeSaga.platform_id == platform_id
        ).delete(synchronize_session=False)
        self.db.commit()
