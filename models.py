import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from database import Base


class PlatformRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    OPERATOR = "OPERATOR"


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PackageType(str, enum.Enum):
    ARCHIVE = "ARCHIVE"      # private upload
    REGISTRY = "REGISTRY"    # shared registry


class ApEdition(str, enum.Enum):
    COMMUNITY = "ce"
    ENTERPRISE = "ee"


# =====================================================
#  TABLES
# =====================================================

class Platform(Base):
    __tablename__ = "platforms"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, default="")
    license_key = Column(String, nullable=True)

    # projected feature flags, written only by the license service
    sso_enabled = Column(Boolean, default=False)
    audit_log_enabled = Column(Boolean, default=False)
    environments_enabled = Column(Boolean, default=False)
    custom_domains_enabled = Column(Boolean, default=False)
    custom_roles_enabled = Column(Boolean, default=False)
    project_roles_enabled = Column(Boolean, default=False)
    api_keys_enabled = Column(Boolean, default=False)
    global_connections_enabled = Column(Boolean, default=False)
    manage_pieces_enabled = Column(Boolean, default=False)
    manage_projects_enabled = Column(Boolean, default=False)
    manage_templates_enabled = Column(Boolean, default=False)
    custom_appearance_enabled = Column(Boolean, default=False)
    analytics_enabled = Column(Boolean, default=False)
    alerts_enabled = Column(Boolean, default=False)
    flow_issues_enabled = Column(Boolean, default=False)
    embedding_enabled = Column(Boolean, default=False)
    show_powered_by = Column(Boolean, default=False)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    platform_id = Column(String, index=True)
    email = Column(String)
    platform_role = Column(String, default=PlatformRole.MEMBER.value)
    status = Column(String, default=UserStatus.ACTIVE.value)


class Piece(Base):
    __tablename__ = "pieces"

    # id is nullable: registry metadata rows may not carry one
    pk = Column(String, primary_key=True)
    id = Column(String, nullable=True, index=True)
    name = Column(String)
    platform_id = Column(String, index=True, nullable=True)
    project_id = Column(String, nullable=True)
    package_type = Column(String, default=PackageType.REGISTRY.value)
    release = Column(String, nullable=True)
    hidden = Column(Boolean, default=False)


class DowngradeSaga(Base):
    __tablename__ = "downgrade_sagas"

    platform_id = Column(String, primary_key=True)
    license_key = Column(String, nullable=True)
    features_disabled = Column(Boolean, default=False)
    users_deactivated = Column(Boolean, default=False)
    pieces_deleted = Column(Boolean, default=False)
    started_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def completed(self) -> bool:
        return self.features_disabled and self.users_deactivated and self.pieces_deleted
