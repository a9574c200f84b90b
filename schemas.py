from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeatureFlags(CamelModel):
    """Total feature set stored on a platform. Every flag is always present."""

    sso_enabled: bool
    audit_log_enabled: bool
    environments_enabled: bool
    custom_domains_enabled: bool
    custom_roles_enabled: bool
    project_roles_enabled: bool
    api_keys_enabled: bool
    global_connections_enabled: bool
    manage_pieces_enabled: bool
    manage_projects_enabled: bool
    manage_templates_enabled: bool
    custom_appearance_enabled: bool
    analytics_enabled: bool
    alerts_enabled: bool
    flow_issues_enabled: bool
    embedding_enabled: bool
    show_powered_by: bool


FEATURE_NAMES = tuple(FeatureFlags.model_fields)

ENTERPRISE_DEFAULTS = FeatureFlags(
    **{name: True for name in FEATURE_NAMES if name != "show_powered_by"},
    show_powered_by=False,
)

TURNED_OFF_FEATURES = FeatureFlags(**{name: False for name in FEATURE_NAMES})


class LicenseRecord(CamelModel):
    id: str
    key: str
    email: Optional[str] = None
    is_trial: bool = False
    activation_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    created_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("createdAt", "created", "created_at"))
    updated_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("updatedAt", "updated", "updated_at"))

    # authority overrides; None means "not stated by the authority"
    sso_enabled: Optional[bool] = None
    audit_log_enabled: Optional[bool] = None
    environments_enabled: Optional[bool] = None
    custom_domains_enabled: Optional[bool] = None
    custom_roles_enabled: Optional[bool] = None
    project_roles_enabled: Optional[bool] = None
    api_keys_enabled: Optional[bool] = None
    global_connections_enabled: Optional[bool] = None
    manage_pieces_enabled: Optional[bool] = None
    manage_projects_enabled: Optional[bool] = None
    manage_templates_enabled: Optional[bool] = None
    custom_appearance_enabled: Optional[bool] = None
    analytics_enabled: Optional[bool] = None
    alerts_enabled: Optional[bool] = None
    flow_issues_enabled: Optional[bool] = None
    embedding_enabled: Optional[bool] = None
    show_powered_by: Optional[bool] = None

    @model_validator(mode="after")
    def _check_validity_window(self):
        if not self.is_trial and (self.activation_date is None or self.expiration_date is None):
            raise ValueError("non-trial license must carry activationDate and expirationDate")
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiration_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expiration_date
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now

    def feature_overrides(self) -> Dict[str, bool]:
        return {
            name: getattr(self, name)
            for name in FEATURE_NAMES
            if getattr(self, name) is not None
        }


class CreateTrialRequest(CamelModel):
    email: str
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    goal: Optional[str] = None
    number_of_employees: Optional[str] = None


class ActivateRequest(CamelModel):
    platform_id: str
    key: str
