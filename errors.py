import enum
from typing import Any, Dict, Optional


class ErrorCode(str, enum.Enum):
    EMAIL_ALREADY_HAS_ACTIVATION_KEY = "EMAIL_ALREADY_HAS_ACTIVATION_KEY"
    LICENSE_AUTHORITY_ERROR = "LICENSE_AUTHORITY_ERROR"
    INVALID_LICENSE_KEY = "INVALID_LICENSE_KEY"
    RECONCILIATION_FAILED = "RECONCILIATION_FAILED"


class EntitlementError(Exception):
    """Base error with a machine-readable code and params."""

    code: ErrorCode

    def __init__(self, message: str, params: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.params = params or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "params": self.params}


class DuplicateActivationError(EntitlementError):
    code = ErrorCode.EMAIL_ALREADY_HAS_ACTIVATION_KEY

    def __init__(self, email: str):
        super().__init__(f"an activation key already exists for {email}", {"email": email})


class UnexpectedAuthorityError(EntitlementError):
    code = ErrorCode.LICENSE_AUTHORITY_ERROR

    def __init__(self, status_code: Optional[int], body: str):
        super().__init__(
            f"unexpected response from license authority ({status_code}): {body}",
            {"statusCode": status_code},
        )
        self.status_code = status_code
        self.body = body


class InvalidLicenseKeyError(EntitlementError):
    code = ErrorCode.INVALID_LICENSE_KEY

    def __init__(self, key: str):
        super().__init__("license key is not recognised by the authority", {"key": key})


class PerPlatformReconciliationError(EntitlementError):
    code = ErrorCode.RECONCILIATION_FAILED

    def __init__(self, platform_id: str, cause: BaseException):
        super().__init__(
            f"reconciliation failed for platform {platform_id}: {cause}",
            {"platformId": platform_id},
        )
        self.platform_id = platform_id
        self.cause = cause
