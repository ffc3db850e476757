"""Domain errors raised by the sync services.

Routers turn these into `HTTPException`s; `to_detail()` is the body clients
see under `detail`.
"""

from typing import Any


class SyncError(Exception):
    status_code = 400
    code = "SYNC_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.details}


class CookwareLimitError(SyncError):
    status_code = 403
    code = "COOKWARE_LIMIT_REACHED"

    def __init__(self, limit: int, count: int):
        super().__init__(
            "Cookware limit reached. Upgrade to Pro for unlimited cookware.",
            limit=limit,
            count=count,
        )


class FeatureNotAvailableError(SyncError):
    status_code = 403
    code = "FEATURE_NOT_AVAILABLE"

    def __init__(self, feature: str):
        super().__init__(f"'{feature}' is a Pro feature.", feature=feature)


class MissingDataError(SyncError):
    code = "MISSING_DATA"

    def __init__(self):
        super().__init__("No data provided for migration")


class ImportTooLargeError(SyncError):
    code = "IMPORT_ARRAY_TOO_LARGE"

    def __init__(self, limit: int, violations: list[dict[str, Any]]):
        super().__init__(
            "Import payload contains arrays that exceed the maximum allowed size",
            limit=limit,
            violations=violations,
        )


class ImportValidationError(SyncError):
    code = "IMPORT_VALIDATION_FAILED"

    def __init__(self, errors: list[str]):
        super().__init__("Import data contains invalid items", errors=errors[:20])


class InvalidItemError(SyncError):
    code = "INVALID_ITEM"

    def __init__(self, section: str, errors: list[str]):
        super().__init__(f"Invalid {section} item", errors=errors)


class PantryLimitError(SyncError):
    status_code = 403
    code = "PANTRY_LIMIT_REACHED"

    def __init__(self, limit: int, remaining: int = 0):
        super().__init__(
            "Pantry item limit reached. Upgrade to Pro for unlimited pantry items.",
            limit=limit,
            remaining=remaining,
        )


class InvalidCursorError(SyncError):
    code = "INVALID_CURSOR"

    def __init__(self):
        super().__init__("Invalid cursor")
