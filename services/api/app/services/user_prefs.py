"""Preference validation and propagation to the user row."""

from typing import Any, Optional

from pydantic import ValidationError

from app.models import User
from app.schemas import SyncPreferences

# Client cooking level -> stored skill level
COOKING_LEVEL_MAP = {
    "basic": "beginner",
    "intermediate": "intermediate",
    "professional": "advanced",
}


def format_validation_error(exc: ValidationError, root: str = "preferences") -> str:
    parts = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err["loc"]) or root
        parts.append(f"{path}: {err['msg']}")
    return "; ".join(parts)


def validate_preferences(raw: Any) -> tuple[Optional[dict], Optional[str]]:
    """Returns (validated preferences, None) or (None, error string)."""
    try:
        prefs = SyncPreferences.model_validate(raw)
    except ValidationError as exc:
        return None, format_validation_error(exc)
    return prefs.model_dump(by_alias=True, exclude_none=True), None


def apply_preferences_to_user(user: User, prefs: dict) -> bool:
    """Mirror validated preferences onto the user's profile columns.

    Returns True when any column was written.
    """
    updates: dict[str, Any] = {}
    if "servingSize" in prefs:
        updates["household_size"] = prefs["servingSize"]
    if "dailyMeals" in prefs:
        updates["daily_meals"] = prefs["dailyMeals"]
    if "dietaryRestrictions" in prefs:
        updates["dietary_restrictions"] = list(prefs["dietaryRestrictions"])
    if "cuisinePreferences" in prefs:
        updates["favorite_categories"] = list(prefs["cuisinePreferences"])
    if "storageAreas" in prefs:
        updates["storage_areas_enabled"] = list(prefs["storageAreas"])
    if "cookingLevel" in prefs:
        updates["cooking_skill_level"] = COOKING_LEVEL_MAP.get(prefs["cookingLevel"], "beginner")
    if "expirationAlertDays" in prefs:
        updates["expiration_alert_days"] = prefs["expirationAlertDays"]

    for field, value in updates.items():
        setattr(user, field, value)
    return bool(updates)


def onboarding_completed(onboarding: Any) -> bool:
    return isinstance(onboarding, dict) and bool(onboarding.get("completedAt"))
