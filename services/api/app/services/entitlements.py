"""Feature gate: plan limits and feature entitlements per subscription tier.

The sync writers ask how many pantry or cookware items the user's plan allows
and whether a named feature is unlocked.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.models import User
from app.settings import settings
from app.services import section_store

CUSTOM_STORAGE_AREAS = "customStorageAreas"


@dataclass(frozen=True)
class TierLimits:
    # None means unlimited
    max_pantry_items: Optional[int]
    max_cookware_items: Optional[int]
    can_customize_storage_areas: bool


TIER_LIMITS: dict[str, TierLimits] = {
    "basic": TierLimits(
        max_pantry_items=25,
        max_cookware_items=5,
        can_customize_storage_areas=False,
    ),
    "pro": TierLimits(
        max_pantry_items=None,
        max_cookware_items=None,
        can_customize_storage_areas=True,
    ),
}

_FEATURE_FLAGS = {
    CUSTOM_STORAGE_AREAS: "can_customize_storage_areas",
}


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    limit: Optional[int]
    remaining: Optional[int]


def get_user_tier(user: User) -> str:
    tier = (user.subscription_tier or settings.default_subscription_tier).lower()
    return tier if tier in TIER_LIMITS else "basic"


def get_tier_limits(tier: str) -> TierLimits:
    return TIER_LIMITS.get(tier, TIER_LIMITS["basic"])


def cookware_limit(user: User) -> Optional[int]:
    return get_tier_limits(get_user_tier(user)).max_cookware_items


def check_cookware_limit(db: Session, user: User) -> LimitCheck:
    """Whether one more cookware item fits the user's plan."""
    limit = cookware_limit(user)
    if limit is None:
        return LimitCheck(allowed=True, limit=None, remaining=None)
    current = section_store.count_items(db, user.id, "cookware")
    remaining = max(0, limit - current)
    return LimitCheck(allowed=remaining > 0, limit=limit, remaining=remaining)


def pantry_limit(user: User) -> Optional[int]:
    return get_tier_limits(get_user_tier(user)).max_pantry_items


def check_pantry_limit(db: Session, user: User) -> LimitCheck:
    """Whether one more live (not soft-deleted) inventory item fits the user's plan."""
    limit = pantry_limit(user)
    if limit is None:
        return LimitCheck(allowed=True, limit=None, remaining=None)
    current = section_store.count_items(db, user.id, "inventory")
    remaining = max(0, limit - current)
    return LimitCheck(allowed=remaining > 0, limit=limit, remaining=remaining)


def check_feature_access(user: User, feature: str) -> bool:
    flag = _FEATURE_FLAGS.get(feature)
    if flag is None:
        return False
    return bool(getattr(get_tier_limits(get_user_tier(user)), flag))
