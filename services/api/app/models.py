"""SQLAlchemy ORM models for the sync engine.

Tables:
- users: Identity row owned by the auth service; the sync engine only reads the
  subscription tier and writes onboarding/preference columns
- user_sync_state: One row per user (blob sections, per-section timestamps)
- user_inventory_items, user_saved_recipes, user_meal_plans,
  user_shopping_items, user_cookware_items: Normalized sections keyed by the
  client-assigned item id
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    String,
    DateTime,
    Integer,
    Boolean,
    ForeignKey,
    Index,
    text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, false
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Account row.

    Created by the auth service. Preference columns mirror the validated
    `preferences` blob so server-side features can query them directly.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # "basic" | "pro"; NULL falls back to settings.default_subscription_tier
    subscription_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    has_completed_onboarding: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    # Mirrored from preferences
    household_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_meals: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dietary_restrictions: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    favorite_categories: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    storage_areas_enabled: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    cooking_skill_level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    expiration_alert_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    sync_state: Mapped[Optional["UserSyncState"]] = relationship(
        "UserSyncState", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class UserSyncState(Base):
    """Sync State Record: blob sections plus write watermarks.

    `section_updated_at` maps section name -> ISO-8601 UTC timestamp of the
    last write to that section. Every value is <= `updated_at`.
    """
    __tablename__ = "user_sync_state"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Blob sections (stored verbatim)
    preferences: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    waste_log: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    consumed_log: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    analytics: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    onboarding: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    custom_locations: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    user_profile: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    section_updated_at: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'")
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped["User"] = relationship("User", back_populates="sync_state")


# Known item fields hold whatever JSON value the client sent. SQL NULL (not
# JSON null) for absent values keeps `IS NULL` filters working.
JSONValue = JSONB(none_as_null=True)


class SyncItemColumns:
    """Columns shared by every normalized section table."""

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Client-assigned, stable across devices
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Order the client sent the section in
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Client fields the server does not model, kept verbatim
    extra_data: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class InventoryItem(SyncItemColumns, Base):
    __tablename__ = "user_inventory_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_inventory_user_item"),
        Index("ix_inventory_user_id", "user_id"),
        Index("ix_inventory_user_updated", "user_id", "updated_at", "item_id"),
    )

    name: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    barcode: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    quantity: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    unit: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    storage_location: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    purchase_date: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    expiration_date: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    category: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    usda_category: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    nutrition: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    notes: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    image_uri: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    fdc_id: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    # ISO-8601 tombstone; NULL for live items
    deleted_at: Mapped[Any] = mapped_column(JSONValue, nullable=True)


class SavedRecipe(SyncItemColumns, Base):
    __tablename__ = "user_saved_recipes"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_recipes_user_item"),
        Index("ix_recipes_user_id", "user_id"),
        Index("ix_recipes_user_updated", "user_id", "updated_at", "item_id"),
    )

    title: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    description: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    ingredients: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    instructions: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    prep_time: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    cook_time: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    servings: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    image_uri: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    cloud_image_uri: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    nutrition: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    is_favorite: Mapped[Any] = mapped_column(JSONValue, nullable=True)


class MealPlan(SyncItemColumns, Base):
    __tablename__ = "user_meal_plans"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_meal_plans_user_item"),
        Index("ix_meal_plans_user_id", "user_id"),
        Index("ix_meal_plans_user_updated", "user_id", "updated_at", "item_id"),
    )

    date: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    meals: Mapped[Any] = mapped_column(JSONValue, nullable=True)


class ShoppingItem(SyncItemColumns, Base):
    __tablename__ = "user_shopping_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_shopping_user_item"),
        Index("ix_shopping_user_id", "user_id"),
        Index("ix_shopping_user_updated", "user_id", "updated_at", "item_id"),
    )

    name: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    quantity: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    unit: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    is_checked: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    category: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    recipe_id: Mapped[Any] = mapped_column(JSONValue, nullable=True)


class CookwareItem(SyncItemColumns, Base):
    __tablename__ = "user_cookware_items"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_cookware_user_item"),
        Index("ix_cookware_user_id", "user_id"),
        Index("ix_cookware_user_updated", "user_id", "updated_at", "item_id"),
    )

    name: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    category: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    alternatives: Mapped[Any] = mapped_column(JSONValue, nullable=True)
