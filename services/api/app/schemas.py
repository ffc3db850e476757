"""Pydantic schemas for the sync API.

Wire format is camelCase (what the mobile/web clients send). Item models keep
`extra="allow"` so any field the server does not model survives in
`model_extra` and is stored in the item's extension map.
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator


# --- Normalized section items ---
#
# Known fields take any JSON value and are stored exactly as sent.

class SyncItem(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=255)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        # Older clients used numeric ids
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class SyncInventoryItem(SyncItem):
    name: Any = None
    barcode: Any = None
    quantity: Any = None
    unit: Any = None
    storage_location: Any = Field(None, alias="storageLocation")
    purchase_date: Any = Field(None, alias="purchaseDate")
    expiration_date: Any = Field(None, alias="expirationDate")
    category: Any = None
    usda_category: Any = Field(None, alias="usdaCategory")
    nutrition: Any = None
    notes: Any = None
    image_uri: Any = Field(None, alias="imageUri")
    fdc_id: Any = Field(None, alias="fdcId")
    deleted_at: Any = Field(None, alias="deletedAt")


class SyncRecipe(SyncItem):
    title: Any = None
    description: Any = None
    ingredients: Any = None
    instructions: Any = None
    prep_time: Any = Field(None, alias="prepTime")
    cook_time: Any = Field(None, alias="cookTime")
    servings: Any = None
    image_uri: Any = Field(None, alias="imageUri")
    cloud_image_uri: Any = Field(None, alias="cloudImageUri")
    nutrition: Any = None
    is_favorite: Any = Field(None, alias="isFavorite")


class SyncMealPlan(SyncItem):
    date: Any = None
    meals: Any = None


class SyncShoppingItem(SyncItem):
    name: Any = None
    quantity: Any = None
    unit: Any = None
    is_checked: Any = Field(None, alias="isChecked")
    category: Any = None
    recipe_id: Any = Field(None, alias="recipeId")


class SyncCookwareItem(SyncItem):
    name: Any = None
    category: Any = None
    alternatives: Any = None


# --- Preferences (the only validated blob) ---

ShortText = Annotated[str, StringConstraints(max_length=100)]
AreaName = Annotated[str, StringConstraints(max_length=50)]


class SyncPreferences(BaseModel):
    """Recognized preference fields. Unknown keys are dropped."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    serving_size: Optional[int] = Field(None, alias="servingSize", ge=1, le=10)
    daily_meals: Optional[int] = Field(None, alias="dailyMeals", ge=1, le=10)
    dietary_restrictions: Optional[list[ShortText]] = Field(None, alias="dietaryRestrictions", max_length=50)
    cuisine_preferences: Optional[list[ShortText]] = Field(None, alias="cuisinePreferences", max_length=50)
    storage_areas: Optional[list[AreaName]] = Field(None, alias="storageAreas", max_length=20)
    cooking_level: Optional[Literal["basic", "intermediate", "professional"]] = Field(None, alias="cookingLevel")
    expiration_alert_days: Optional[int] = Field(None, alias="expirationAlertDays", ge=1, le=30)


# --- Sync payloads ---

class SyncPayload(BaseModel):
    """Any subset of the eleven section keys.

    Presence is tracked through `model_fields_set`; an omitted key leaves the
    stored section untouched.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    inventory: Optional[list[SyncInventoryItem]] = None
    recipes: Optional[list[SyncRecipe]] = None
    meal_plans: Optional[list[SyncMealPlan]] = Field(None, alias="mealPlans")
    shopping_list: Optional[list[SyncShoppingItem]] = Field(None, alias="shoppingList")
    cookware: Optional[list[SyncCookwareItem]] = None

    preferences: Any = None
    waste_log: Optional[list[Any]] = Field(None, alias="wasteLog")
    consumed_log: Optional[list[Any]] = Field(None, alias="consumedLog")
    analytics: Any = None
    onboarding: Any = None
    custom_locations: Optional[list[Any]] = Field(None, alias="customLocations")
    user_profile: Any = Field(None, alias="userProfile")


class SyncPushRequest(BaseModel):
    data: SyncPayload


class MigrateGuestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guest_id: Optional[str] = Field(None, alias="guestId")
    data: Optional[SyncPayload] = None


class SyncItemUpsertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: dict[str, Any]
    client_timestamp: Optional[str] = Field(None, alias="clientTimestamp")


# --- Backup ---

class BackupEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1]
    exported_at: str = Field(..., alias="exportedAt")
    data: dict[str, Any]


class BackupImportRequest(BaseModel):
    backup: BackupEnvelope
    mode: Literal["merge", "replace"]
