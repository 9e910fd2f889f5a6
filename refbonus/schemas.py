"""Pydantic schemas for the refbonus API.

Define the structure of input and output data for Ninja API endpoints.
Field descriptions are exposed in the OpenAPI schema for interactive docs.
"""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import BonusCondition, BonusDirection, BonusType


class BaseSchema(BaseModel):
    """Base schema with ORM/Django model support.

    Enables population from Django model instances via from_attributes.
    """

    model_config = ConfigDict(from_attributes=True)


class StatusResponse(BaseModel):
    """Generic API response envelope: ``ok`` or ``error`` plus a message."""

    status: str = Field(..., description="'ok' on success, 'error' otherwise.")
    message: str = Field(..., description="'succeed.' or 'error=<detail>!'.")
    data: dict[str, Any] | None = Field(None, description="Optional result payload.")

    @classmethod
    def ok(cls, **data: Any) -> dict[str, Any]:
        body: dict[str, Any] = {"status": "ok", "message": "succeed."}
        if data:
            body["data"] = data
        return body

    @classmethod
    def error(cls, detail: str) -> dict[str, Any]:
        return {"status": "error", "message": f"error={detail}!"}


class ReferralIntakeSchema(BaseModel):
    """Request body for declaring the caller's referrer and bonus terms.

    All codes must belong to their closed taxonomy. ``bonus_type`` may be omitted,
    in which case the configured default bonus type is used.
    """

    model_config = ConfigDict(extra="ignore")

    referred_by_uid: str = Field("", description="UID of the referring user; empty for organic users.")
    bonus_condition: int = Field(BonusCondition.IMMEDIATELY, description="1 = immediately, 2 = on time.")
    bonus_direction: int = Field(BonusDirection.BIDIRECTIONAL, description="1 = uid, 2 = referred_by_uid, 3 = both.")
    bonus_type: int | None = Field(None, description="Bonus duration class code (1 daily … 7 lifetime).")
    is_integrated_purchase_service: bool = Field(False, description="Push accruals to the external entitlement service.")

    @field_validator("referred_by_uid")
    @classmethod
    def strip_referred_by_uid(cls, v: str) -> str:
        return v.strip()

    @field_validator("bonus_condition")
    @classmethod
    def validate_condition(cls, v: int) -> int:
        if v not in BonusCondition.values:
            raise ValueError(f"bonus_condition must be one of {BonusCondition.values}")
        return v

    @field_validator("bonus_direction")
    @classmethod
    def validate_direction(cls, v: int) -> int:
        if v not in BonusDirection.values:
            raise ValueError(f"bonus_direction must be one of {BonusDirection.values}")
        return v

    @field_validator("bonus_type")
    @classmethod
    def validate_bonus_type(cls, v: int | None) -> int | None:
        if v is not None and v not in BonusType.values:
            raise ValueError(f"bonus_type must be one of {BonusType.values}")
        return v


class ReferralRecordSchema(BaseSchema):
    """Stored referral record of a user."""

    uid: str = Field(..., description="Owner of the record.")
    referred_by_uid: str = Field("", description="Referring user; empty for organic users.")
    bonus_condition: int = Field(..., description="Bonus condition code.")
    bonus_direction: int = Field(..., description="Bonus direction code.")
    bonus_type: int = Field(..., description="Bonus duration class code.")
    level: int = Field(0, description="Reserved.")
    is_integrated_purchase_service: bool = Field(..., description="Accruals are pushed to the entitlement service.")
    created_at: int = Field(..., description="Creation time, epoch seconds.")
    updated_at: int = Field(..., description="Last update time, epoch seconds.")


class BonusItemSchema(BaseSchema):
    """One immutable accrual event in a bonus history."""

    referraled_at: int = Field(..., description="Timestamp of the triggering referral event.")
    started_at: int = Field(..., description="When the accrual was processed.")
    bonus_type: int = Field(..., description="Bonus duration class code.")
    expire_time: int = Field(..., description="Granted duration in seconds.")


class BonusHistorySchema(BaseSchema):
    """Bonus ledger of a user. A user without history is returned as the zero value."""

    uid: str = Field(..., description="Owner of the ledger.")
    created_at: int = Field(0, description="Creation time, epoch seconds.")
    updated_at: int = Field(0, description="Last accrual time, epoch seconds.")
    expired_at: int = Field(0, description="Cumulative granted seconds.")
    bonuses: List[BonusItemSchema] = Field(default_factory=list, description="Accruals in insertion order.")

    @field_validator("bonuses", mode="before")
    @classmethod
    def validate_bonuses(cls, v: Any) -> list:
        if hasattr(v, "all"):
            return list(v.all())
        return v


class FirestoreValueSchema(BaseModel):
    """One side (old or new) of a document change event with typed field wrappers."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field("", description="Full resource name of the document.")
    fields: dict[str, dict[str, Any]] = Field(default_factory=dict, description="Typed fields, e.g. {'uid': {'stringValue': 'u1'}}.")

    def to_dict(self) -> dict[str, Any]:
        """Unwraps typed values into plain Python values."""
        result: dict[str, Any] = {}
        for key, wrapper in self.fields.items():
            if "integerValue" in wrapper:
                try:
                    result[key] = int(wrapper["integerValue"])
                except (TypeError, ValueError):
                    result[key] = None
            elif "stringValue" in wrapper:
                result[key] = wrapper["stringValue"]
            elif "booleanValue" in wrapper:
                result[key] = bool(wrapper["booleanValue"])
            elif "doubleValue" in wrapper:
                result[key] = float(wrapper["doubleValue"])
            elif "nullValue" in wrapper:
                result[key] = None
        return result


class ReferralChangeEventSchema(BaseModel):
    """Externally delivered change event of a referral record (prior and new state)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    old_value: FirestoreValueSchema | None = Field(None, alias="oldValue", description="State before the change; absent on create.")
    value: FirestoreValueSchema = Field(..., description="State after the change.")
