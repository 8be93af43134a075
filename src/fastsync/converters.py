"""Entity converters between the local model shape and the wire shape.

This is the only place where optional-field representations are
normalized: an absent local field (None) is sent as an explicit JSON null,
and a wire null or missing key comes back as None or the field's default.
The merge engine only ever sees local models.

Every function here is pure and total over its declared input.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import (
    DEFAULT_WEIGHT_UNIT,
    Fast,
    UserProfile,
    WaterEntry,
    WeightEntry,
    _float_or,
    _int_or,
    _optional_bool,
    _optional_int,
    _optional_str,
    _str_or,
    unique_badges,
)
from .validation import WEIGHT_UNITS

__all__ = [
    "fast_to_wire",
    "wire_to_fast",
    "weight_to_wire",
    "wire_to_weight",
    "profile_to_wire",
    "wire_to_profile",
    "water_to_wire",
    "wire_to_water",
]

WireDict = Dict[str, Any]


def fast_to_wire(fast: Fast) -> WireDict:
    """Convert a local Fast to its wire form."""
    return {
        "id": fast.id,
        "startTime": fast.start_time,
        "endTime": fast.end_time,
        "targetDuration": fast.target_duration,
        "planId": fast.plan_id,
        "planName": fast.plan_name,
        "completed": fast.completed,
        "note": fast.note,
    }


def wire_to_fast(data: WireDict) -> Fast:
    """Convert a wire fast to a local Fast.

    Nulls and values of the wrong type fall back to the field default;
    completed is only True for a JSON true.
    """
    return Fast(
        id=str(data["id"]),
        start_time=_int_or(data.get("startTime"), 0),
        end_time=_optional_int(data.get("endTime")),
        target_duration=_float_or(data.get("targetDuration"), 0.0),
        plan_id=_str_or(data.get("planId"), ""),
        plan_name=_str_or(data.get("planName"), ""),
        completed=data.get("completed") is True,
        note=_optional_str(data.get("note")),
    )


def weight_to_wire(weight: WeightEntry) -> WireDict:
    return {"id": weight.id, "date": weight.date, "weight": weight.weight}


def wire_to_weight(data: WireDict) -> WeightEntry:
    return WeightEntry(
        id=str(data["id"]),
        date=_str_or(data.get("date"), ""),
        weight=_float_or(data.get("weight"), 0.0),
    )


def water_to_wire(entry: WaterEntry) -> WireDict:
    return {"date": entry.date, "cups": entry.cups}


def wire_to_water(data: WireDict) -> WaterEntry:
    return WaterEntry(
        date=_str_or(data.get("date"), ""),
        cups=_int_or(data.get("cups"), 0),
    )


def profile_to_wire(profile: UserProfile) -> WireDict:
    """Convert the local profile to its wire form, onboarding fields included."""
    return {
        "displayName": profile.display_name,
        "avatarId": profile.avatar_id,
        "customAvatarUri": profile.custom_avatar_uri,
        "weightUnit": profile.weight_unit,
        "notificationsEnabled": profile.notifications_enabled,
        "unlockedBadges": list(profile.unlocked_badges),
        "fastingGoal": profile.fasting_goal,
        "experienceLevel": profile.experience_level,
        "preferredPlanId": profile.preferred_plan_id,
        "onboardingCompleted": profile.onboarding_completed,
    }


def wire_to_profile(data: WireDict) -> UserProfile:
    """Convert a wire profile to the local shape, applying defaults for nulls.

    An unknown weight unit falls back to the default unit. Onboarding keys
    the remote does not store come back as None.
    """
    weight_unit: Optional[str] = data.get("weightUnit")
    if weight_unit not in WEIGHT_UNITS:
        weight_unit = DEFAULT_WEIGHT_UNIT
    badges = data.get("unlockedBadges")
    return UserProfile(
        display_name=_str_or(data.get("displayName"), ""),
        avatar_id=_int_or(data.get("avatarId"), 0),
        custom_avatar_uri=_optional_str(data.get("customAvatarUri")),
        weight_unit=weight_unit,
        notifications_enabled=data.get("notificationsEnabled") is True,
        unlocked_badges=unique_badges(badges if isinstance(badges, list) else None),
        fasting_goal=_optional_str(data.get("fastingGoal")),
        experience_level=_optional_str(data.get("experienceLevel")),
        preferred_plan_id=_optional_str(data.get("preferredPlanId")),
        onboarding_completed=_optional_bool(data.get("onboardingCompleted")),
    )
