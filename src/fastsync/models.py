"""Data models for fastsync.

This module defines immutable dataclasses for the normalized local shape of
the synchronized entities: Fast, WeightEntry, WaterEntry and UserProfile.

All instants are integer epoch milliseconds. Optional fields are None when
absent; the persisted local JSON omits them entirely. Wire (remote) shapes
live in converters.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Tuple

from uuid6 import uuid7

DEFAULT_WEIGHT_UNIT = "lbs"


def generate_id() -> str:
    """Generate a client-side entity ID (UUID7 hex, time-ordered)."""
    return uuid7().hex


def unique_badges(badges: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Deduplicate badge ids, keeping first-seen order."""
    if not badges:
        return ()
    seen: Dict[str, None] = {}
    for badge in badges:
        if isinstance(badge, str):
            seen.setdefault(badge, None)
    return tuple(seen)


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    return default


def _float_or(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default


def _str_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


@dataclass(frozen=True)
class Fast:
    """A fasting session.

    A fast without end_time is still in progress. completed is only ever
    set together with end_time by the app flow; nothing here enforces it.

    Attributes:
        id: Client-generated unique identifier
        start_time: When the fast started (epoch ms)
        target_duration: Planned length in hours
        plan_id: Identifier of the fasting plan (e.g. "16-8")
        plan_name: Display name of the plan
        completed: Whether the target was reached
        end_time: When the fast ended (None while active)
        note: Free-form user note
    """

    id: str
    start_time: int
    target_duration: float
    plan_id: str
    plan_name: str
    completed: bool = False
    end_time: Optional[int] = None
    note: Optional[str] = None

    @property
    def effective_time(self) -> int:
        """end_time if the fast has ended, else start_time."""
        return self.end_time if self.end_time is not None else self.start_time

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def with_end(self, end_time: int, completed: bool) -> "Fast":
        """Return a copy of this fast ended at end_time."""
        return replace(self, end_time=end_time, completed=completed)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted local shape (optional fields omitted when None)."""
        data: Dict[str, Any] = {
            "id": self.id,
            "startTime": self.start_time,
            "targetDuration": self.target_duration,
            "planId": self.plan_id,
            "planName": self.plan_name,
            "completed": self.completed,
        }
        if self.end_time is not None:
            data["endTime"] = self.end_time
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fast":
        return cls(
            id=str(data.get("id", "")),
            start_time=_int_or(data.get("startTime"), 0),
            target_duration=_float_or(data.get("targetDuration"), 0.0),
            plan_id=_str_or(data.get("planId"), ""),
            plan_name=_str_or(data.get("planName"), ""),
            completed=data.get("completed") is True,
            end_time=_optional_int(data.get("endTime")),
            note=_optional_str(data.get("note")),
        )


@dataclass(frozen=True)
class WeightEntry:
    """A body weight reading for one calendar day.

    Attributes:
        id: Client-generated unique identifier
        date: Calendar day as YYYY-MM-DD
        weight: Reading in the profile's weight unit
    """

    id: str
    date: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "date": self.date, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeightEntry":
        return cls(
            id=str(data.get("id", "")),
            date=_str_or(data.get("date"), ""),
            weight=_float_or(data.get("weight"), 0.0),
        )


@dataclass(frozen=True)
class WaterEntry:
    """Cups of water logged for one calendar day."""

    date: str
    cups: int

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "cups": self.cups}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterEntry":
        return cls(date=_str_or(data.get("date"), ""), cups=_int_or(data.get("cups"), 0))


@dataclass(frozen=True)
class UserProfile:
    """The signed-in user's profile (a singleton locally and remotely).

    Attributes:
        display_name: Name shown in the app
        avatar_id: Index of the built-in avatar
        weight_unit: "lbs" or "kg"
        notifications_enabled: Whether reminders are on
        unlocked_badges: Achievement ids, unique, in unlock order
        custom_avatar_uri: Local file reference to a custom avatar image
        fasting_goal: Onboarding answer
        experience_level: Onboarding answer
        preferred_plan_id: Onboarding answer
        onboarding_completed: Whether onboarding was finished
    """

    display_name: str = ""
    avatar_id: int = 0
    weight_unit: str = DEFAULT_WEIGHT_UNIT
    notifications_enabled: bool = False
    unlocked_badges: Tuple[str, ...] = field(default_factory=tuple)
    custom_avatar_uri: Optional[str] = None
    fasting_goal: Optional[str] = None
    experience_level: Optional[str] = None
    preferred_plan_id: Optional[str] = None
    onboarding_completed: Optional[bool] = None

    def with_badge(self, badge_id: str) -> "UserProfile":
        """Return a copy with badge_id unlocked."""
        return replace(self, unlocked_badges=unique_badges(self.unlocked_badges + (badge_id,)))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "displayName": self.display_name,
            "avatarId": self.avatar_id,
            "weightUnit": self.weight_unit,
            "notificationsEnabled": self.notifications_enabled,
            "unlockedBadges": list(self.unlocked_badges),
        }
        optional = {
            "customAvatarUri": self.custom_avatar_uri,
            "fastingGoal": self.fasting_goal,
            "experienceLevel": self.experience_level,
            "preferredPlanId": self.preferred_plan_id,
            "onboardingCompleted": self.onboarding_completed,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            display_name=_str_or(data.get("displayName"), ""),
            avatar_id=_int_or(data.get("avatarId"), 0),
            weight_unit=_str_or(data.get("weightUnit"), DEFAULT_WEIGHT_UNIT),
            notifications_enabled=data.get("notificationsEnabled") is True,
            unlocked_badges=unique_badges(data.get("unlockedBadges")),
            custom_avatar_uri=_optional_str(data.get("customAvatarUri")),
            fasting_goal=_optional_str(data.get("fastingGoal")),
            experience_level=_optional_str(data.get("experienceLevel")),
            preferred_plan_id=_optional_str(data.get("preferredPlanId")),
            onboarding_completed=_optional_bool(data.get("onboardingCompleted")),
        )


def default_profile() -> UserProfile:
    """Profile used when nothing has been stored yet."""
    return UserProfile()
