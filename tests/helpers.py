"""Test helper functions for fastsync tests.

Builders for local models and their wire counterparts with sensible
defaults, so each test only spells out the fields it cares about.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastsync.models import Fast, UserProfile, WeightEntry

TEST_TOKEN = "test-token"
TEST_EMAIL = "faster@example.com"
TEST_PASSWORD = "correct horse"

HOUR_MS = 60 * 60 * 1000


def make_fast(
    fast_id: str = "f1",
    start_time: int = 1000,
    end_time: Optional[int] = None,
    completed: bool = False,
    note: Optional[str] = None,
    target_duration: float = 16.0,
    plan_id: str = "16-8",
    plan_name: str = "16:8",
) -> Fast:
    return Fast(
        id=fast_id,
        start_time=start_time,
        end_time=end_time,
        target_duration=target_duration,
        plan_id=plan_id,
        plan_name=plan_name,
        completed=completed,
        note=note,
    )


def make_wire_fast(
    fast_id: str = "f1",
    start_time: int = 1000,
    end_time: Optional[int] = None,
    completed: Optional[bool] = False,
    note: Optional[str] = None,
    target_duration: float = 16.0,
) -> Dict[str, Any]:
    return {
        "id": fast_id,
        "startTime": start_time,
        "endTime": end_time,
        "targetDuration": target_duration,
        "planId": "16-8",
        "planName": "16:8",
        "completed": completed,
        "note": note,
    }


def make_weight(weight_id: str = "w1", date: str = "2024-01-15", weight: float = 150.0) -> WeightEntry:
    return WeightEntry(id=weight_id, date=date, weight=weight)


def make_profile(**overrides: Any) -> UserProfile:
    fields: Dict[str, Any] = {
        "display_name": "Local Name",
        "avatar_id": 1,
        "weight_unit": "lbs",
        "notifications_enabled": True,
        "unlocked_badges": ("first_fast",),
    }
    fields.update(overrides)
    return UserProfile(**fields)


class FakeClock:
    """Callable epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms
