"""Merge engine for fastsync.

Reconciles a local collection against the collection the remote store
returned after a bulk sync. One function per entity kind, each with its own
conflict policy:

- Fasts: the copy with the later effective time wins (end_time if ended,
  else start_time). Remote wins ties.
- Weights: remote always wins for shared ids; local-only entries are kept.
- Profile: remote wins for fields it has set, badges are unioned, and local
  optional fields (custom avatar, onboarding answers) survive remote nulls.

All functions are pure, never raise on well-formed models, and are
idempotent: merging a result against the same remote data again returns
the same result.
"""

from __future__ import annotations

from dataclasses import replace
from typing import AbstractSet, Dict, Iterable, List, Optional, TypeVar

from .models import Fast, UserProfile, WeightEntry, unique_badges

__all__ = ["merge_fasts", "merge_weights", "merge_profiles", "remote_fast_wins"]

T = TypeVar("T")


def remote_fast_wins(local: Fast, remote: Fast) -> bool:
    """Whether the remote copy of a fast replaces the local one."""
    return remote.effective_time >= local.effective_time


def merge_fasts(
    local: Iterable[Fast],
    remote: Iterable[Fast],
    deleted_ids: AbstractSet[str] = frozenset(),
) -> List[Fast]:
    """Merge local and remote fasts, most-recently-active wins.

    Args:
        local: Fasts from the Local Store
        remote: Fasts returned by the remote, already converted to local shape
        deleted_ids: Ids deleted locally and still pending remote deletion;
            these are dropped from the result whichever side holds them

    Returns:
        Merged fasts sorted by start_time descending
    """
    merged: Dict[str, Fast] = {fast.id: fast for fast in local}

    for remote_fast in remote:
        local_fast = merged.get(remote_fast.id)
        if local_fast is None or remote_fast_wins(local_fast, remote_fast):
            merged[remote_fast.id] = remote_fast

    result = [fast for fast in merged.values() if fast.id not in deleted_ids]
    # sorted() is stable, so equal start times keep their relative order
    return sorted(result, key=lambda fast: fast.start_time, reverse=True)


def merge_weights(
    local: Iterable[WeightEntry], remote: Iterable[WeightEntry]
) -> List[WeightEntry]:
    """Merge weight entries; remote is authoritative for shared ids.

    Returns:
        Merged entries sorted by date descending (YYYY-MM-DD sorts lexically)
    """
    merged: Dict[str, WeightEntry] = {entry.id: entry for entry in local}
    for entry in remote:
        merged[entry.id] = entry
    return sorted(merged.values(), key=lambda entry: entry.date, reverse=True)


def _remote_or_local(remote_value: Optional[T], local_value: Optional[T]) -> Optional[T]:
    return remote_value if remote_value is not None else local_value


def merge_profiles(local: UserProfile, remote: Optional[UserProfile]) -> UserProfile:
    """Merge the profile singleton field by field.

    Args:
        local: Profile from the Local Store
        remote: Profile returned by the remote, or None if the remote has none

    Returns:
        The remote profile with the union of both badge sets. Optional
        fields the remote leaves unset (the custom avatar and the onboarding
        answers, which the remote does not store) keep their local values.
        The local profile unchanged if remote is None.
    """
    if remote is None:
        return local

    return replace(
        remote,
        unlocked_badges=unique_badges(local.unlocked_badges + remote.unlocked_badges),
        custom_avatar_uri=_remote_or_local(remote.custom_avatar_uri, local.custom_avatar_uri),
        fasting_goal=_remote_or_local(remote.fasting_goal, local.fasting_goal),
        experience_level=_remote_or_local(remote.experience_level, local.experience_level),
        preferred_plan_id=_remote_or_local(remote.preferred_plan_id, local.preferred_plan_id),
        onboarding_completed=_remote_or_local(
            remote.onboarding_completed, local.onboarding_completed
        ),
    )
