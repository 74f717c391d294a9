"""Change detection - decides which statistics-API categories to refresh."""

from dataclasses import dataclass
from typing import Any

from steamagg.models.snapshot import ScrapeSnapshot


@dataclass(frozen=True)
class RefreshPlan:
    """Categories to re-fetch for one request."""

    badges: bool = False
    recently_played: bool = False
    summary: bool = False
    avatar_changed: bool = False
    status_recheck: bool = False

    @property
    def any(self) -> bool:
        return self.badges or self.recently_played or self.summary


def stored_badge_count(badges_doc: Any) -> int | None:
    """Length of the stored badge list, None if the document is missing or malformed."""
    if not isinstance(badges_doc, dict):
        return None
    response = badges_doc.get("response")
    if not isinstance(response, dict):
        return None
    badges = response.get("badges")
    return len(badges) if isinstance(badges, list) else None


def has_recent_games(recent_doc: Any) -> bool:
    """True when the stored recently-played document holds a games list."""
    if not isinstance(recent_doc, dict):
        return False
    response = recent_doc.get("response")
    return isinstance(response, dict) and isinstance(response.get("games"), list)


def avatar_changed(snapshot: ScrapeSnapshot) -> bool:
    """
    Compare the scraped avatar against the one summary.json was last fetched against.

    Both sides come from the profile page, so the URLs are directly comparable.
    The basis only moves when a summary refresh succeeds, so a change stays
    pending across failed refreshes. With no avatar on either side there is
    nothing to compare.
    """
    current_avatar = snapshot.profile.avatar
    basis = snapshot.summary_avatar
    return bool(current_avatar and basis and current_avatar != basis)


def plan_refresh(
    snapshot: ScrapeSnapshot,
    badges_doc: Any,
    recent_doc: Any,
    status_recheck_due: bool,
) -> RefreshPlan:
    """
    Decide which categories need a statistics-API call this request.

    Args:
        snapshot: Snapshot in effect for this request
        badges_doc: Stored GetBadges body or None
        recent_doc: Stored GetRecentlyPlayedGames body or None
        status_recheck_due: Whether the online-status cooldown has elapsed

    Returns:
        RefreshPlan; summary is requested at most once even when both
        avatar change and status recheck apply
    """
    refresh_badges = stored_badge_count(badges_doc) != snapshot.badge_count
    refresh_recent = not has_recent_games(recent_doc)

    changed = avatar_changed(snapshot)
    recheck = snapshot.profile.status == "online" and status_recheck_due

    return RefreshPlan(
        badges=refresh_badges,
        recently_played=refresh_recent,
        summary=changed or recheck,
        avatar_changed=changed,
        status_recheck=recheck,
    )
