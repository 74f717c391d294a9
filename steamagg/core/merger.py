"""Reconcile identity, snapshot and statistics-API documents into one MergedProfile."""

from dataclasses import dataclass
from typing import Any

from steamagg.models.identity import IdentityRecord
from steamagg.models.profile import (
    Avatars,
    Awards,
    BadgeEntry,
    Badges,
    Friend,
    Group,
    MergedProfile,
    PlayedGame,
    ProfileInfo,
    RecentlyPlayed,
    Stats,
)
from steamagg.models.snapshot import ScrapeSnapshot


PERSONA_STATES = {
    1: "online",
    3: "away",
    4: "snooze",
}


@dataclass
class ChangeFlags:
    """What this request changed relative to persisted state."""

    avatar_changed: bool = False
    badge_count_changed: bool = False
    vanity_changed: bool = False
    is_new_user: bool = False


def _response(doc: Any) -> dict:
    if isinstance(doc, dict) and isinstance(doc.get("response"), dict):
        return doc["response"]
    return {}


def summary_player(summary_doc: Any) -> dict:
    """First player entry of a GetPlayerSummaries body, {} if absent."""
    players = _response(summary_doc).get("players")
    if isinstance(players, list) and players and isinstance(players[0], dict):
        return players[0]
    return {}


def persona_status(persona_state: Any) -> str:
    """
    Map a numeric persona state to a display status.

    Only called for accounts the profile page shows as online, so anything
    unmapped (including a missing state) stays "online".
    """
    if not isinstance(persona_state, int):
        return "online"
    return PERSONA_STATES.get(persona_state, "online")


def derive_presence(snapshot: ScrapeSnapshot, player: dict) -> tuple[str, str | None]:
    """
    Work out status and current game.

    Args:
        snapshot: Snapshot in effect for this request
        player: Freshest available summary player entry ({} if none)

    Returns:
        (status, game) tuple
    """
    scraped = snapshot.profile.status
    if scraped == "in-game":
        return "in-game", snapshot.profile.game or player.get("gameextrainfo") or None
    if scraped == "online":
        return persona_status(player.get("personastate")), None
    return "offline", None


def merge_profile(
    identity: IdentityRecord,
    permalink: str,
    snapshot: ScrapeSnapshot,
    badges_doc: Any,
    recent_doc: Any,
    summary_doc: Any,
    flags: ChangeFlags,
) -> MergedProfile:
    """
    Assemble the merged profile.

    Real-time attributes (status, avatar, background, level) come from the
    snapshot; authoritative counters (badge xp and level, playtime) come from
    the statistics API. Identity values fill in whatever both lack.
    """
    player = summary_player(summary_doc)
    badges = _response(badges_doc)
    recent = _response(recent_doc)
    header = snapshot.profile
    panel = snapshot.side_panel

    status, game = derive_presence(snapshot, player)

    profile = ProfileInfo(
        name=player.get("personaname") or header.persona_name or identity.real_name or "",
        realname=player.get("realname") or identity.real_name or "",
        avatars=Avatars(
            avatar=player.get("avatar"),
            avatarmedium=player.get("avatarmedium"),
            avatarfull=player.get("avatarfull"),
            avatarhash=player.get("avatarhash"),
            scraped=header.avatar,
        ),
        avatar_frame=header.avatar_frame,
        background=header.background_image,
        url=identity.profile_url,
        permalink=permalink,
        country=player.get("loccountrycode") or identity.country,
        created=identity.account_created,
        level=header.level or badges.get("player_level"),
        level_stage=header.level_stage,
        bio=header.bio.text if header.bio else None,
        status=status,
        game=game,
    )

    favorite = header.favorite_badge.model_dump() if header.favorite_badge else None
    badge_list = badges.get("badges") if isinstance(badges.get("badges"), list) else []
    games = recent.get("games") if isinstance(recent.get("games"), list) else []

    groups = []
    if panel.groups and panel.groups.primary:
        primary = panel.groups.primary
        groups.append(Group(
            name=primary.name, url=primary.link, avatar=primary.image, members=primary.members,
        ))

    return MergedProfile(
        steamid=identity.steam64,
        profile=profile,
        stats=Stats(
            games=snapshot.stat_count("games"),
            reviews=snapshot.stat_count("reviews"),
            screenshots=snapshot.stat_count("screenshots"),
            friends=panel.friends.count or None if panel.friends else None,
            groups=panel.groups.count or None if panel.groups else None,
        ),
        badges=Badges(
            count=snapshot.badge_count,
            xp=badges.get("player_xp") or 0,
            level=badges.get("player_level") or 0,
            needed=badges.get("player_xp_needed_to_level_up") or 0,
            favorite=favorite,
            items=[
                BadgeEntry(
                    badgeid=b.get("badgeid"),
                    level=b.get("level"),
                    xp=b.get("xp"),
                    scarcity=b.get("scarcity"),
                )
                for b in badge_list
                if isinstance(b, dict)
            ],
        ),
        awards=Awards(
            count=panel.awards.count if panel.awards else 0,
            items=[a.model_dump() for a in panel.awards.awards] if panel.awards else [],
        ),
        recently_played=RecentlyPlayed(
            total=recent.get("total_count") or 0,
            games=[
                PlayedGame(
                    appid=g.get("appid"),
                    name=g.get("name"),
                    playtime_2weeks=g.get("playtime_2weeks"),
                    playtime_forever=g.get("playtime_forever"),
                )
                for g in games
                if isinstance(g, dict)
            ],
        ),
        friends=[
            Friend(name=f.name, url=f.link, avatar=f.avatar, level=f.level, status=f.status)
            for f in (panel.friends.top if panel.friends else [])
        ],
        groups=groups,
        avatar_changed=flags.avatar_changed,
        badge_count_changed=flags.badge_count_changed,
        vanity_changed=flags.vanity_changed,
        is_new_user=flags.is_new_user,
    )


def to_response(profile: MergedProfile) -> dict:
    """JSON-ready dict using the public camelCase field names."""
    return profile.model_dump(mode="json", by_alias=True)
