"""BeautifulSoup-based HTML parsers for Steam profile and id-resolver pages."""

import re
from datetime import datetime

from bs4 import BeautifulSoup, NavigableString, Tag

from steamagg.exceptions import ResolutionError, ScrapeError
from steamagg.models.identity import IdentityRecord
from steamagg.models.snapshot import ScrapeSnapshot


# Selectors - centralized for easy updates when Steam changes their DOM
SELECTORS = {
    "profile_page": ".profile_page",
    "static_background": ".has_profile_background[style]",
    "animated_background": ".profile_animated_background",
    "persona_name": ".actual_persona_name",
    "avatar_container": ".playerAvatarAutoSizeInner",
    "avatar_frame": ".profile_avatar_frame img",
    "header_level": ".persona_level .friendPlayerLevel",
    "level": ".friendPlayerLevel",
    "level_num": ".friendPlayerLevelNum",
    "favorite_badge": "a.favorite_badge",
    "bio": ".profile_summary",
    "status": (
        ".profile_in_game, .profile_in_nonsteam_game, .profile_in_game_header, "
        ".profile_in_nonsteam_game_header, .profile_online, .profile_offline, "
        ".profile_away, .profile_busy, .profile_snooze"
    ),
    "status_game_name": ".profile_in_game_name",
    "status_join_link": ".profile_in_game_joingame a",
    "awards": ".profile_awards",
    "badges": ".profile_badges",
    "badge_item": ".profile_badges_badge",
    "count_link": ".profile_count_link a",
    "count_total": ".profile_count_link_total",
    "item_links": ".profile_item_links .profile_count_link",
    "groups": ".profile_group_links",
    "primary_group": ".profile_primary_group",
    "friends": ".profile_friend_links",
    "friend_block": ".profile_topfriends .friendBlock",
    "recent_total": ".recentgame_quicklinks.recentgame_recentplaytime > div",
    "recent_game": ".recent_game",
}

BACKGROUND_URL = re.compile(r"background-image\s*:\s*url\(\s*['\"]?(.*?)['\"]?\s*\)")
TAG_PATTERN = re.compile(r"<[^>]+>")
STATUS_CLASSES = ("online", "offline", "away", "busy", "snooze")


def _text(el: Tag | None) -> str:
    return el.get_text(strip=True) if el is not None else ""


def _attr(el: Tag | None, name: str) -> str | None:
    if el is None:
        return None
    value = el.get(name)
    return value or None


def _to_int(value: str | None) -> int:
    """Parse a displayed count such as "1,024", returning 0 for blanks or &nbsp;."""
    if not value:
        return 0
    digits = value.replace(",", "").replace("\xa0", "").strip()
    try:
        return int(digits)
    except ValueError:
        return 0


def _tooltip_lines(el: Tag) -> list[str]:
    tooltip = el.get("data-tooltip-html") or ""
    return [TAG_PATTERN.sub("", line).strip() for line in tooltip.split("<br>")]


def _level_stage(el: Tag | None) -> str | None:
    if el is None:
        return None
    for cls in el.get("class", []):
        if cls.startswith("lvl_"):
            return cls
    return None


def _section_header(section: Tag) -> dict:
    return {
        "link": _attr(section.select_one(SELECTORS["count_link"]), "href"),
        "count": _to_int(_text(section.select_one(SELECTORS["count_total"]))),
    }


def parse_status(soup: BeautifulSoup) -> dict:
    """Extract presence, current game and join link."""
    status_el = soup.select_one(SELECTORS["status"])
    result = {"status": None, "game": None, "join_game_link": None}
    if status_el is None:
        return result

    classes = set(status_el.get("class", []))
    # The wrapper carries profile_in_game for every state; the persona class decides
    in_game = bool({"in-game", "in_nonsteam_game", "profile_in_nonsteam_game"} & classes)
    if in_game:
        result["status"] = "in-game"
        result["game"] = _text(status_el.select_one(SELECTORS["status_game_name"])) or None
        result["join_game_link"] = _attr(
            status_el.select_one(SELECTORS["status_join_link"]), "href"
        )
        return result

    for name in STATUS_CLASSES:
        if name in classes or f"profile_{name}" in classes:
            result["status"] = name
            break
    return result


def parse_header(soup: BeautifulSoup) -> dict:
    """
    Extract the profile header: backgrounds, avatar, level, favourite badge, bio, status.

    Args:
        soup: BeautifulSoup object of the page

    Returns:
        Dict matching SnapshotProfile fields
    """
    profile: dict = {}

    persona = soup.select_one(SELECTORS["persona_name"])
    if persona:
        profile["persona_name"] = _text(persona) or None

    static_bg = soup.select_one(SELECTORS["static_background"])
    if static_bg:
        match = BACKGROUND_URL.search(static_bg.get("style", ""))
        if match:
            profile["background_image"] = match.group(1)

    animated_bg = soup.select_one(SELECTORS["animated_background"])
    if animated_bg:
        video = animated_bg.find("video")
        poster = _attr(video, "poster")
        sources = []
        if video is not None:
            for source in video.find_all("source"):
                src, kind = source.get("src"), source.get("type")
                if src and kind:
                    sources.append({"src": src, "type": kind})
        if poster or sources:
            profile["animated_background"] = {"poster": poster, "sources": sources}

    avatar_container = soup.select_one(SELECTORS["avatar_container"])
    if avatar_container:
        profile["avatar_frame"] = _attr(
            avatar_container.select_one(SELECTORS["avatar_frame"]), "src"
        )
        # Last direct <img> child is the avatar itself; framed avatars nest another img
        for img in avatar_container.find_all("img", recursive=False):
            if img.get("src"):
                profile["avatar"] = img["src"]

    level_el = soup.select_one(SELECTORS["header_level"])
    if level_el:
        level = _text(level_el.select_one(SELECTORS["level_num"]))
        profile["level"] = _to_int(level) if level else None
        profile["level_stage"] = _level_stage(level_el)

    fav = soup.select_one(SELECTORS["favorite_badge"])
    if fav:
        profile["favorite_badge"] = {
            "link": _attr(fav, "href"),
            "image": _attr(fav.select_one(".favorite_badge_icon img"), "src"),
            "name": _text(fav.select_one(".favorite_badge_description .name")) or None,
            "xp": _text(fav.select_one(".favorite_badge_description .xp")) or None,
        }

    bio_el = soup.select_one(SELECTORS["bio"])
    if bio_el:
        parts = []
        for node in bio_el.children:
            if isinstance(node, NavigableString):
                parts.append(str(node))
            elif node.name == "img" and "emoticon" in node.get("class", []):
                parts.append(node.get("alt", ""))
            else:
                parts.append(node.get_text())
        profile["bio"] = {
            "raw": bio_el.decode_contents().strip(),
            "text": "".join(parts).strip(),
        }

    profile.update(parse_status(soup))
    return profile


def parse_side_panel(soup: BeautifulSoup) -> dict:
    """Extract awards, badges, item-link stats, groups and friends."""
    panel: dict = {"stats": {}}

    awards = soup.select_one(SELECTORS["awards"])
    if awards:
        items = []
        for el in awards.select(SELECTORS["badge_item"]):
            items.append({
                "image": _attr(el.find("img"), "src"),
                "name": _tooltip_lines(el)[0],
            })
        panel["awards"] = {**_section_header(awards), "awards": items}

    badges = soup.select_one(SELECTORS["badges"])
    if badges:
        items = []
        for el in badges.select(SELECTORS["badge_item"]):
            lines = _tooltip_lines(el)
            items.append({
                "image": _attr(el.find("img"), "src"),
                "name": lines[0],
                "level": lines[1] if len(lines) > 1 else None,
                "link": _attr(el.find("a"), "href"),
            })
        panel["badges"] = {**_section_header(badges), "badges": items}

    for el in soup.select(SELECTORS["item_links"]):
        link = el.find("a")
        if link is None:
            continue
        name = _text(link.select_one(".count_link_label"))
        if not name:
            continue
        key = re.sub(r"\s+", "_", name.lower())
        panel["stats"][key] = {
            "name": name,
            "count": _to_int(_text(link.select_one(SELECTORS["count_total"]))),
            "link": _attr(link, "href"),
        }

    groups = soup.select_one(SELECTORS["groups"])
    if groups:
        primary = groups.select_one(SELECTORS["primary_group"])
        preview = None
        if primary:
            name_link = primary.select_one(".whiteLink")
            preview = {
                "name": _text(name_link),
                "link": _attr(name_link, "href"),
                "image": _attr(primary.select_one(".profile_group_avatar img"), "src"),
                "members": _text(primary.select_one(".profile_group_membercount")) or None,
            }
        panel["groups"] = {**_section_header(groups), "primary": preview}

    friends = soup.select_one(SELECTORS["friends"])
    if friends:
        top = []
        for block in friends.select(SELECTORS["friend_block"]):
            content = block.select_one(".friendBlockContent")
            name = ""
            if content is not None:
                first = next(iter(content.contents), None)
                if first is not None:
                    name = first.get_text(strip=True) if isinstance(first, Tag) else first.strip()
            top.append({
                "name": name,
                "link": _attr(block.select_one(".friendBlockLinkOverlay"), "href"),
                "avatar": _attr(block.select_one(".playerAvatar img"), "src"),
                "level": _text(block.select_one(SELECTORS["level_num"])) or None,
                "level_stage": _level_stage(block.select_one(SELECTORS["level"])),
                "status": _text(block.select_one(".friendSmallText")),
            })
        panel["friends"] = {**_section_header(friends), "top": top}

    return panel


def parse_recent_activity(soup: BeautifulSoup) -> dict:
    """Extract the recent-activity block (total playtime and recent games)."""
    total = None
    total_el = soup.select_one(SELECTORS["recent_total"])
    if total_el:
        total_text = _text(total_el)
        match = re.search(r"([\d.,]+ hours?)", total_text, re.IGNORECASE)
        total = match.group(1) if match else total_text

    games = []
    for game in soup.select(SELECTORS["recent_game"]):
        details_el = game.select_one(".game_info_details")
        details = details_el.get_text(" ", strip=True) if details_el else ""
        play_time = re.search(r"([\d.,]+ hrs) on record", details)
        last_played = re.search(r"last played on ([\w\s]+)", details, re.IGNORECASE)
        achievements = _text(game.select_one(".game_info_achievement_summary .ellipsis"))

        badge = None
        badge_el = game.select_one(".game_info_badge")
        if badge_el:
            badge_name = _text(badge_el.select_one(".name a"))
            badge = {
                "name": badge_name,
                "level": _text(badge_el.select_one(".xp")).replace("XP", "").strip(),
                "image": _attr(badge_el.select_one("img.badge_icon"), "src"),
                "foil": bool(re.search("foil", badge_name, re.IGNORECASE)),
            }

        games.append({
            "title": _text(game.select_one(".game_name a")),
            "play_time": play_time.group(1) if play_time else None,
            "last_played": last_played.group(1).strip() if last_played else None,
            "achievements": achievements.split(" ")[0] if achievements else None,
            "thumbnail": _attr(game.select_one(".game_capsule"), "src"),
            "badge": badge,
        })

    return {"total": total, "games": games}


def parse_profile_page(html: str) -> ScrapeSnapshot:
    """
    Full page parsing - builds a ScrapeSnapshot.

    Args:
        html: Raw HTML of a steamcommunity.com profile

    Returns:
        Validated ScrapeSnapshot

    Raises:
        ScrapeError: If the page is not a profile page
    """
    soup = BeautifulSoup(html, "lxml")
    if soup.select_one(SELECTORS["profile_page"]) is None:
        raise ScrapeError("Profile markup not found")

    return ScrapeSnapshot.model_validate({
        "profile": parse_header(soup),
        "side_panel": parse_side_panel(soup),
        "recently_played": parse_recent_activity(soup),
        "scraped_at": datetime.now(),
    })


IDENTITY_LABELS = {
    "real_name": "Real Name",
    "country": "Country",
    "account_created": "Account Created",
    "last_logoff": "Last Logoff",
    "status": "Status",
    "visibility": "Visibility",
}

IDENTITY_ROWS = {
    "steam_id": "steam id",
    "steam_id3": "steam id3",
    "steam32": "steam32",
    "steam64": "steam64",
    "profile_url": "profile url",
    "profile_permalink": "permalink",
}


def parse_identity_page(html: str) -> IdentityRecord:
    """
    Parse the id-resolver result page.

    Labelled values follow an <i>Label:</i> marker; id variants sit in a
    two-column table whose first cell names the row.

    Raises:
        ResolutionError: If no numeric id is present on the page
    """
    soup = BeautifulSoup(html, "lxml")
    guide = soup.select_one("#guide")
    if guide is None:
        raise ResolutionError("Resolver result not found")

    data: dict = {"avatar": _attr(guide.select_one("img.avatar"), "src")}

    labels = {_text(i).rstrip(":"): i for i in guide.find_all("i")}
    for field_name, label in IDENTITY_LABELS.items():
        marker = labels.get(label)
        sibling = marker.next_sibling if marker is not None else None
        if sibling is None:
            continue
        value = sibling.get_text(strip=True) if isinstance(sibling, Tag) else sibling.strip()
        data[field_name] = value or None

    rows = []
    for tr in guide.select("table tr"):
        cells = tr.find_all("td")
        if len(cells) >= 2:
            rows.append((_text(cells[0]).lower(), _text(cells[1])))
    for field_name, key in IDENTITY_ROWS.items():
        # Exact key first so "steam id" does not swallow "steam id3"
        value = next((v for k, v in rows if k.rstrip(":") == key), None)
        if value is None:
            value = next((v for k, v in rows if key in k), None)
        data[field_name] = value or None

    steam64 = data.get("steam64") or ""
    if not re.fullmatch(r"\d{17}", steam64):
        raise ResolutionError("Resolver page did not contain a numeric id")

    return IdentityRecord.model_validate(data)
