"""Scrape snapshot models - structured view of a profile page."""

from datetime import datetime

from pydantic import BaseModel


class AnimatedBackground(BaseModel):
    poster: str | None = None
    sources: list[dict[str, str]] = []


class FavoriteBadge(BaseModel):
    link: str | None = None
    image: str | None = None
    name: str | None = None
    xp: str | None = None


class Bio(BaseModel):
    raw: str
    text: str


class SnapshotProfile(BaseModel):
    """Header area of a profile page."""

    persona_name: str | None = None
    status: str | None = None
    game: str | None = None
    join_game_link: str | None = None
    avatar: str | None = None
    avatar_frame: str | None = None
    background_image: str | None = None
    animated_background: AnimatedBackground | None = None
    level: int | None = None
    level_stage: str | None = None
    favorite_badge: FavoriteBadge | None = None
    bio: Bio | None = None


class AwardPreview(BaseModel):
    image: str | None = None
    name: str = ""


class BadgePreview(BaseModel):
    image: str | None = None
    name: str = ""
    level: str | None = None
    link: str | None = None


class AwardSection(BaseModel):
    link: str | None = None
    count: int = 0
    awards: list[AwardPreview] = []


class BadgeSection(BaseModel):
    link: str | None = None
    count: int = 0
    badges: list[BadgePreview] = []


class CountLink(BaseModel):
    name: str
    count: int = 0
    link: str | None = None


class GroupPreview(BaseModel):
    name: str = ""
    link: str | None = None
    image: str | None = None
    members: str | None = None


class GroupSection(BaseModel):
    link: str | None = None
    count: int = 0
    primary: GroupPreview | None = None


class FriendPreview(BaseModel):
    name: str = ""
    link: str | None = None
    avatar: str | None = None
    level: str | None = None
    level_stage: str | None = None
    status: str = ""


class FriendSection(BaseModel):
    link: str | None = None
    count: int = 0
    top: list[FriendPreview] = []


class SidePanel(BaseModel):
    """Right-hand column of a profile page."""

    awards: AwardSection | None = None
    badges: BadgeSection | None = None
    stats: dict[str, CountLink] = {}
    groups: GroupSection | None = None
    friends: FriendSection | None = None


class RecentGameBadge(BaseModel):
    name: str = ""
    level: str = ""
    image: str | None = None
    foil: bool = False


class RecentGame(BaseModel):
    title: str = ""
    play_time: str | None = None
    last_played: str | None = None
    achievements: str | None = None
    thumbnail: str | None = None
    badge: RecentGameBadge | None = None


class RecentActivity(BaseModel):
    total: str | None = None
    games: list[RecentGame] = []


class ScrapeSnapshot(BaseModel):
    """Point-in-time extraction of a Steam community profile page."""

    profile: SnapshotProfile = SnapshotProfile()
    side_panel: SidePanel = SidePanel()
    recently_played: RecentActivity = RecentActivity()
    scraped_at: datetime
    # Scraped avatar that summary.json was last fetched against
    summary_avatar: str | None = None

    @property
    def badge_count(self) -> int:
        """Badge total shown on the page, 0 when the section is hidden."""
        return self.side_panel.badges.count if self.side_panel.badges else 0

    def stat_count(self, key: str) -> int | None:
        """Count from an item-link stat (games, reviews, ...), None when absent or zero."""
        stat = self.side_panel.stats.get(key)
        return stat.count or None if stat else None
