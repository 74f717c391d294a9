"""Merged profile model - the aggregated response shape."""

from pydantic import BaseModel, ConfigDict, Field


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Avatars(BaseModel):
    avatar: str | None = None
    avatarmedium: str | None = None
    avatarfull: str | None = None
    avatarhash: str | None = None
    scraped: str | None = None


class ProfileInfo(_Camel):
    name: str = ""
    realname: str = ""
    avatars: Avatars = Avatars()
    avatar_frame: str | None = Field(default=None, alias="avatarFrame")
    background: str | None = None
    url: str | None = None
    permalink: str
    country: str | None = None
    created: str | None = None
    level: int | None = None
    level_stage: str | None = Field(default=None, alias="levelStage")
    bio: str | None = None
    status: str
    game: str | None = None


class Stats(BaseModel):
    games: int | None = None
    reviews: int | None = None
    screenshots: int | None = None
    friends: int | None = None
    groups: int | None = None


class BadgeEntry(BaseModel):
    badgeid: int | None = None
    level: int | None = None
    xp: int | None = None
    scarcity: int | None = None


class Badges(_Camel):
    count: int = 0
    xp: int = 0
    level: int = 0
    needed: int = 0
    favorite: dict | None = None
    items: list[BadgeEntry] = Field(default_factory=list, alias="list")


class Awards(_Camel):
    count: int = 0
    items: list[dict] = Field(default_factory=list, alias="list")


class PlayedGame(BaseModel):
    appid: int | None = None
    name: str | None = None
    playtime_2weeks: int | None = None
    playtime_forever: int | None = None


class RecentlyPlayed(BaseModel):
    total: int = 0
    games: list[PlayedGame] = []


class Friend(BaseModel):
    name: str = ""
    url: str | None = None
    avatar: str | None = None
    level: str | None = None
    status: str = ""


class Group(BaseModel):
    name: str = ""
    url: str | None = None
    avatar: str | None = None
    members: str | None = None


class MergedProfile(_Camel):
    """Everything known about one account, reconciled across sources for one request."""

    steamid: str
    profile: ProfileInfo
    stats: Stats = Stats()
    badges: Badges = Badges()
    awards: Awards = Awards()
    recently_played: RecentlyPlayed = Field(default_factory=RecentlyPlayed, alias="recentlyPlayed")
    friends: list[Friend] = []
    groups: list[Group] = []

    # What changed this request relative to persisted state
    avatar_changed: bool = Field(default=False, alias="avatarChanged")
    badge_count_changed: bool = Field(default=False, alias="badgeCountChanged")
    vanity_changed: bool = Field(default=False, alias="vanityChanged")
    is_new_user: bool = Field(default=False, alias="isNewUser")
