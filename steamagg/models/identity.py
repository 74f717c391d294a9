"""Identity record model."""

from pydantic import BaseModel


class IdentityRecord(BaseModel):
    """Canonical identity of one Steam account, as resolved from a free-form token."""

    steam64: str
    steam_id: str | None = None
    steam_id3: str | None = None
    steam32: str | None = None
    profile_url: str | None = None
    profile_permalink: str | None = None
    real_name: str | None = None
    country: str | None = None
    account_created: str | None = None
    avatar: str | None = None
    last_logoff: str | None = None
    status: str | None = None
    visibility: str | None = None

    def aliases(self) -> set[str]:
        """Every token that should resolve back to this identity."""
        keys = {self.steam64}
        for variant in (self.steam_id, self.steam_id3, self.steam32):
            if variant:
                keys.add(variant)
        if self.profile_url:
            keys.add(self.profile_url)
            keys.add(self.profile_url.rstrip("/"))
            segment = self.profile_url.rstrip("/").rsplit("/", 1)[-1]
            if segment:
                keys.add(segment)
        return keys
