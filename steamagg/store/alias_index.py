"""SQLite-backed secondary index: alias / profile URL / id variant -> account id."""

from pathlib import Path

import aiosqlite

from steamagg.models.identity import IdentityRecord


def lookup_keys(token: str) -> list[str]:
    """Candidate index keys for a free-form user token, most specific first."""
    token = token.strip()
    keys = [token]
    if token.endswith("/"):
        keys.append(token.rstrip("/"))
    elif "/" in token:
        keys.append(token + "/")
    return keys


class AliasIndex:
    """Reverse lookup from anything a user might type to the account id it belongs to."""

    def __init__(self, db_path: str | Path = "./steam/aliases.db"):
        """
        Initialize alias index.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database connection and schema exist."""
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS aliases (
                    alias TEXT PRIMARY KEY,
                    steam64 TEXT NOT NULL
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_steam64 ON aliases(steam64)"
            )
            await self._db.commit()
        return self._db

    async def lookup(self, token: str) -> str | None:
        """
        Find the account id a token refers to.

        Args:
            token: Vanity name, profile URL, id variant or numeric id

        Returns:
            Account id or None if unknown
        """
        db = await self._ensure_db()
        for key in lookup_keys(token):
            async with db.execute(
                "SELECT steam64 FROM aliases WHERE alias = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is not None:
                return row[0]
        return None

    async def register(self, identity: IdentityRecord) -> None:
        """
        Replace every alias of an identity in one transaction.

        Stale aliases (e.g. a vanity URL the user gave up) are dropped so they
        can be claimed by whoever owns them now.
        """
        db = await self._ensure_db()
        aliases = sorted(identity.aliases())
        await db.execute("DELETE FROM aliases WHERE steam64 = ?", (identity.steam64,))
        await db.executemany(
            "INSERT OR REPLACE INTO aliases (alias, steam64) VALUES (?, ?)",
            [(alias, identity.steam64) for alias in aliases],
        )
        await db.commit()

    async def remove(self, steam64: str) -> None:
        db = await self._ensure_db()
        await db.execute("DELETE FROM aliases WHERE steam64 = ?", (steam64,))
        await db.commit()

    async def count(self) -> int:
        """Number of aliases currently indexed."""
        db = await self._ensure_db()
        async with db.execute("SELECT COUNT(*) FROM aliases") as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def clear(self) -> None:
        db = await self._ensure_db()
        await db.execute("DELETE FROM aliases")
        await db.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> "AliasIndex":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
