"""Custom exception hierarchy for steamagg."""


class SteamAggError(Exception):
    """Base exception for all steamagg errors."""


class InputError(SteamAggError):
    """Missing or malformed user token."""


class ResolutionError(SteamAggError):
    """Token could not be matched to any profile."""


class ScrapeError(SteamAggError):
    """Profile page unreachable or missing expected markup."""


class UpstreamError(SteamAggError):
    """Statistics API call failed."""


class StoreError(SteamAggError):
    """Canonical store operation failed."""


class ConfigError(SteamAggError):
    """Invalid configuration."""
