"""Error taxonomy shared by the search and personalization engines.

Per-item failures are absorbed where they happen; only aggregate-level
conditions (the catalog as a whole, missing credentials) reach callers.
"""


class ScoutError(Exception):
    """Base class for every engine error"""
    pass


class TransientProviderFailure(ScoutError):
    """Remote network or timeout failure; degrade, never fatal"""
    pass


class ProviderUnavailable(TransientProviderFailure):
    """The remote place provider could not answer a lookup"""
    pass


class PartialDetailFailure(ScoutError):
    """Enrichment of a single remote candidate failed"""

    def __init__(self, place_id: str, reason: str = ""):
        self.place_id = place_id
        self.reason = reason
        super().__init__(f"Details for {place_id} failed: {reason}" if reason else f"Details for {place_id} failed")


class PersistenceFailure(ScoutError):
    """An interest-vector write did not reach the store"""
    pass


class ConfigurationError(ScoutError):
    """Missing credentials or an invalid setup; surfaced once at startup"""
    pass


class SessionMisuseError(ConfigurationError):
    """A stale or missing session token was used for a remote lookup"""
    pass


class CatalogUnavailable(ScoutError):
    """The local destination catalog could not be read at all"""
    pass
