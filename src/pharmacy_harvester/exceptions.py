"""Exception hierarchy for the pharmacy harvester."""


class HarvestError(Exception):
    """Base exception for harvester errors."""

    def __init__(self, message, error_type="harvest_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(f"[{self.error_type}] {self.message}")


class ProviderError(HarvestError):
    """Base class for errors raised inside a provider adapter."""

    def __init__(self, message, provider=None, error_type="provider_error"):
        self.provider = provider
        super().__init__(message, error_type=error_type)


class ProviderUnavailableError(ProviderError):
    """Network failure, timeout or non-2xx response."""

    def __init__(self, message, provider=None):
        super().__init__(message, provider=provider, error_type="provider_unavailable")


class QuotaExceededError(ProviderError):
    """The provider reported a rate limit and retries were exhausted."""

    def __init__(self, message, provider=None):
        super().__init__(message, provider=provider, error_type="quota_exceeded")


class MalformedPayloadError(ProviderError):
    """The provider answered with an unexpected response shape."""

    def __init__(self, message, provider=None):
        super().__init__(message, provider=provider, error_type="malformed_payload")


class ParseFailureError(HarvestError):
    """A registry text row could not be parsed into a candidate."""

    def __init__(self, message):
        super().__init__(message, error_type="parse_failure")


class MissingCityConfigError(HarvestError):
    """No seed coordinates are configured for the requested city."""

    def __init__(self, city_slug):
        self.city_slug = city_slug
        super().__init__(f"City coordinates not found for: {city_slug}", error_type="missing_city_config")


class PersistenceConflictError(HarvestError):
    """A write violated a store uniqueness constraint."""

    def __init__(self, message):
        super().__init__(message, error_type="persistence_conflict")
