"""Exception taxonomy for the scraping and enrichment pipeline.

Only acquisition-layer errors (validation, robots policy, browser and
navigation failures) ever reach a caller.  ``ProviderError`` and
``ParseError`` are raised inside the enrichment layer and always degrade to an
empty or pass-through result before leaving it.
"""


class SiteLensError(Exception):
    """Base exception for all SiteLens errors."""


class ValidationError(SiteLensError):
    """The requested URL is missing or malformed."""


class PolicyError(SiteLensError):
    """Scraping the target is not allowed by its robots.txt."""


class ResourceError(SiteLensError):
    """A browser, page or network resource could not be acquired."""


class BrowserInitError(ResourceError):
    """The headless browser process could not be started."""


class NavigationError(ResourceError):
    """A page could not be loaded (timeout, network failure, HTTP error)."""


class ProviderError(SiteLensError):
    """The LLM provider call failed or timed out."""


class ParseError(SiteLensError):
    """An LLM response did not contain the expected JSON payload."""
