class MovieTrendsError(Exception):
    """Base class for every failure raised by the search/trending pipeline."""


class CatalogUnavailable(MovieTrendsError):
    """The movie catalog could not be reached or answered with a non-success status."""


class NoMatch(MovieTrendsError):
    """A detail lookup returned no results for the term."""


class StoreUnavailable(MovieTrendsError):
    """The record store could not be reached or rejected the request."""


class NotFound(MovieTrendsError):
    """A counter record id is no longer known to the store."""


class InvalidMetadata(MovieTrendsError):
    """A detail lookup came back without the fields needed to seed a counter."""
