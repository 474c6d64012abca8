class CoarseLocationError(Exception):
    """Base class for all errors raised by coarse_location."""


class InvalidInputError(CoarseLocationError, ValueError):
    """A reading or argument is NaN, infinite, or outside its valid range."""


class DensityProviderError(CoarseLocationError):
    """The population density source could not produce a level."""
