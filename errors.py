class ResultServiceError(Exception):
    """Base class for every failure raised by this package."""


class RosterFetchError(ResultServiceError):
    pass


class FilterFetchError(ResultServiceError):
    """One filter vocabulary could not be loaded."""


class FilteredFetchError(ResultServiceError):
    pass


class ResultFetchError(ResultServiceError):
    pass


class ImageResolutionError(ResultServiceError):
    pass


class ExportError(ResultServiceError):
    pass


class ExportInProgressError(ResultServiceError):
    """Raised when a second export is requested while one is still pending."""
