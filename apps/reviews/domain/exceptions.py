"""Review domain errors."""


class ReviewError(Exception):
    """Base class for review failures surfaced to callers."""


class InvalidReview(ReviewError):
    pass


class DuplicateReviewError(ReviewError):
    """The user has already reviewed this hotel."""


class ReviewNotFound(ReviewError):
    pass


class HotelNotFound(ReviewError):
    pass


class ReviewPermissionDenied(ReviewError):
    """The caller may not change this review."""
