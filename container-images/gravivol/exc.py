class ApplicationError(Exception):
    pass


class DecodeError(ApplicationError):
    """The request body is not a usable AdmissionReview."""


class InvalidLabelKeyError(ApplicationError):
    """A claim cannot be expressed as a valid label key."""


class PatchConstructionError(ApplicationError):
    """The pod has a shape we cannot safely patch."""
