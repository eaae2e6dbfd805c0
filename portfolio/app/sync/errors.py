"""Errors raised by the picture-set synchronizer."""


class InvalidPictureSetIdError(ValueError):
    """The set identifier is missing, non-numeric or not positive."""


class PictureSetNotFoundError(LookupError):
    """No picture set exists for an update."""
