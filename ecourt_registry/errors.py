class RegistryError(Exception):
    """Base class for failures talking to, or storing data from, the eCourts registry."""


class NetworkError(RegistryError):
    """
    Transport or HTTP failure, or a lookup the registry answered with
    `status != 1` (stale token, bad codes).
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(RegistryError):
    """A field the page is expected to carry (token, captcha image) is missing."""


class StorageError(RegistryError):
    """The tracking backend could not be read or written."""


class StorageDecodeError(StorageError):
    """A persisted tracking record has the wrong shape. Treated as "not found"."""


class CaptchaRejectedError(RegistryError):
    """Every captcha attempt a caller allowed for one status check was rejected."""
