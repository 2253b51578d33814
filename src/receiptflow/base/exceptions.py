"""Exception hierarchy for receiptflow."""


class ReceiptFlowError(Exception):
    """Base exception for all receiptflow errors."""

    pass


class MediaError(ReceiptFlowError):
    """Base exception for media decoding and encoding errors."""

    pass


class NormalizationError(MediaError):
    """Raised when a still image cannot be decoded, rendered or re-encoded."""

    pass


class VideoDecodeError(MediaError):
    """Raised when a video cannot be opened or decoded at all."""

    pass


class ExtractionError(MediaError):
    """Raised when an archival frame cannot be captured from a video."""

    pass


class ExtractionTimeout(ExtractionError):
    """Raised when seeking to the archival frame does not complete in time."""

    def __init__(self, offset: float, timeout: float):
        super().__init__(f"Seeking to {offset:.1f}s did not complete within {timeout:g}s")
        self.offset = offset
        self.timeout = timeout


class ServiceError(ReceiptFlowError):
    """Raised when the analysis service fails or returns a malformed response."""

    pass


class ValidationRejection(ReceiptFlowError):
    """Raised when submitted files are not of an accepted media type."""

    def __init__(self, names: list[str]):
        super().__init__(
            f"Only images (JPG/PNG/HEIC) or videos (MP4) are accepted. Rejected: {', '.join(names)}"
        )
        self.names = names


class InvalidTransitionError(ReceiptFlowError):
    """Raised when a record is moved out of a terminal state."""

    pass
