from .exceptions import (
    ExtractionError,
    ExtractionTimeout,
    InvalidTransitionError,
    MediaError,
    NormalizationError,
    ReceiptFlowError,
    ServiceError,
    ValidationRejection,
    VideoDecodeError,
)
from .image import MediaNormalizer
from .media import MediaFile, split_accepted
from .progress import configure, set_progress, set_verbose
from .records import LineItem, ReceiptFields, ReceiptRecord, RecordCollection, RecordStatus
from .video import (
    FfmpegVideoDecoder,
    FrameExtractor,
    SampledFrame,
    VideoDecoder,
    VideoFrameSampler,
    VideoHandle,
    VideoMetadata,
    opened_video,
)

__all__ = [
    # Media
    "MediaFile",
    "split_accepted",
    "MediaNormalizer",
    # Video
    "VideoMetadata",
    "VideoDecoder",
    "VideoHandle",
    "FfmpegVideoDecoder",
    "opened_video",
    "SampledFrame",
    "VideoFrameSampler",
    "FrameExtractor",
    # Records
    "LineItem",
    "ReceiptFields",
    "ReceiptRecord",
    "RecordCollection",
    "RecordStatus",
    # Exceptions
    "ReceiptFlowError",
    "MediaError",
    "NormalizationError",
    "VideoDecodeError",
    "ExtractionError",
    "ExtractionTimeout",
    "ServiceError",
    "ValidationRejection",
    "InvalidTransitionError",
    # Progress
    "configure",
    "set_verbose",
    "set_progress",
]
