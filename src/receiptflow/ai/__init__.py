from .analysis import ChatTurn, ImagePart, ReceiptAnalyzer, VideoCandidate
from .backends import BackendError, MissingAPIKeyError, UnsupportedBackendError
from .config import clear_config_cache, get_config, get_setting

__all__ = [
    # Analysis
    "ReceiptAnalyzer",
    "VideoCandidate",
    "ImagePart",
    "ChatTurn",
    # Exceptions
    "BackendError",
    "MissingAPIKeyError",
    "UnsupportedBackendError",
    # Config
    "get_config",
    "get_setting",
    "clear_config_cache",
]
