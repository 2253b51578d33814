from .logger import LOG_FORMAT, setup_logger

__all__ = ["LOG_FORMAT", "setup_logger"]
