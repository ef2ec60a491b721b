from typing import Any, Dict, Optional


class ProofOfLifeError(Exception):
    """Base exception for the liveness engine."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class DetectorUnavailableError(ProofOfLifeError):
    """Raised by a platform detector that is missing or failed to run."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Face detector unavailable: {reason}", "DETECTOR_UNAVAILABLE", details)
        self.reason = reason


class MalformedFrameError(ProofOfLifeError):
    """Raised by a frame source when a capture is zero-sized or unreadable."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Malformed frame: {reason}", "MALFORMED_FRAME", details)
        self.reason = reason


class ConfigurationError(ProofOfLifeError):
    """Raised when configuration is invalid"""

    def __init__(self, parameter: str, value: Any, reason: str):
        message = f"Invalid configuration for '{parameter}' = '{value}': {reason}"
        super().__init__(message, "CONFIGURATION_ERROR")
        self.parameter = parameter
        self.value = value
        self.reason = reason


class VideoProcessingError(ProofOfLifeError):
    """Raised when an uploaded video cannot be opened or decoded"""

    def __init__(self, video_path: str, reason: str):
        super().__init__(f"Failed to process video '{video_path}': {reason}", "VIDEO_PROCESSING_ERROR")
        self.video_path = video_path
        self.reason = reason
