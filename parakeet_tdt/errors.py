"""Custom exceptions for Parakeet TDT inference."""


class ParakeetError(Exception):
    """Base exception for Parakeet errors."""
    error_type: str = "parakeet_error"


class InvalidModelTypeError(ParakeetError):
    """Raised when a config describes something other than a TDT model."""
    error_type = "invalid_model_type"


class UnsupportedDecodingError(ParakeetError):
    """Raised for decoding strategies other than greedy."""
    error_type = "unsupported_decoding"

    def __init__(self, decoding: str):
        super().__init__(f"Only greedy decoding is supported for TDT, got {decoding!r}")
        self.decoding = decoding


class JointOutputError(ParakeetError):
    """Raised when the joint network output does not match the vocabulary/duration layout."""
    error_type = "joint_output"


class AudioProcessingError(ParakeetError):
    """Raised for audio that cannot be turned into features."""
    error_type = "audio_processing"


class ModelLoadingError(ParakeetError):
    """Raised when config or weights cannot be loaded."""
    error_type = "model_loading"


class ConcurrentAccessError(ParakeetError):
    """Raised when a streaming session is fed from two callers at once."""
    error_type = "concurrent_access"

    def __init__(self, message: str = "add_audio() is already running on this session"):
        super().__init__(message)
