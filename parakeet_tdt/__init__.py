"""Parakeet TDT: streaming and batch speech-to-text with token-and-duration transducers.

Key exports:
- ParakeetTDT: Conformer encoder + prediction/joint networks with greedy TDT decoding
- TDTGreedyDecoder: The decoding state machine on its own
- StreamingParakeet: Incremental transcription with bounded memory
- ChunkedTranscriber / merge_by_cutoff: Overlapping-window transcription of long audio
- load_model: Load config + safetensors weights from a directory or the HuggingFace Hub
"""

from .alignment import (
    AlignedResult,
    AlignedSentence,
    AlignedToken,
    sentences_to_result,
    tokens_to_sentences,
)
from .audio import get_logmel, load_audio
from .cache import ConformerCache, RotatingConformerCache
from .chunking import ChunkedTranscriber, merge_by_cutoff
from .config import (
    ConformerConfig,
    DecodingConfig,
    JointConfig,
    ParakeetTDTConfig,
    PredictConfig,
    PreprocessConfig,
    TDTDecodingConfig,
)
from .errors import (
    AudioProcessingError,
    ConcurrentAccessError,
    InvalidModelTypeError,
    JointOutputError,
    ModelLoadingError,
    ParakeetError,
    UnsupportedDecodingError,
)
from .loader import load_model
from .parakeet_model import ParakeetTDT
from .streaming import StreamingParakeet
from .tdt_greedy import DecoderState, TDTGreedyDecoder

__version__ = "0.1.0"

__all__ = [
    "AlignedResult",
    "AlignedSentence",
    "AlignedToken",
    "AudioProcessingError",
    "ChunkedTranscriber",
    "ConcurrentAccessError",
    "ConformerCache",
    "ConformerConfig",
    "DecoderState",
    "DecodingConfig",
    "InvalidModelTypeError",
    "JointConfig",
    "JointOutputError",
    "ModelLoadingError",
    "ParakeetError",
    "ParakeetTDT",
    "ParakeetTDTConfig",
    "PredictConfig",
    "PreprocessConfig",
    "RotatingConformerCache",
    "StreamingParakeet",
    "TDTDecodingConfig",
    "TDTGreedyDecoder",
    "UnsupportedDecodingError",
    "get_logmel",
    "load_audio",
    "load_model",
    "merge_by_cutoff",
    "sentences_to_result",
    "tokens_to_sentences",
]
