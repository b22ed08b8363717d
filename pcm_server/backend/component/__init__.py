"""Component layer: decoder, encoder and blob stores."""

from .audio_decoder import AudioDecoder, DecodeResult, SoundfileDecoder
from .blob_store import BlobObject, BlobStore, FileSystemBlobStore, InMemoryBlobStore
from .pcm_encoder import WavHeader, encode_wav, parse_wav_header, read_pcm16_samples

__all__ = [
    "AudioDecoder",
    "BlobObject",
    "BlobStore",
    "DecodeResult",
    "FileSystemBlobStore",
    "InMemoryBlobStore",
    "SoundfileDecoder",
    "WavHeader",
    "encode_wav",
    "parse_wav_header",
    "read_pcm16_samples",
]
