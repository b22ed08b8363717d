import struct

import librosa
import numpy as np

WAV_HEADER_BYTES = 44


def float_to_pcm16(samples) -> np.ndarray:
    """Clamp float samples to [-1, 1] and convert to int16.

    Negative values scale by 32768, non-negative by 32767; the fractional
    part is truncated toward zero.
    """
    audio = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(audio < 0, audio * 32768.0, audio * 32767.0)
    return np.trunc(scaled).astype(np.int16)


def resample(audio: np.ndarray, src_rate: int, target_rate: int) -> np.ndarray:
    """Resample audio along its last axis when the rates differ."""
    if target_rate <= 0 or src_rate == target_rate:
        return audio
    return librosa.resample(audio, orig_sr=src_rate, target_sr=target_rate)


def chunk_duration_seconds(byte_length: int, sample_rate: int, channels: int = 1) -> float:
    """Return duration given PCM16 byte length, sample rate and channel count."""
    if sample_rate <= 0 or channels <= 0:
        return 0.0
    bytes_per_sample = 2  # PCM16
    frames = byte_length / (bytes_per_sample * channels)
    return frames / float(sample_rate)


def wav_duration_seconds(data: bytes) -> float:
    """Duration of a canonical 44-byte-header PCM16 WAV, 0.0 if unreadable."""
    if len(data) < WAV_HEADER_BYTES or data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        return 0.0
    channels, sample_rate = struct.unpack_from("<HI", data, 22)
    (data_length,) = struct.unpack_from("<I", data, 40)
    return chunk_duration_seconds(data_length, sample_rate, channels)
