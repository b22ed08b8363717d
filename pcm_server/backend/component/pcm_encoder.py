"""Encode decoded sample buffers into a self-describing PCM16 WAV container."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from pcm_server.utils.audio import WAV_HEADER_BYTES, float_to_pcm16

BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
WAV_FORMAT_PCM = 1

# RIFF/WAVE header, every multi-byte field little-endian.
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    """Fields of the canonical 44-byte PCM WAV header."""

    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int

    @property
    def frame_count(self) -> int:
        if self.block_align <= 0:
            return 0
        return self.data_length // self.block_align

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / float(self.sample_rate)


def encode_wav(channels: Sequence[Sequence[float]], sample_rate: int) -> bytes:
    """Interleave float channels into a 16-bit PCM WAV byte string.

    All channels must hold the same number of samples; a mismatch is a
    caller bug and raises ``ValueError``.
    """
    buffers = [np.asarray(channel, dtype=np.float64) for channel in channels]
    if not buffers:
        raise ValueError("at least one channel is required")
    frame_count = len(buffers[0])
    if any(len(buf) != frame_count for buf in buffers):
        raise ValueError("channel buffers must have equal length")

    channel_count = len(buffers)
    interleaved = float_to_pcm16(np.stack(buffers, axis=1).reshape(-1))
    payload = interleaved.astype("<i2").tobytes()
    data_length = len(payload)

    header = _HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        WAV_FORMAT_PCM,
        channel_count,
        sample_rate,
        sample_rate * channel_count * BYTES_PER_SAMPLE,
        channel_count * BYTES_PER_SAMPLE,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )
    return header + payload


def parse_wav_header(data: bytes) -> WavHeader:
    """Parse the canonical header written by :func:`encode_wav`."""
    if len(data) < WAV_HEADER_BYTES:
        raise ValueError("buffer shorter than a WAV header")
    (
        riff,
        riff_size,
        wave,
        fmt,
        _fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        data_tag,
        data_length,
    ) = _HEADER.unpack_from(data, 0)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise ValueError("not a canonical PCM WAV container")
    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_length=data_length,
    )


def read_pcm16_samples(data: bytes) -> np.ndarray:
    """Return the interleaved int16 samples following the header."""
    header = parse_wav_header(data)
    end = WAV_HEADER_BYTES + header.data_length
    return np.frombuffer(data[WAV_HEADER_BYTES:end], dtype="<i2")


__all__ = [
    "BITS_PER_SAMPLE",
    "WavHeader",
    "encode_wav",
    "parse_wav_header",
    "read_pcm16_samples",
]
