"""Decode compressed audio bytes into float sample buffers."""

from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import soundfile as sf

from pcm_server.config.default import DEFAULT_DECODE_SAMPLE_RATE
from pcm_server.errors import DecodeError
from pcm_server.utils.audio import resample

LOGGER = logging.getLogger("pcm_server.audio_decoder")


@dataclass
class DecodeResult:
    """Transient decode output: one float32 row per channel."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / float(self.sample_rate)


class AudioDecoder(Protocol):
    def decode(self, data: bytes) -> DecodeResult: ...


class SoundfileDecoder:
    """Decode any container libsndfile understands (WAV, FLAC, OGG, MP3)."""

    def __init__(self, target_sample_rate: int = DEFAULT_DECODE_SAMPLE_RATE) -> None:
        self._target_sample_rate = max(0, int(target_sample_rate or 0))

    def decode(self, data: bytes) -> DecodeResult:
        if not data:
            raise DecodeError("empty audio payload")
        start = time.perf_counter()
        try:
            frames, sample_rate = sf.read(
                io.BytesIO(data), dtype="float32", always_2d=True
            )
        except (RuntimeError, TypeError, ValueError) as exc:
            raise DecodeError(f"unable to decode audio: {exc}") from exc
        if frames.size == 0:
            raise DecodeError("audio payload contains no frames")

        samples = np.ascontiguousarray(frames.T)
        if self._target_sample_rate and sample_rate != self._target_sample_rate:
            samples = resample(samples, sample_rate, self._target_sample_rate)
            sample_rate = self._target_sample_rate

        result = DecodeResult(samples=samples.astype(np.float32), sample_rate=sample_rate)
        LOGGER.info(
            "Decoded audio channels=%d sample_rate=%d duration=%.2fs in %.1fms",
            result.channel_count,
            result.sample_rate,
            result.duration_sec,
            (time.perf_counter() - start) * 1000.0,
        )
        return result


__all__ = ["AudioDecoder", "DecodeResult", "SoundfileDecoder"]
