"""
16-bit PCM RIFF/WAVE container codec.

Header layout (44 bytes, little-endian):

    RIFF | chunkSize | WAVE | "fmt " | 16 | format | channels | sampleRate
    | byteRate | blockAlign | bitsPerSample | "data" | dataLength | payload
"""

import logging
import os
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np

from .config import HEADER_SIZE, PCM_FORMAT, SUPPORTED_BITS, UINT32_MAX
from .errors import (
    BadMagicError,
    InvalidParametersError,
    MisalignedDataError,
    TooSmallError,
    UnsupportedBitDepthError,
    UnsupportedFormatError,
)

log = logging.getLogger("songstore.wav")

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
UINT16_MAX = 0xFFFF

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class AudioContainer:
    audio_format: int
    channels: int
    sample_rate: int
    bits_per_sample: int
    data: bytes

    def samples(self) -> np.ndarray:
        return to_samples(self.data, self.bits_per_sample)

    @property
    def duration(self) -> float:
        return duration(self)


def _validate(data: bytes, sample_rate: int, channels: int, bits_per_sample: int) -> None:
    if sample_rate <= 0 or channels <= 0 or bits_per_sample <= 0:
        raise InvalidParametersError(
            f"values must be greater than zero (sample_rate: {sample_rate}, "
            f"channels: {channels}, bits_per_sample: {bits_per_sample})"
        )
    if bits_per_sample % 8 != 0:
        raise InvalidParametersError(f"bits_per_sample must be a multiple of 8, got {bits_per_sample}")
    if channels > UINT16_MAX or bits_per_sample > UINT16_MAX:
        raise InvalidParametersError("channels and bits_per_sample must fit in 16 bits")

    block_align = channels * (bits_per_sample // 8)
    if block_align > UINT16_MAX or sample_rate * block_align > UINT32_MAX:
        raise InvalidParametersError(
            f"byte rate does not fit the header (sample_rate: {sample_rate}, block_align: {block_align})"
        )
    if HEADER_SIZE - 8 + len(data) > UINT32_MAX:
        raise InvalidParametersError(f"payload too large for a RIFF container: {len(data)} bytes")

    if len(data) % channels != 0:
        raise MisalignedDataError(f"data size {len(data)} not divisible by {channels} channels")


def encode(data: bytes, sample_rate: int, channels: int, bits_per_sample: int) -> bytes:
    """
    Build a complete container: 44-byte header followed by ``data`` verbatim.

    ``bits_per_sample`` must be a positive multiple of 8 and every value must
    fit its header field (16 bits for channels and block align, 32 bits for
    rate, byte rate and sizes); otherwise ``InvalidParametersError``. A payload
    whose length does not divide by ``channels`` raises ``MisalignedDataError``.

    Args:
        data: Raw interleaved sample bytes
        sample_rate: Samples per second
        channels: Number of interleaved channels
        bits_per_sample: Sample width in bits

    Returns:
        Container bytes
    """
    data = bytes(data)
    _validate(data, sample_rate, channels, bits_per_sample)

    bytes_per_sample = bits_per_sample // 8
    header = _HEADER.pack(
        b"RIFF",
        36 + len(data),
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        channels,
        sample_rate,
        sample_rate * channels * bytes_per_sample,
        channels * bytes_per_sample,
        bits_per_sample,
        b"data",
        len(data),
    )
    return header + data


def write_wav(sink: BinaryIO, data: bytes, sample_rate: int, channels: int, bits_per_sample: int) -> int:
    """Encode fully in memory, then hand the sink a single write."""
    buf = encode(data, sample_rate, channels, bits_per_sample)
    sink.write(buf)
    return len(buf)


def write_wav_file(path: PathLike, data: bytes, sample_rate: int, channels: int, bits_per_sample: int) -> Path:
    """
    Write a container to ``path``.

    The bytes go to a temporary file beside the target which is renamed into
    place only once fully written, so a failed write never leaves a truncated
    container at ``path``.
    """
    path = Path(path)
    buf = encode(data, sample_rate, channels, bits_per_sample)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(buf)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    log.debug(f"Wrote {len(buf)} bytes to {path}")
    return path


def decode(buf: bytes) -> AudioContainer:
    if len(buf) < HEADER_SIZE:
        raise TooSmallError(f"invalid WAV size: {len(buf)} bytes (header needs {HEADER_SIZE})")

    (chunk_id, _chunk_size, fmt, _sub1_id, _sub1_size, audio_format, channels,
     sample_rate, _byte_rate, _block_align, bits_per_sample, _sub2_id, _data_len) = _HEADER.unpack_from(buf)

    if chunk_id != b"RIFF" or fmt != b"WAVE":
        raise BadMagicError(f"invalid WAV header tags: {chunk_id!r} / {fmt!r}")
    if audio_format != PCM_FORMAT:
        raise UnsupportedFormatError(f"unsupported audio format {audio_format} (only PCM is supported)")

    return AudioContainer(
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        bits_per_sample=bits_per_sample,
        data=bytes(buf[HEADER_SIZE:]),
    )


def read_wav_file(path: PathLike) -> AudioContainer:
    with open(path, "rb") as f:
        buf = f.read()
    return decode(buf)


def to_samples(data: bytes, bits_per_sample: int = SUPPORTED_BITS) -> np.ndarray:
    """
    Convert little-endian signed 16-bit samples to floats.

    Scaling is ``s / 32768.0``: -32768 maps to exactly -1.0 and 32767 to
    32767/32768, matching two's-complement range.
    """
    if bits_per_sample != SUPPORTED_BITS:
        raise UnsupportedBitDepthError(f"unsupported bits per sample: {bits_per_sample}")
    if len(data) % 2 != 0:
        raise MisalignedDataError(f"invalid input length: {len(data)} bytes is not a whole number of samples")

    samples = np.frombuffer(data, dtype="<i2").astype(np.float64)
    return samples / 32768.0


def duration(container: AudioContainer) -> float:
    if container.bits_per_sample != SUPPORTED_BITS:
        raise UnsupportedBitDepthError(f"unsupported bits per sample: {container.bits_per_sample}")
    if container.channels <= 0 or container.sample_rate <= 0:
        raise InvalidParametersError(
            f"cannot compute duration (channels: {container.channels}, sample_rate: {container.sample_rate})"
        )
    return len(container.data) / (container.channels * 2 * container.sample_rate)
