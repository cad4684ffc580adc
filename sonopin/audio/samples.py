"""
Audio sample decoding and encoding.

This module turns audio files into flat, interleaved sample arrays, and
reads and rewrites the raw sample stream of a WAV file for patching.
Samples are encoded little-endian at the source bit depth; 32-bit float
samples keep their IEEE-754 bit pattern.
"""

import logging
import os
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np
import soundfile as sf

from sonopin.shared.constants import SAMPLE_SUBTYPES, SUPPORTED_BIT_DEPTHS
from sonopin.shared.errors import IOFailure, UnsupportedFormat

logger = logging.getLogger(__name__)


@dataclass
class SampleBuffer:
    """
    Decoded audio.

    Attributes:
        samples: 1-D array, one element per frame-channel sample (interleaved)
        bit_depth: 16 or 32
        is_float: True for 32-bit IEEE float sources
        sample_rate: Frames per second
        channels: Channel count
        subtype: soundfile subtype the file was stored with
    """
    samples: np.ndarray
    bit_depth: int
    is_float: bool
    sample_rate: int
    channels: int
    subtype: str


def bytes_per_sample(bit_depth: int) -> int:
    if bit_depth not in SUPPORTED_BIT_DEPTHS:
        raise UnsupportedFormat(f"Unsupported bit depth: {bit_depth}")
    return bit_depth // 8


def sample_dtype(bit_depth: int, is_float: bool = False) -> np.dtype:
    """Little-endian numpy dtype for a sample format."""
    if bit_depth == 16 and not is_float:
        return np.dtype('<i2')
    if bit_depth == 32:
        return np.dtype('<f4') if is_float else np.dtype('<i4')
    raise UnsupportedFormat(f"Unsupported sample format: {bit_depth}-bit{' float' if is_float else ''}")


def encode_samples(values, bit_depth: int, is_float: bool = False) -> bytes:
    """Encode sample values as little-endian bytes at the given depth."""
    return np.asarray(values).astype(sample_dtype(bit_depth, is_float), copy=False).tobytes()


def read_samples(path: Union[str, Path]) -> SampleBuffer:
    """
    Decode an audio file into interleaved samples.

    Raises:
        IOFailure: if the file cannot be opened or decoded
        UnsupportedFormat: if the sample format is not 16-bit PCM,
            32-bit PCM or 32-bit float
    """
    path = str(path)
    if not os.path.isfile(path):
        raise IOFailure(f"Audio file not found: {path}")

    try:
        info = sf.info(path)
    except RuntimeError as e:
        raise IOFailure(f"Failed to open audio file {path}: {e}") from e

    if info.subtype not in SAMPLE_SUBTYPES:
        raise UnsupportedFormat(f"{path}: unsupported sample format {info.subtype}")
    bit_depth, is_float = SAMPLE_SUBTYPES[info.subtype]
    dtype = 'float32' if is_float else f'int{bit_depth}'

    try:
        data, sample_rate = sf.read(path, dtype=dtype, always_2d=True)
    except RuntimeError as e:
        raise IOFailure(f"Failed to decode audio file {path}: {e}") from e

    return SampleBuffer(
        samples=data.reshape(-1),
        bit_depth=bit_depth,
        is_float=is_float,
        sample_rate=sample_rate,
        channels=info.channels,
        subtype=info.subtype,
    )


def _data_chunk(raw: bytes, path) -> Tuple[int, int]:
    """Return (start, size) of the data chunk's payload in a RIFF/WAVE file."""
    if len(raw) < 12 or raw[0:4] != b'RIFF' or raw[8:12] != b'WAVE':
        raise UnsupportedFormat(f"{path}: not a little-endian RIFF/WAVE file")

    offset = 12
    while offset + 8 <= len(raw):
        chunk_id = raw[offset:offset + 4]
        (chunk_len,) = struct.unpack('<I', raw[offset + 4:offset + 8])
        offset += 8
        if chunk_id == b'data':
            if offset + chunk_len > len(raw):
                raise IOFailure(f"{path}: data chunk truncated")
            return offset, chunk_len
        # Chunks are padded to an even length
        offset += chunk_len + (chunk_len & 1)
    raise IOFailure(f"{path}: no data chunk")


def _check_subtype(path: str) -> None:
    try:
        info = sf.info(path)
    except RuntimeError as e:
        raise IOFailure(f"Failed to open audio file {path}: {e}") from e
    if info.format not in ('WAV', 'WAVEX') or info.subtype not in SAMPLE_SUBTYPES:
        raise UnsupportedFormat(f"{path}: unsupported sample format {info.format}/{info.subtype}")


def read_sample_stream(path: Union[str, Path]) -> bytes:
    """
    Raw sample stream of a WAV file: the bytes of its data chunk.

    For 16/32-bit PCM and 32-bit float WAVs these are exactly the
    little-endian samples encode_samples produces. The data chunk may end
    in a partial frame, left there by a patch that is half of a pair.

    Raises:
        IOFailure: if the file is missing or has no readable data chunk
        UnsupportedFormat: for other containers or sample formats
    """
    path = str(path)
    if not os.path.isfile(path):
        raise IOFailure(f"Audio file not found: {path}")
    _check_subtype(path)
    try:
        with open(path, 'rb') as f:
            raw = f.read()
    except OSError as e:
        raise IOFailure(f"Failed to read audio file {path}: {e}") from e
    start, size = _data_chunk(raw, path)
    return raw[start:start + size]


def write_sample_stream(path: Union[str, Path], data: bytes) -> None:
    """
    Replace the data chunk of a WAV file, keeping every other chunk.

    The RIFF and data chunk sizes are rewritten; the file is replaced
    atomically. Partial frames are allowed.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise IOFailure(f"Failed to read audio file {path}: {e}") from e
    start, size = _data_chunk(raw, path)
    end = start + size + (size & 1)

    body = (
        raw[12:start - 4]
        + struct.pack('<I', len(data))
        + data
        + (b'\x00' if len(data) & 1 else b'')
        + raw[end:]
    )
    out = b'RIFF' + struct.pack('<I', len(body) + 4) + b'WAVE' + body

    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.stem}.", suffix=path.suffix)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(out)
        os.replace(tmp, path)
    except OSError as e:
        raise IOFailure(f"Failed to write audio file {path}: {e}") from e
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)
    logger.debug("Wrote %d sample bytes to %s", len(data), path)
