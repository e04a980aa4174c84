import logging
import os
import subprocess
from pathlib import Path
from typing import List, Union

from .errors import ConversionError, InvalidParametersError

log = logging.getLogger("songstore.convert")

PathLike = Union[str, os.PathLike]


def build_ffmpeg_args(input_path: PathLike, output_path: PathLike, sample_rate: int,
                      to_mono: bool = False, ffmpeg: str = "ffmpeg") -> List[str]:
    args = [ffmpeg, "-i", str(input_path), "-ar", str(sample_rate), "-y"]
    if to_mono:
        args += ["-ac", "1", "-c:a", "pcm_s16le"]
    args.append(str(output_path))
    return args


def convert_audio(input_path: PathLike, output_path: PathLike, sample_rate: int,
                  to_mono: bool = False, ffmpeg: str = "ffmpeg") -> Path:
    """
    Resample (and optionally downmix to mono 16-bit PCM) with ffmpeg.

    Blocks until the process exits. Only the exit status is inspected; stderr
    is kept for the log.

    Args:
        input_path: Source audio file
        output_path: Destination file, overwritten if present
        sample_rate: Target sample rate in Hz
        to_mono: Downmix to one channel and force pcm_s16le
        ffmpeg: ffmpeg executable name or path

    Returns:
        The output path
    """
    if sample_rate <= 0:
        raise InvalidParametersError(f"sample_rate must be greater than zero, got {sample_rate}")

    args = build_ffmpeg_args(input_path, output_path, sample_rate, to_mono=to_mono, ffmpeg=ffmpeg)
    log.info(f"Converting {input_path} -> {output_path} ({sample_rate} Hz{', mono' if to_mono else ''})")

    try:
        proc = subprocess.run(args, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, check=False)
    except OSError as e:
        raise ConversionError(f"could not run {ffmpeg}: {e}") from e

    if proc.returncode != 0:
        stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        if stderr:
            log.debug(f"ffmpeg stderr: {stderr[-2000:]}")
        raise ConversionError(
            f"ffmpeg exited with status {proc.returncode} converting {input_path}",
            returncode=proc.returncode,
        )

    return Path(output_path)
