"""
Audio conversion to the canonical format (16-bit PCM WAV, 44.1 kHz).

The converter is an opaque path-in/path-out step backed by an ffmpeg
subprocess. Failures are reported as False, never raised, so the download
workers can treat them as retryable.

Usage:
    converter = FfmpegConverter()
    ok = converter.convert(Path("robin_1.mp3"), Path("robin_1.wav"))

    # Batch mode: convert every .mp3 without a .wav counterpart
    stats = convert_directory("downloads", converter)
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

from birdsong_scraper.logger import log_with_timer


logger = logging.getLogger("converter")

SAMPLE_RATE = 44100
PCM_CODEC = "pcm_s16le"


class Converter(Protocol):
    def convert(self, input_path: Path, output_path: Path) -> bool: ...


class FfmpegConverter:
    """Converts any ffmpeg-readable input to 16-bit PCM WAV at 44.1 kHz."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 300):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.ffmpeg_path) is not None

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",  # overwrite a previous partial output
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            PCM_CODEC,
            "-ar",
            str(SAMPLE_RATE),
            str(output_path),
        ]

    def convert(self, input_path: Path, output_path: Path) -> bool:
        """
        Run ffmpeg on input_path, writing output_path.

        Returns:
            True if ffmpeg exited successfully and the output exists
        """
        cmd = self.build_command(Path(input_path), Path(output_path))
        logger.debug(f"Converting {input_path} -> {output_path}")
        try:
            subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.error(f"ffmpeg not found at '{self.ffmpeg_path}'")
            return False
        except subprocess.CalledProcessError as e:
            err_msg = (e.stderr or b"").decode(errors="replace")[-2000:]
            logger.error(f"ffmpeg conversion failed for {input_path}: {err_msg}")
            return False
        except subprocess.TimeoutExpired:
            logger.error(f"ffmpeg timed out after {self.timeout}s on {input_path}")
            return False

        if not Path(output_path).is_file():
            logger.error(f"ffmpeg reported success but {output_path} is missing")
            return False
        return True


@log_with_timer("converter")
def convert_directory(
    directory: str | Path,
    converter: Converter,
    source_extension: str = ".mp3",
    canonical_extension: str = ".wav",
) -> dict[str, int]:
    """
    Convert every source file in directory that lacks a canonical counterpart.

    Independent of the ledger: only the files on disk are considered.

    Args:
        directory: Directory to scan (not recursive)
        converter: Converter to run on each file
        source_extension: Extension of files to convert
        canonical_extension: Extension of converted files

    Returns:
        Statistics dict with found, converted, skipped and failed counts

    Raises:
        NotADirectoryError: If directory does not exist
    """
    path = Path(directory)
    if not path.is_dir():
        raise NotADirectoryError(f"{directory} is not a directory")

    stats = {"found": 0, "converted": 0, "skipped": 0, "failed": 0}
    for source in sorted(path.iterdir()):
        if not source.is_file() or source.name.startswith("."):
            continue
        if source.suffix.lower() != source_extension:
            continue
        stats["found"] += 1
        target = source.with_suffix(canonical_extension)
        if target.exists():
            stats["skipped"] += 1
            continue

        print(f"Converting: {source}")
        if converter.convert(source, target):
            print(f"  ✓ Conversion successful: {target}")
            stats["converted"] += 1
        else:
            print(f"  ✗ Error converting {source}")
            stats["failed"] += 1

    logger.info(f"Batch conversion of {path}: {stats}")
    return stats
