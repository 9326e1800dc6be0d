"""FFmpeg transcoder backend."""
import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class TranscoderError(Exception):
    """Raised when a file cannot be converted."""
    pass


class Transcoder:
    """
    FFmpeg-based audio converter using the external command.

    Converts whatever SuperDirt cannot read (MP3, OGG, ...) into WAV at a
    fixed sample rate and channel count. Availability is probed once and
    cached; a missing binary makes every conversion fail individually
    rather than breaking the loader.
    """

    def __init__(
        self,
        executable: str = "ffmpeg",
        sample_rate: int = 44100,
        channels: int = 2,
    ):
        """
        Initialize the transcoder.

        Args:
            executable: Name or path of the ffmpeg binary
            sample_rate: Output sample rate
            channels: Output channel count
        """
        self.executable = executable
        self.sample_rate = sample_rate
        self.channels = channels
        self._available: Optional[bool] = None
        self._version: Optional[str] = None

    @property
    def name(self) -> str:
        return "FFmpeg"

    @property
    def is_available(self) -> bool:
        """Check if ffmpeg is installed."""
        if self._available is None:
            self._check_availability()
        return bool(self._available)

    @property
    def version(self) -> Optional[str]:
        """First line of ffmpeg's version banner."""
        if self._available is None:
            self._check_availability()
        return self._version

    def _check_availability(self) -> None:
        try:
            result = subprocess.run(
                [self.executable, '-version'],
                capture_output=True,
                text=True
            )
            self._available = result.returncode == 0
            lines = (result.stdout or result.stderr).strip().splitlines()
            self._version = lines[0] if lines else None
        except (FileNotFoundError, PermissionError):
            self._available = False
            self._version = None

    def convert(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
    ) -> None:
        """
        Convert an audio file to WAV.

        The output is always written as WAV regardless of the output
        path's extension, so callers can convert into a temporary name.

        Args:
            input_path: Source audio file
            output_path: Destination file

        Raises:
            TranscoderError: If ffmpeg is missing or the conversion fails
        """
        if not self.is_available:
            raise TranscoderError(f"{self.executable} not found")

        cmd = [
            self.executable,
            '-y',
            '-loglevel', 'error',
            '-i', str(input_path),
            '-ar', str(self.sample_rate),
            '-ac', str(self.channels),
            '-f', 'wav',
            str(output_path),
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TranscoderError(f"Failed to run {self.executable}: {e}")

        if result.returncode != 0:
            raise TranscoderError(
                f"{self.executable} exited with {result.returncode}: {result.stderr.strip()}"
            )
