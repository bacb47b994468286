"""
ffmpeg-backed media transcoding: audio extraction and frame sampling.

Both operations work on temporary files; ffmpeg is invoked via subprocess and
its exit status / stderr is mapped to error codes (unreadable input is
permanent, anything else is treated as a transient process failure).
"""
import logging
import re
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from .base import MediaTranscoder, SampledFrame
from tribora.utils.error_codes import CapabilityError, ErrorCode

logger = logging.getLogger(__name__)

_CORRUPT_MARKERS = (
    'Invalid data found when processing input',
    'moov atom not found',
    'does not contain any stream',
    'Output file #0 does not contain any stream',
    'matches no streams',
)
_PTS_TIME = re.compile(r'pts_time:\s*([0-9.]+)')
_SIZE = re.compile(r'\bs:(\d+)x(\d+)')


class FFmpegTranscoder(MediaTranscoder):
    """Runs the ffmpeg binary."""

    def __init__(self, ffmpeg_path: str = 'ffmpeg', timeout: int = 1800):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except FileNotFoundError:
            raise CapabilityError(f"{self.ffmpeg_path} not found", ErrorCode.PROCESS_FAILED)
        except subprocess.TimeoutExpired:
            raise CapabilityError(f"ffmpeg timed out after {self.timeout}s", ErrorCode.TIMEOUT)

        if result.returncode != 0:
            stderr = result.stderr or ''
            if any(marker in stderr for marker in _CORRUPT_MARKERS):
                raise CapabilityError(f"ffmpeg could not read input: {stderr[-300:]}", ErrorCode.CORRUPT_MEDIA)
            raise CapabilityError(f"ffmpeg exited with {result.returncode}: {stderr[-300:]}",
                                  ErrorCode.PROCESS_FAILED)
        return result

    def extract_audio(self, data: bytes, source_ext: str) -> bytes:
        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / f"input.{source_ext or 'mp4'}"
            output = Path(tmp) / "audio.mp3"
            source.write_bytes(data)
            self._run([
                self.ffmpeg_path, '-y', '-i', str(source),
                '-vn', '-acodec', 'libmp3lame', '-ar', '44100', '-ac', '2', '-q:a', '2',
                str(output)
            ])
            if not output.exists() or output.stat().st_size == 0:
                raise CapabilityError("ffmpeg produced no audio output", ErrorCode.EMPTY_RESULT)
            return output.read_bytes()

    @staticmethod
    def _jpeg_qscale(quality: int) -> int:
        # ffmpeg mjpeg qscale: 2 (best) .. 31 (worst)
        quality = max(1, min(int(quality), 100))
        return max(2, min(31, round(2 + (100 - quality) * 29 / 100)))

    def sample_frames(self, data: bytes, source_ext: str, fps: float = 0.5, max_frames: int = 300,
                      quality: int = 85, detect_scene_changes: bool = True,
                      scene_threshold: float = 0.3) -> List[SampledFrame]:
        interval = 1.0 / fps if fps > 0 else 2.0
        if detect_scene_changes:
            select = (f"select='isnan(prev_selected_t)+gte(t-prev_selected_t\\,{interval})"
                      f"+gt(scene\\,{scene_threshold})'")
        else:
            select = f"fps={fps}"

        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / f"input.{source_ext or 'mp4'}"
            source.write_bytes(data)
            pattern = Path(tmp) / "frame_%05d.jpg"
            result = self._run([
                self.ffmpeg_path, '-y', '-i', str(source),
                '-vf', f"{select},showinfo",
                '-vsync', 'vfr',
                '-frames:v', str(max_frames),
                '-q:v', str(self._jpeg_qscale(quality)),
                str(pattern)
            ])

            infos = [line for line in (result.stderr or '').splitlines() if 'Parsed_showinfo' in line and 'pts_time' in line]
            files = sorted(Path(tmp).glob("frame_*.jpg"))

            frames = []
            previous_time: Optional[float] = None
            for index, path in enumerate(files):
                time_sec = index * interval
                width = height = None
                if index < len(infos):
                    match = _PTS_TIME.search(infos[index])
                    if match:
                        time_sec = float(match.group(1))
                    size = _SIZE.search(infos[index])
                    if size:
                        width, height = int(size.group(1)), int(size.group(2))
                # Frames picked up off the regular grid came from the scene filter
                is_scene_change = (previous_time is not None and detect_scene_changes
                                   and (time_sec - previous_time) < interval * 0.99)
                frames.append(SampledFrame(
                    frame_number=index,
                    time_sec=time_sec,
                    image=path.read_bytes(),
                    width=width,
                    height=height,
                    is_scene_change=is_scene_change,
                ))
                previous_time = time_sec

        logger.info(f"Sampled {len(frames)} frame(s) at {fps} fps")
        return frames
