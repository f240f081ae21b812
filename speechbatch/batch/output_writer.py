"""
Artifact naming and writing.

Artifacts are written as `{name}.part` and renamed into place, so a crashed
run never leaves a truncated file under the final name.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Set, Union

import aiofiles
import aiofiles.os

from ..core.interfaces import AudioFormat
from ..utils.validators import sanitize_filename

logger = logging.getLogger(__name__)

MAX_COLLISION_SUFFIX = 10_000


def build_output_name(base_name: str, provider: str, voice: Optional[str], audio_format: AudioFormat) -> str:
    """
    `{sanitised base}_{provider}_{voice}.{ext}`

    >>> build_output_name("../intro", "openai", "alloy", AudioFormat.MP3)
    'intro_openai_alloy.mp3'
    """
    parts = [sanitize_filename(base_name, fallback="item"), provider]
    if voice:
        parts.append(sanitize_filename(voice, fallback="voice"))
    return f"{'_'.join(parts)}.{audio_format.extension}"


class OutputWriter:
    """Writes audio payloads into one output directory"""

    def __init__(self, output_dir: Union[str, Path], overwrite: bool = False):
        self.output_dir = Path(output_dir)
        self.overwrite = overwrite
        self._reserved: Set[Path] = set()
        self._lock = asyncio.Lock()

    async def ensure_directory(self) -> None:
        await aiofiles.os.makedirs(self.output_dir, exist_ok=True)

    async def reserve_path(self, file_name: str) -> Path:
        """
        Pick the final path for an artifact

        Unless overwriting, an existing file (or a name already handed to
        another worker) gets a numeric suffix: name_1.mp3, name_2.mp3, ...
        """
        candidate = self.output_dir / file_name
        async with self._lock:
            if not self.overwrite:
                stem, suffix = candidate.stem, candidate.suffix
                counter = 0
                while candidate in self._reserved or await aiofiles.os.path.exists(candidate):
                    counter += 1
                    if counter > MAX_COLLISION_SUFFIX:
                        raise FileExistsError(f"Too many artifacts named {file_name} in {self.output_dir}")
                    candidate = self.output_dir / f"{stem}_{counter}{suffix}"
            self._reserved.add(candidate)
        return candidate

    async def write(self, file_name: str, data: bytes) -> Path:
        """Write one artifact and return its final path"""
        await self.ensure_directory()
        target = await self.reserve_path(file_name)
        temp_path = target.with_name(f".{target.name}.part")

        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, target)
        except OSError:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)
            raise

        logger.debug("Wrote %s bytes to %s", len(data), target)
        return target
