"""Chapter audio generation and storage."""
import logging
import time
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)


class AudioGenerator:
    """Turn chapter text into an mp3 under the public audio directory."""

    def __init__(self, speech_provider, audio_dir: str, url_prefix: str = "/audio", max_input_chars: int = 4096):
        self.speech = speech_provider
        self.audio_dir = Path(audio_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_input_chars = max_input_chars

    async def generate(self, chapter_id: int, text: str, voice: str = "alloy", hd: bool = False) -> str:
        """
        Synthesize `text` and save it for `chapter_id`.

        Returns:
            Public URL of the saved file, e.g. /audio/chapter-3-1700000000000.mp3
        """
        suffix = "-hd" if hd else ""
        filename = f"chapter-{chapter_id}{suffix}-{int(time.time() * 1000)}.mp3"

        logger.info("Generating %saudio for chapter %s", "HD " if hd else "", chapter_id)
        # the speech API rejects longer inputs
        audio = await self.speech.synthesize(text[: self.max_input_chars], voice=voice, hd=hd)

        self.audio_dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.audio_dir / filename, "wb") as f:
            await f.write(audio)

        logger.info("Audio generated: %s", filename)
        return f"{self.url_prefix}/{filename}"

    def path_for(self, audio_url: Optional[str]) -> Optional[Path]:
        if not audio_url or not audio_url.startswith(self.url_prefix + "/"):
            return None
        return self.audio_dir / Path(audio_url[len(self.url_prefix) + 1:]).name

    def delete(self, audio_url: Optional[str]) -> bool:
        path = self.path_for(audio_url)
        if path is None or not path.exists():
            return False
        path.unlink()
        logger.info("Deleted audio file: %s", path.name)
        return True

    def cleanup_old_files(self, days_old: int = 30) -> int:
        """Remove audio files older than `days_old` days; returns how many were removed."""
        if not self.audio_dir.exists():
            return 0
        cutoff = time.time() - days_old * 24 * 60 * 60
        removed = 0
        for path in self.audio_dir.iterdir():
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
                logger.info("Cleaned up old audio file: %s", path.name)
        return removed
