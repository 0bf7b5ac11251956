"""On-disk cache of generated narratives.

Narratives are keyed by the SHA-256 of the system and user prompts, so an
unchanged domain is not regenerated on the next run. Files are written
atomically and read back as plain text.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from neuroreport.models import GenerationRequest

logger = logging.getLogger(__name__)


def hash_prompts(system_prompt: str, user_prompt: str) -> str:
    """Compute the cache key for a prompt pair."""
    payload = f"{system_prompt}\n---\n{user_prompt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


class NarrativeCache:
    """File cache of narrative text, one file per prompt hash.

    Files are named ``<domain_key>_<hash>.txt`` inside ``cache_dir``.
    """

    def __init__(self, cache_dir: str | Path):
        """Initialize the cache.

        Args:
            cache_dir: Directory holding cached narratives (created on demand)
        """
        self.cache_dir = Path(cache_dir)

    def path_for(self, request: GenerationRequest) -> Path:
        """Get the cache file path for a request."""
        key = hash_prompts(request.prompt_system, request.prompt_user)
        return self.cache_dir / f"{request.domain_key}_{key}.txt"

    def get(self, request: GenerationRequest) -> Optional[str]:
        """Read cached text for a request.

        Returns:
            Cached text, or None on a miss or an unreadable file
        """
        path = self.path_for(request)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache file {path}: {e}")
            return None
        logger.info(f"Using cached narrative for {request.domain_key}")
        return text

    def put(self, request: GenerationRequest, text: str) -> Path:
        """Write text for a request atomically.

        The text is written to a temporary file in the cache directory and
        renamed over the target, so readers never see a partial file.

        Returns:
            Path of the cache file
        """
        path = self.path_for(request)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Cached narrative for {request.domain_key} at {path}")
        return path

    def discard(self, request: GenerationRequest) -> None:
        """Remove a request's cached text, if any."""
        path = self.path_for(request)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not discard cache file {path}: {e}")
            return
        logger.info(f"Discarded cached narrative {path.name}")
