"""
Id-addressable artifact storage on the local filesystem.
"""
import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from postreader.config import ARTIFACT_BASE_URL, AUDIO_DIR
from postreader.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_ARTIFACT_NAME = re.compile(r'^[A-Za-z0-9-]+\.wav$')


class ArtifactStore:
    """Stores one audio file per job, named after the job id."""

    def __init__(self, base_dir: Path = AUDIO_DIR, base_url: str = ARTIFACT_BASE_URL):
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip('/')

    @staticmethod
    def name_for(job_id: str) -> str:
        return f'{job_id}.wav'

    def ref_for(self, job_id: str) -> str:
        return f'{self.base_url}/{self.name_for(job_id)}'

    async def put(self, job_id: str, data: bytes) -> str:
        """
        Store the artifact for a job and return its reference.

        Writing the same job id again replaces the previous artifact.
        """
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, self.name_for(job_id), data)
        except OSError as e:
            logger.error('Failed to store artifact for job %s: %s', job_id, e)
            raise StoreUnavailable(f'Artifact store write failed: {e}') from e
        return self.ref_for(job_id)

    def _write(self, name: str, data: bytes):
        self.base_dir.mkdir(parents=True, exist_ok=True)
        # Write to a temp file then rename so readers never see a partial file
        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, suffix='.part')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, self.base_dir / name)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def path_for(self, name: str) -> Optional[Path]:
        """Resolve an artifact name to an existing file, or None."""
        if not _ARTIFACT_NAME.match(name):
            return None
        path = self.base_dir / name
        return path if path.is_file() else None


# Singleton instance
_artifact_store: Optional[ArtifactStore] = None


def get_artifact_store() -> ArtifactStore:
    """Get the artifact store singleton instance."""
    global _artifact_store
    if _artifact_store is None:
        _artifact_store = ArtifactStore()
    return _artifact_store


def reset_artifact_store():
    """Reset the artifact store singleton (for testing)."""
    global _artifact_store
    _artifact_store = None
