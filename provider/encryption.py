"""
encryption.py - Encryption pipeline.

For every newly discovered file the provider synthesizes a placeholder
payload of exactly the original file's size, encrypts it under a fresh
Fernet key, and writes the ciphertext into its storage directory.

Placeholder content comes from one of two fillers, picked once per file
from the mime type: printable text for ``text/*`` uploads, uniform random
bytes for everything else.
"""

import asyncio
import logging
import mimetypes
import os
import random
import string
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet

from provider.errors import ArtifactProcessingError

logger = logging.getLogger("encryption")

TEXT_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + " "
TEXT_MIME_PREFIX = "text/"
FALLBACK_EXTENSION = "bin"
ENCRYPTED_SUFFIX = "enc"
ARTIFACT_FILE_MODE = 0o600


class TextFiller:
    """Bytes drawn uniformly from a fixed printable-ASCII alphabet."""

    name = "text"

    def __init__(self, alphabet: str = TEXT_ALPHABET, rng: Optional[random.Random] = None):
        self._alphabet = alphabet
        self._rng = rng or random.SystemRandom()

    def fill(self, size: int) -> bytes:
        if size <= 0:
            return b""
        return "".join(self._rng.choices(self._alphabet, k=size)).encode("ascii")


class RandomFiller:
    """Uniformly random bytes."""

    name = "random"

    def fill(self, size: int) -> bytes:
        if size <= 0:
            return b""
        return os.urandom(size)


def select_filler(mime_type: Optional[str]) -> Union[TextFiller, RandomFiller]:
    if (mime_type or "").lower().startswith(TEXT_MIME_PREFIX):
        return TextFiller()
    return RandomFiller()


def extension_for(mime_type: Optional[str]) -> str:
    """File extension (no dot) for a mime type, or ``bin`` if unknown."""
    if not mime_type:
        return FALLBACK_EXTENSION
    ext = mimetypes.guess_extension(mime_type.split(";")[0].strip().lower())
    if not ext:
        return FALLBACK_EXTENSION
    return ext.lstrip(".")


class _MillisClock:
    """Strictly increasing unix-millisecond stamps, safe across threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            stamp = max(int(time.time() * 1000), self._last + 1)
            self._last = stamp
            return stamp


_clock = _MillisClock()


def artifact_name(millis: int, ext: str) -> str:
    return f"file_{millis}.{ext}.{ENCRYPTED_SUFFIX}"


@dataclass
class EncryptedArtifact:
    local_path: str
    artifact_name: str
    encryption_key: str
    artifact_size: int
    plaintext_size: int
    filler: str


def decrypt_artifact(path: Union[str, Path], encryption_key: str) -> bytes:
    """Read an artifact back to its placeholder plaintext."""
    token = Path(path).read_bytes()
    return Fernet(encryption_key.encode("ascii")).decrypt(token)


class EncryptionPipeline:
    """Produces one encrypted placeholder artifact per stored file."""

    def __init__(self, storage_dir: Union[str, Path]):
        self.storage_dir = Path(storage_dir).expanduser()

    def ensure_storage_dir(self):
        self.storage_dir.mkdir(parents=True, exist_ok=True, mode=0o700)

    async def process(self, file: dict) -> EncryptedArtifact:
        """Build the artifact for ``file`` off the event loop.

        Raises ArtifactProcessingError; nothing is left on disk on failure.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.process_sync, file)

    def process_sync(self, file: dict) -> EncryptedArtifact:
        file_id = file.get("id", "?")
        size = file.get("file_size")
        if not isinstance(size, int) or size < 0:
            raise ArtifactProcessingError(file_id, f"invalid file_size {size!r}")

        filler = select_filler(file.get("mime_type"))
        try:
            key = Fernet.generate_key()
            payload = filler.fill(size)
            if len(payload) != size:
                raise ArtifactProcessingError(file_id, "placeholder size mismatch")
            token = Fernet(key).encrypt(payload)
        except ArtifactProcessingError:
            raise
        except (MemoryError, OverflowError, ValueError, TypeError) as e:
            raise ArtifactProcessingError(file_id, f"{type(e).__name__}: {e}") from e

        path = self._write_exclusive(file_id, extension_for(file.get("mime_type")), token)
        logger.info(
            "Artifact written: file=%s name=%s size=%.2f MB filler=%s",
            file_id, path.name, size / 1024 / 1024, filler.name,
        )
        return EncryptedArtifact(
            local_path=str(path),
            artifact_name=path.name,
            encryption_key=key.decode("ascii"),
            artifact_size=len(token),
            plaintext_size=size,
            filler=filler.name,
        )

    def _write_exclusive(self, file_id: str, ext: str, data: bytes) -> Path:
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)
        while True:
            path = self.storage_dir / artifact_name(_clock.next(), ext)
            try:
                fd = os.open(path, flags, ARTIFACT_FILE_MODE)
            except FileExistsError:
                continue
            except OSError as e:
                raise ArtifactProcessingError(file_id, f"cannot create {path}: {e}") from e
            break
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
        except OSError as e:
            discard_artifact(path)
            raise ArtifactProcessingError(file_id, f"write failed for {path}: {e}") from e
        return path


def discard_artifact(path: Union[str, Path]):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove artifact %s", path)
