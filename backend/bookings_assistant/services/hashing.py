"""One-way hashing for customer PII (email addresses, names).

Bookings and captured emails are matched on these hashes so plaintext
addresses never need to be stored. The secret and iteration count are loaded
once per process into an immutable ``HashingConfig``.

Secret resolution (``HASH_SECRET_PATH``, default ``/data/hash-secret.txt``):
  - file exists: read the hex-encoded secret from it
  - file missing but its directory is writable: generate a secret and persist it
  - otherwise: a fixed development secret (hashes made with it are not secure)
"""
from __future__ import annotations
import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_SECRET_PATH = '/data/hash-secret.txt'
DEFAULT_ITERATIONS = 200_000
_DEV_FALLBACK_SECRET = b"dev-fallback-secret-do-not-use-in-production!!!"

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashingConfig:
    secret: bytes
    iterations: int
    is_fallback: bool = False


def load_hashing_config(secret_path: Optional[str] = None, iterations: Optional[int] = None) -> HashingConfig:
    path = Path(secret_path or os.getenv('HASH_SECRET_PATH', DEFAULT_SECRET_PATH))
    iters = iterations if iterations is not None else int(os.getenv('HASH_ITERATIONS', str(DEFAULT_ITERATIONS)))
    if iters < 1:
        raise ValueError("HASH_ITERATIONS must be at least 1")

    if path.is_file():
        secret = bytes.fromhex(path.read_text(encoding='utf-8').strip())
        log.info("hash_secret_loaded", extra={"path": str(path)})
        return HashingConfig(secret=secret, iterations=iters)

    if path.resolve().parent.is_dir():
        secret = secrets.token_bytes(32)
        try:
            path.write_text(secret.hex(), encoding='utf-8')
        except OSError as e:
            log.warning("hash_secret_write_failed", exc_info=e, extra={"path": str(path)})
        else:
            log.info("hash_secret_generated", extra={"path": str(path)})
            return HashingConfig(secret=secret, iterations=iters)

    log.warning("hash_secret_fallback", extra={"path": str(path)})
    return HashingConfig(secret=_DEV_FALLBACK_SECRET, iterations=iters, is_fallback=True)


class HashingService:
    def __init__(self, config: HashingConfig):
        self._config = config

    @property
    def config(self) -> HashingConfig:
        return self._config

    def hash_value(self, value: str) -> str:
        """PBKDF2-HMAC-SHA256 of the trimmed, lower-cased value as 64 hex chars."""
        normalized = value.strip().lower().encode('utf-8')
        digest = hashlib.pbkdf2_hmac('sha256', normalized, self._config.secret, self._config.iterations, dklen=32)
        return digest.hex()


_service: HashingService | None = None


def configure_hashing(config: HashingConfig) -> HashingService:
    global _service
    _service = HashingService(config)
    return _service


def get_hashing_service() -> HashingService:
    if _service is None:
        return configure_hashing(load_hashing_config())
    return _service
