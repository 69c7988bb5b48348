"""Admin secret check with a per-address lockout.

Failure records live in process memory only. Losing them on restart just
lifts any active lockouts.
"""

import hmac
import threading
import time
import zlib
from dataclasses import dataclass
from typing import Callable, Optional

from edubot.logging_config import get_logger

logger = get_logger("secret_guard")

SECRET_LENGTH_THRESHOLD = 15
SECRET_DELIMITER = "#"
SECRET_KEYWORD = "admin"


@dataclass
class FailedAttemptRecord:
    count: int
    last_attempt: float


@dataclass(frozen=True)
class GuardResult:
    is_secret_match: bool = False
    is_locked_out: bool = False


def looks_like_secret_attempt(text: str) -> bool:
    """Only texts shaped like a secret phrase count towards lockout."""
    candidate = text.strip()
    return (
        SECRET_DELIMITER in candidate
        or SECRET_KEYWORD in candidate.lower()
        or len(candidate) > SECRET_LENGTH_THRESHOLD
    )


def constant_time_equals(candidate: str, secret: str) -> bool:
    """Compare without leaking where the first difference is, or either length.

    Both sides are padded to the same width before the digest comparison and
    the length check is combined without short-circuiting.
    """
    left = candidate.encode("utf-8")
    right = secret.encode("utf-8")
    width = max(len(left), len(right), 1)
    same_bytes = hmac.compare_digest(left.ljust(width, b"\0"), right.ljust(width, b"\0"))
    same_length = len(left) == len(right)
    return bool(same_bytes & same_length)


class SecretGuard:
    def __init__(
        self,
        secret: str,
        max_attempts: int = 3,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        shards: int = 16,
    ):
        self._secret = secret or ""
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._locks = [threading.Lock() for _ in range(shards)]
        self._records: list[dict[str, FailedAttemptRecord]] = [{} for _ in range(shards)]
        if not self._secret:
            logger.warning("Admin secret is not configured; admin entry is disabled")

    def _shard(self, address: str) -> int:
        return zlib.crc32(address.encode("utf-8")) % len(self._locks)

    def _live_record(self, records: dict[str, FailedAttemptRecord], address: str, now: float) -> Optional[FailedAttemptRecord]:
        record = records.get(address)
        if record and now - record.last_attempt > self.window_seconds:
            del records[address]
            return None
        return record

    def check(self, address: str, candidate_text: Optional[str]) -> GuardResult:
        text = (candidate_text or "").strip()
        if not text or not self._secret or not looks_like_secret_attempt(text):
            return GuardResult()

        shard = self._shard(address)
        with self._locks[shard]:
            records = self._records[shard]
            now = self._clock()
            record = self._live_record(records, address, now)
            if record and record.count >= self.max_attempts:
                logger.warning("Admin secret attempt while locked out", extra={"context": {"address": address}})
                return GuardResult(is_locked_out=True)

            matched = constant_time_equals(text, self._secret)
            if matched:
                records.pop(address, None)
            else:
                if record is None:
                    record = FailedAttemptRecord(count=0, last_attempt=now)
                    records[address] = record
                record.count += 1
                record.last_attempt = now
                logger.info(
                    "Admin secret attempt failed",
                    extra={"context": {"address": address, "failures": record.count}},
                )

        return GuardResult(is_secret_match=matched)

    def is_locked_out(self, address: str) -> bool:
        shard = self._shard(address)
        with self._locks[shard]:
            record = self._live_record(self._records[shard], address, self._clock())
            return bool(record and record.count >= self.max_attempts)

    def failure_count(self, address: str) -> int:
        shard = self._shard(address)
        with self._locks[shard]:
            record = self._live_record(self._records[shard], address, self._clock())
            return record.count if record else 0

    def clear(self, address: str) -> None:
        shard = self._shard(address)
        with self._locks[shard]:
            self._records[shard].pop(address, None)
