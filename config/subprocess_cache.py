"""Subprocess execution with caching and safety features.

The scanner shells out for exactly two things: reading the neighbour
cache with ``arp -an`` on systems without ``/proc/net/arp``, and the
optional ICMP probe through ``ping``. Both go through ``safe_run`` so
they are allowlisted, shell-free and logged with their timing.

Usage:
    from config.subprocess_cache import safe_run, get_subprocess_cache

    # Simple safe execution
    result = safe_run(['ping', '-c', '1', '192.168.1.1'])

    # With caching (the ARP table changes slowly)
    cache = get_subprocess_cache()
    result = cache.run(['arp', '-an'], ttl=10.0)
"""

# nosec B404 - subprocess usage is required and validated via allowlist
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from config.constants import ALLOWED_SUBPROCESS_COMMANDS, INTERVALS
from config.exceptions import SubprocessError
from config.logging_config import get_logger, log_subprocess_call

logger = get_logger(__name__)


@dataclass
class CachedResult:
    result: subprocess.CompletedProcess
    stored_at: float

    def fresh(self, ttl: float) -> bool:
        return time.monotonic() - self.stored_at < ttl


class SubprocessCache:
    """Runs commands and remembers their output for a short while.

    Only the ARP table read is worth caching: a scan may ask for it more
    than once and the kernel table changes slowly. ``ping`` runs are
    always fresh (``bypass_cache``).

    Example:
        >>> cache = SubprocessCache(default_ttl=5.0)
        >>> first = cache.run(['arp', '-an'])
        >>> cache.run(['arp', '-an']) is first
        True
    """

    def __init__(self, default_ttl: float = 5.0, max_cache_size: int = 16):
        self.default_ttl = default_ttl
        self.max_cache_size = max_cache_size
        self._entries: Dict[Tuple[str, ...], CachedResult] = {}
        self._lock = threading.Lock()

    def run(
        self,
        cmd: List[str],
        ttl: Optional[float] = None,
        bypass_cache: bool = False,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Run ``cmd`` or return a cached result younger than ``ttl``.

        Raises:
            SubprocessError: The program is missing, cannot start or times out.
        """
        key = tuple(cmd)
        if not bypass_cache:
            hit = self._lookup(key, self.default_ttl if ttl is None else ttl)
            if hit is not None:
                return hit

        result = self._execute(cmd, timeout or INTERVALS.SUBPROCESS_TIMEOUT_SECONDS, kwargs)
        if not bypass_cache:
            self._store(key, result)
        return result

    def _lookup(self, key: Tuple[str, ...], ttl: float) -> Optional[subprocess.CompletedProcess]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.fresh(ttl):
            return None
        logger.debug(f"Reusing output of {key[0]}")
        return entry.result

    def _store(self, key: Tuple[str, ...], result: subprocess.CompletedProcess) -> None:
        with self._lock:
            self._entries[key] = CachedResult(result, time.monotonic())
            while len(self._entries) > self.max_cache_size:
                oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
                del self._entries[oldest]

    @staticmethod
    def _execute(cmd: List[str], timeout: float, kwargs: dict) -> subprocess.CompletedProcess:
        kwargs.setdefault("capture_output", True)
        kwargs.setdefault("text", True)
        started = time.monotonic()
        try:
            result = subprocess.run(cmd, timeout=timeout, **kwargs)  # nosec B603 - allowlisted
        except subprocess.TimeoutExpired as e:
            raise SubprocessError(
                f"Command timed out after {timeout}s", command=cmd, details={"timeout": timeout}
            ) from e
        except FileNotFoundError as e:
            raise SubprocessError(f"Command not found: {cmd[0]}", command=cmd) from e
        except OSError as e:
            raise SubprocessError(f"Cannot run {cmd[0]}: {e}", command=cmd) from e

        log_subprocess_call(
            logger, cmd, result.returncode, (time.monotonic() - started) * 1000,
            success=result.returncode == 0,
        )
        return result

    def invalidate(self, cmd: Optional[List[str]] = None) -> None:
        """Forget one command's output, or everything when ``cmd`` is None."""
        with self._lock:
            if cmd is None:
                self._entries.clear()
            else:
                self._entries.pop(tuple(cmd), None)


# Global cache instance
_global_cache: Optional[SubprocessCache] = None
_global_cache_lock = threading.Lock()


def get_subprocess_cache() -> SubprocessCache:
    """Get or create the global subprocess cache."""
    global _global_cache
    with _global_cache_lock:
        if _global_cache is None:
            _global_cache = SubprocessCache()
        return _global_cache


def check_allowed(cmd: List[str]) -> None:
    """Raise SubprocessError unless ``cmd`` starts with an allowlisted program."""
    if not cmd:
        raise SubprocessError("Empty command", command=cmd)

    base_cmd = Path(cmd[0]).name
    if base_cmd not in ALLOWED_SUBPROCESS_COMMANDS:
        raise SubprocessError(
            f"Command not in allowlist: {base_cmd}",
            command=cmd,
            details={"allowed": sorted(ALLOWED_SUBPROCESS_COMMANDS)},
        )


def safe_run(
    cmd: List[str], timeout: Optional[float] = None, ttl: Optional[float] = None, **kwargs
) -> subprocess.CompletedProcess:
    """Run an allowlisted command without a shell.

    Args:
        cmd: Command and arguments as list.
        timeout: Command timeout in seconds.
        ttl: Reuse a result younger than this many seconds. ``None`` always runs fresh.
        **kwargs: Additional arguments passed to subprocess.run().

    Raises:
        SubprocessError: If command is not allowed, fails, or times out.

    Example:
        >>> result = safe_run(['arp', '-an'], ttl=10.0)
        >>> if result.returncode == 0:
        ...     print(result.stdout)
    """
    check_allowed(cmd)
    cache = get_subprocess_cache()
    if ttl is None:
        return cache.run(cmd, bypass_cache=True, timeout=timeout, **kwargs)
    return cache.run(cmd, ttl=ttl, timeout=timeout, **kwargs)
