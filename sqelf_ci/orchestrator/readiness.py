from abc import ABC, abstractmethod
from typing import Optional, List, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
import re

import aiohttp

from sqelf_ci.common.config.logging_config import get_logger


logger = get_logger(__name__)


@dataclass
class ProbeResult:
    name: str
    ready: bool
    message: str = ""
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ReadinessProbe(ABC):
    name = "probe"

    @abstractmethod
    async def check(self) -> ProbeResult:
        raise NotImplementedError("Subclasses must implement check method")


class HttpReadinessProbe(ReadinessProbe):
    name = "http"

    def __init__(self, url: str, request_timeout_seconds: float = 5.0):
        self._url = url
        self._timeout = request_timeout_seconds

    async def check(self) -> ProbeResult:
        try:
            async with aiohttp.ClientSession() as session:
                timeout = aiohttp.ClientTimeout(total=self._timeout)
                async with session.get(self._url, timeout=timeout) as response:
                    if response.status == 200:
                        return ProbeResult(self.name, True, f"{self._url} returned 200")
                    return ProbeResult(self.name, False, f"{self._url} returned {response.status}")
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            return ProbeResult(self.name, False, f"{self._url} unreachable: {e}")


class LogMarkerProbe(ReadinessProbe):
    name = "log_marker"

    def __init__(self, path: Union[str, Path], pattern: str):
        self._path = Path(path)
        self._pattern = re.compile(pattern)

    async def check(self) -> ProbeResult:
        if not self._path.is_file():
            return ProbeResult(self.name, False, f"{self._path.name} not written yet")
        try:
            content = self._path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return ProbeResult(self.name, False, f"cannot read {self._path.name}: {e}")
        if self._pattern.search(content):
            return ProbeResult(self.name, True, f"found {self._pattern.pattern!r}")
        return ProbeResult(self.name, False, f"waiting for {self._pattern.pattern!r}")


async def check_all(probes: List[ReadinessProbe]) -> List[ProbeResult]:
    results = []
    for probe in probes:
        try:
            result = await probe.check()
        except Exception as e:
            logger.debug(f"Readiness probe {probe.name} raised: {e}")
            result = ProbeResult(probe.name, False, str(e))
        results.append(result)
    return results


def all_ready(results: List[ProbeResult]) -> bool:
    return all(r.ready for r in results)


def describe(results: Optional[List[ProbeResult]]) -> str:
    if not results:
        return "no probe results"
    return "; ".join(f"{r.name}: {'ready' if r.ready else 'not ready'} ({r.message})" for r in results)
