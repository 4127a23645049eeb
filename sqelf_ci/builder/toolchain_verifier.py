from typing import Optional, Dict, List, Tuple
import re

from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import CommandFailed, ToolchainMissing


logger = get_logger(__name__)


VERSION_PATTERN = re.compile(r"(\d+\.\d+(?:\.\d+)?)")


def parse_version(text: str) -> Optional[str]:
    match = VERSION_PATTERN.search(text)
    if match:
        return match.group(1)
    return None


def version_tuple(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


class ToolchainVerifier:
    def __init__(
        self,
        runner: CommandRunner,
        timeout_seconds: float = 60,
        minimum_versions: Optional[Dict[str, str]] = None,
    ):
        self._runner = runner
        self._timeout = timeout_seconds
        self._minimum_versions = minimum_versions or {}

    async def verify(self, tools: List[str]) -> Dict[str, str]:
        found: Dict[str, str] = {}
        missing: List[str] = []

        for tool in tools:
            version = await self._query_version(tool)
            if version is None:
                missing.append(tool)
                continue

            minimum = self._minimum_versions.get(tool)
            if minimum and version_tuple(version) < version_tuple(minimum):
                logger.error(f"{tool} {version} is older than required {minimum}")
                missing.append(f"{tool}>={minimum} (found {version})")
                continue

            found[tool] = version
            logger.info(f"Found {tool} {version}")

        if missing:
            raise ToolchainMissing(
                message=f"Required tools unavailable: {', '.join(missing)}",
                missing_tools=missing,
                found_versions=found,
            )

        return found

    async def _query_version(self, tool: str) -> Optional[str]:
        try:
            result = await self._runner.run(
                [tool, "--version"],
                timeout=self._timeout,
                check=False,
            )
        except CommandFailed as e:
            logger.error(f"Failed to query {tool}: {e.message}")
            return None

        if not result.succeeded:
            logger.error(f"{tool} --version exited with {result.exit_code}")
            return None

        version = parse_version(result.output)
        if version is None:
            logger.error(f"Could not find a version in {tool} output: {result.output[:200]!r}")
        return version
