from typing import Optional, List
from pathlib import Path
import asyncio
import re

import aiohttp
from pydantic import SecretStr

from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.common.config.constants import Platform
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.dto.context import Artifact, BuildContext
from sqelf_ci.common.dto.result import PublishOutcome
from sqelf_ci.common.exceptions.pipeline_exceptions import (
    CommandFailed,
    PublishFailure,
    TransientPublishError,
)
from sqelf_ci.common.utils.retry import async_retry


logger = get_logger(__name__)

NUGET_API_KEY_HEADER = "X-NuGet-ApiKey"
NUGET_ACCEPTED_STATUSES = (200, 201, 202)


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


class Publisher:
    """Pushes publishable artifacts for builds of the publishing branches.

    Linux builds push container images to the registry, Windows builds upload
    the package to the feed. Anything else is skipped without touching the
    network.
    """

    def __init__(
        self,
        runner: CommandRunner,
        branch_pattern: str,
        docker_registry: str = "docker.io",
        docker_user: Optional[SecretStr] = None,
        docker_token: Optional[SecretStr] = None,
        nuget_source: str = "https://www.nuget.org/api/v2/package",
        nuget_api_key: Optional[SecretStr] = None,
        max_retries: int = 2,
        timeout_seconds: float = 600.0,
    ):
        self._runner = runner
        self._branch_pattern = re.compile(branch_pattern)
        self._docker_registry = docker_registry
        self._docker_user = docker_user
        self._docker_token = docker_token
        self._nuget_source = nuget_source
        self._nuget_api_key = nuget_api_key
        self._max_retries = max_retries
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(cls, settings, runner: CommandRunner) -> "Publisher":
        return cls(
            runner=runner,
            branch_pattern=settings.publish_branch_pattern,
            docker_registry=settings.docker_registry,
            docker_user=settings.docker_user,
            docker_token=settings.docker_token,
            nuget_source=settings.nuget_source,
            nuget_api_key=settings.nuget_api_key,
            max_retries=settings.publish_max_retries,
            timeout_seconds=settings.docker_timeout_seconds * 5,
        )

    def skip_reason(self, context: BuildContext) -> Optional[str]:
        if not context.is_published_build:
            return "not a published build"
        if not context.branch:
            return "branch is unknown"
        if not self._branch_pattern.fullmatch(context.branch):
            return f"branch {context.branch!r} is not a publishing branch"
        return None

    async def publish(self, artifacts: List[Artifact], context: BuildContext) -> PublishOutcome:
        reason = self.skip_reason(context)
        if reason:
            logger.info(f"Skipping publish: {reason}")
            return PublishOutcome(published=False, skipped_reason=reason)

        if context.platform == Platform.LINUX:
            targets = [a.reference for a in artifacts if a.is_image and a.publishable]
        else:
            targets = [a.reference for a in artifacts if a.is_package and a.publishable]

        if not targets:
            logger.warning("Published build produced nothing to publish")
            return PublishOutcome(published=False, skipped_reason="no publishable artifacts")

        if context.platform == Platform.LINUX:
            await self._docker_login()
            for image in targets:
                await self._push_image(image)
        else:
            for package in targets:
                await self._upload_package(Path(package))

        logger.info(f"Published {len(targets)} artifacts for {context.short_version}")
        return PublishOutcome(published=True, targets=targets)

    async def _docker_login(self) -> None:
        user = _secret(self._docker_user)
        token = _secret(self._docker_token)
        if not user or not token:
            raise PublishFailure(
                message="Registry credentials are not configured",
                target=self._docker_registry,
            )

        try:
            await self._runner.run(
                ["docker", "login", "--username", user, "--password-stdin", self._docker_registry],
                stdin=token,
                timeout=self._timeout,
                secrets=[user, token],
            )
        except CommandFailed as e:
            raise PublishFailure(
                message=f"Registry login failed: {e.message}",
                target=self._docker_registry,
                cause=e,
            )

    @async_retry(initial_delay=2.0, max_delay=30.0, max_retries_attr="_max_retries")
    async def _push_image(self, image: str) -> None:
        logger.info(f"Pushing {image}")
        try:
            await self._runner.run(["docker", "push", image], timeout=self._timeout)
        except CommandFailed as e:
            if e.timed_out or e.exit_code not in (None, 0):
                raise TransientPublishError(
                    message=f"Push of {image} failed: {e.message}",
                    target=image,
                    response_body=e.output,
                    cause=e,
                )
            raise PublishFailure(message=f"Push of {image} failed: {e.message}", target=image, cause=e)

    @async_retry(initial_delay=2.0, max_delay=30.0, max_retries_attr="_max_retries")
    async def _upload_package(self, package: Path) -> None:
        api_key = _secret(self._nuget_api_key)
        if not api_key:
            raise PublishFailure(message="Package feed API key is not configured", target=package.name)

        try:
            content = package.read_bytes()
        except OSError as e:
            raise PublishFailure(message=f"Cannot read {package}: {e}", target=package.name, cause=e)

        form = aiohttp.FormData()
        form.add_field("package", content, filename=package.name, content_type="application/octet-stream")
        headers = {NUGET_API_KEY_HEADER: api_key}

        logger.info(f"Uploading {package.name} to {self._nuget_source}")
        try:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.put(self._nuget_source, data=form, headers=headers) as response:
                    if response.status in NUGET_ACCEPTED_STATUSES:
                        logger.info(f"Feed accepted {package.name} ({response.status})")
                        return
                    body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientPublishError(
                message=f"Upload of {package.name} failed: {e}",
                target=package.name,
                cause=e,
            )

        error_class = TransientPublishError if response.status >= 500 or response.status == 429 else PublishFailure
        raise error_class(
            message=f"Feed rejected {package.name} with {response.status}",
            target=package.name,
            status_code=response.status,
            response_body=body,
        )
