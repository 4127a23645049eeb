from typing import Optional, Dict, List, Union
from dataclasses import dataclass
import asyncio
from pathlib import Path

from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import CommandFailed
from sqelf_ci.common.utils.time_utils import Timer


logger = get_logger(__name__)

READ_CHUNK_SIZE = 65536


def redact(text: str, secrets: Optional[List[str]]) -> str:
    for secret in secrets or ():
        if secret:
            text = text.replace(secret, "***")
    return text


@dataclass
class CommandResult:
    command: List[str]
    exit_code: int
    output: str
    duration_seconds: float = 0.0
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class CommandRunner:
    """Runs argv lists without a shell, streaming output to an optional log."""

    def __init__(self, default_timeout: Optional[float] = None):
        self._default_timeout = default_timeout

    async def run(
        self,
        cmd: List[str],
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
        log_path: Optional[Path] = None,
        timeout: Optional[float] = None,
        stdin: Optional[str] = None,
        check: bool = True,
        secrets: Optional[List[str]] = None,
    ) -> CommandResult:
        timeout = timeout if timeout is not None else self._default_timeout
        logger.debug(f"Running command: {redact(' '.join(cmd), secrets)}")

        timer = Timer().start()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise CommandFailed(
                message=f"Executable not found: {cmd[0]}",
                command=cmd,
                cause=e,
            )
        except PermissionError as e:
            raise CommandFailed(
                message=f"Executable not runnable: {cmd[0]}",
                command=cmd,
                cause=e,
            )

        output_chunks: List[bytes] = []
        timed_out = False

        async def _pump() -> None:
            if stdin is not None:
                process.stdin.write(stdin.encode("utf-8"))
                await process.stdin.drain()
                process.stdin.close()

            log_file = open(log_path, "ab") if log_path else None
            try:
                while True:
                    chunk = await process.stdout.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    output_chunks.append(chunk)
                    if log_file:
                        log_file.write(chunk)
                        log_file.flush()
            finally:
                if log_file:
                    log_file.close()
            await process.wait()

        try:
            await asyncio.wait_for(_pump(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
        except (OSError, ValueError) as e:
            raise CommandFailed(
                message=f"Lost output of {cmd[0]}: {e}",
                command=[redact(part, secrets) for part in cmd],
                output=redact(b"".join(output_chunks).decode("utf-8", errors="replace"), secrets),
                cause=e,
            )
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        output = redact(b"".join(output_chunks).decode("utf-8", errors="replace"), secrets)
        result = CommandResult(
            command=[redact(part, secrets) for part in cmd],
            exit_code=process.returncode if process.returncode is not None else -1,
            output=output,
            duration_seconds=timer.stop(),
            timed_out=timed_out,
        )

        if check and not result.succeeded:
            if timed_out:
                message = f"Command {cmd[0]} timed out after {timeout}s"
            else:
                message = f"Command {cmd[0]} failed with exit code {result.exit_code}"
            raise CommandFailed(
                message=message,
                command=result.command,
                exit_code=result.exit_code,
                output=output,
                timed_out=timed_out,
            )

        return result
