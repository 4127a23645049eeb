import argparse
import asyncio
import sys
from typing import Optional, List

from pydantic import ValidationError

from sqelf_ci.common.config.constants import RESULT_FILE
from sqelf_ci.common.config.logging_config import setup_logging, get_logger
from sqelf_ci.common.config.settings import Settings
from sqelf_ci.common.dto.result import PipelineResult
from sqelf_ci.common.exceptions.base_exceptions import ConfigurationError
from sqelf_ci.orchestrator.pipeline import BuildPipeline, write_result


logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sqelf-ci",
        description="Build, integration-test and publish the GELF input",
    )
    parser.add_argument("--shortver", default=None, help="Version to stamp into packages and images")
    parser.add_argument("--staging-dir", default=None, help="Directory for build outputs and test logs")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.shortver:
        overrides["short_version"] = args.shortver
    if args.staging_dir:
        overrides["staging_dir"] = args.staging_dir

    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            message=f"Invalid configuration: {'; '.join(err['msg'] for err in e.errors())}",
            field_name=", ".join(fields) or None,
            cause=e,
        )


async def run_pipeline(settings: Settings) -> PipelineResult:
    pipeline = BuildPipeline(settings)
    result = await pipeline.run()
    if pipeline.layout is not None:
        path = write_result(result, pipeline.layout.root / RESULT_FILE)
        logger.info(f"Wrote build result to {path}")
    return result


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        setup_logging()
        logger.error(str(e), extra={"details": e.details})
        return 1

    setup_logging(
        log_level=settings.log_level,
        json_format=settings.json_logs,
        log_dir=settings.log_dir,
    )

    try:
        result = asyncio.run(run_pipeline(settings))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
