import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

from pythonjsonlogger import jsonlogger


CONTEXT_FIELDS = ("build_id", "stage", "platform", "container", "channel")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        for field_name in CONTEXT_FIELDS:
            if hasattr(record, field_name):
                log_record[field_name] = getattr(record, field_name)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def get_logging_config(
    log_level: str = "INFO",
    json_format: bool = True,
    log_dir: Optional[str] = None
) -> Dict[str, Any]:
    handlers_config: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "stream": "ext://sys.stdout",
            "formatter": "json" if json_format else "standard",
        }
    }

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handlers_config["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "filename": str(log_path / "sqelf_ci.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        }

    handler_names = list(handlers_config.keys())

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": CustomJsonFormatter,
                "format": "%(timestamp)s %(level)s %(name)s %(message)s",
            },
        },
        "handlers": handlers_config,
        "loggers": {
            "": {
                "handlers": handler_names,
                "level": log_level,
                "propagate": True,
            },
            "sqelf_ci": {
                "handlers": handler_names,
                "level": log_level,
                "propagate": False,
            },
            "aiohttp": {
                "handlers": handler_names,
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    log_dir: Optional[str] = None
) -> None:
    config = get_logging_config(
        log_level=log_level,
        json_format=json_format,
        log_dir=log_dir
    )
    logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    def __init__(
        self,
        logger: logging.Logger,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(logger, extra or {})

    def process(
        self,
        msg: str,
        kwargs: Dict[str, Any]
    ) -> tuple:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_stage_logger(
    build_id: str,
    stage: Optional[str] = None,
    platform: Optional[str] = None
) -> LoggerAdapter:
    logger = get_logger("sqelf_ci.pipeline")
    extra: Dict[str, Any] = {"build_id": build_id}
    if stage:
        extra["stage"] = stage
    if platform:
        extra["platform"] = platform
    return LoggerAdapter(logger, extra)


def get_container_logger(
    build_id: str,
    container: str
) -> LoggerAdapter:
    logger = get_logger("sqelf_ci.environment")
    return LoggerAdapter(logger, {"build_id": build_id, "container": container})
