"""
Structured log records as exported by the ingestion pipeline.

Two shapes are accepted: the plain ``timestamp/level/message/properties`` form,
and native CLEF, where reserved keys carry an ``@`` prefix and every other
key is a property.
"""
import json
import re
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import Field, field_validator

from sqelf_ci.common.dto.base import FrozenDTO
from sqelf_ci.common.utils.time_utils import parse_iso_datetime


CLEF_DEFAULT_LEVEL = "Information"
ERROR_LEVELS = frozenset({"error", "fatal", "critical", "err", "crit", "alert", "emerg", "panic"})

_TEMPLATE_TOKEN = re.compile(r"\{\{|\}\}|\{([^{}]+)\}")


def render_template(template: str, properties: Dict[str, Any]) -> str:
    def _replace(match: "re.Match[str]") -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        name = match.group(1)
        key = name.lstrip("@$").split(",")[0].split(":")[0]
        if key not in properties:
            return token
        value = properties[key]
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    return _TEMPLATE_TOKEN.sub(_replace, template)


class ClefRecord(FrozenDTO):
    timestamp: datetime
    level: str = Field(min_length=1)
    message: str
    message_template: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    exception: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_iso_datetime(v)
        return v

    @property
    def is_error(self) -> bool:
        return self.level.lower() in ERROR_LEVELS

    @classmethod
    def from_line(cls, line: str) -> "ClefRecord":
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("record is not a JSON object")
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ClefRecord":
        if "@t" in data:
            return cls._from_clef(data)
        return cls._from_plain(data)

    @classmethod
    def _from_plain(cls, data: Dict[str, Any]) -> "ClefRecord":
        missing = [k for k in ("timestamp", "level", "message", "properties") if k not in data]
        if missing:
            raise ValueError(f"missing required fields: {', '.join(missing)}")
        properties = data["properties"]
        if not isinstance(properties, dict):
            raise ValueError("properties must be a mapping")
        return cls(
            timestamp=data["timestamp"],
            level=data["level"],
            message=data["message"],
            message_template=data.get("message_template"),
            properties=properties,
            exception=data.get("exception"),
        )

    @classmethod
    def _from_clef(cls, data: Dict[str, Any]) -> "ClefRecord":
        properties = {k: v for k, v in data.items() if not k.startswith("@")}
        # Properties that themselves start with '@' are escaped as '@@'
        for key, value in data.items():
            if key.startswith("@@"):
                properties[key[1:]] = value

        template = data.get("@mt")
        message = data.get("@m")
        if message is None:
            if template is None:
                raise ValueError("record has neither @m nor @mt")
            message = render_template(template, properties)

        return cls(
            timestamp=data["@t"],
            level=data.get("@l") or CLEF_DEFAULT_LEVEL,
            message=message,
            message_template=template,
            properties=properties,
            exception=data.get("@x"),
        )
