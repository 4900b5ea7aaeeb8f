"""Resource interface and URI parameter helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit


@dataclass(frozen=True)
class ResourceMetadata:
    uri: str
    name: str
    description: str
    mime_type: str = "text/plain"

    def to_dict(self) -> dict[str, str]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class ResourceContent:
    uri: str
    text: str
    mime_type: str = "text/plain"


class Resource(ABC):
    @property
    @abstractmethod
    def metadata(self) -> ResourceMetadata:
        """Template URI, name and description."""
        ...

    @abstractmethod
    def can_handle(self, uri: str) -> bool: ...

    @abstractmethod
    async def read(self, uri: str) -> ResourceContent: ...


def parse_uri_params(uri: str) -> dict[str, str]:
    """Query parameters of ``uri``; the last value wins for repeated keys."""
    return dict(parse_qsl(urlsplit(uri).query, keep_blank_values=True))


def get_int_param(
    params: dict[str, str], key: str, default: int, maximum: int | None = None
) -> int:
    raw = params.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return min(value, maximum) if maximum is not None else value


def get_optional_int_param(params: dict[str, str], key: str) -> int | None:
    raw = params.get(key)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def get_bool_param(params: dict[str, str], key: str, default: bool) -> bool:
    raw = params.get(key)
    if not raw:
        return default
    return raw in ("true", "1")
