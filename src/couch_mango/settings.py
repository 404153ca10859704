"""Connection settings for the CouchDB adapter."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import CouchValidationError

DEFAULT_MODEL_VIEW = "loopback__model__name"
DEFAULT_MODEL_PREFIX = "LBModel"
DEFAULT_PROPERTY_PREFIX = "LBIndex"
DEFAULT_DATABASE = "test"
DEFAULT_PAGE_SIZE = 200


class CouchSettings(BaseModel):
    """Immutable connection settings.

    Either ``url`` or ``username`` + ``password`` must be given. Keys are
    accepted in snake_case or in the camelCase spelling of datasource
    configuration files (``modelIndex``, ``globalLimit``, ``lazyConnect``).
    A database name in the URL path is moved into ``database``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str | None = None
    username: str | None = None
    password: str | None = None
    host: str = "localhost"
    port: int = 5984
    protocol: str = "http"
    database: str | None = Field(default=None, alias="db")
    model_index: str | None = Field(default=None, alias="modelIndex")
    global_limit: int | None = Field(default=None, alias="globalLimit", ge=1)
    lazy_connect: bool = Field(default=False, alias="lazyConnect")
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, alias="pageSize", ge=1)
    timeout: float = 30.0

    @model_validator(mode="after")
    def _check_credentials(self) -> CouchSettings:
        if not self.url and (not self.username or not self.password):
            raise ValueError('Invalid settings: "url" OR "username" AND "password" required')
        return self

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> CouchSettings:
        """Validate a raw mapping, raising :class:`CouchValidationError`."""
        try:
            return cls.model_validate(data)
        except ValueError as e:
            raise CouchValidationError(str(e)) from e

    @property
    def server_url(self) -> str:
        """Base URL of the server, without any database path."""
        if not self.url:
            return f"{self.protocol}://{self.host}:{self.port}"
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, "", "", "")).rstrip("/")

    @property
    def database_name(self) -> str:
        """Database from settings, else from the URL path, else ``"test"``."""
        if self.database:
            return self.database
        if self.url:
            path = urlsplit(self.url).path.strip("/")
            if path:
                return path.split("/")[0]
        return DEFAULT_DATABASE

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return (self.username, self.password)
        return None
