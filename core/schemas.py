from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, field_validator


class DeployRequest(BaseModel):
    url: str
    branch: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        try:
            parts = urlsplit(value)
            # .port raises for a non-numeric or out-of-range port
            parts.port
        except ValueError as e:
            raise ValueError(f"invalid URL: {e}") from e
        if not parts.scheme or not parts.hostname or " " in value:
            raise ValueError("invalid URL")
        return value

    @field_validator("branch")
    @classmethod
    def _check_branch(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value or value.startswith("-"):
            raise ValueError("invalid branch name")
        return value


class ImageRef(BaseModel):
    """Deterministic image identity: repository location plus revision."""

    model_config = ConfigDict(frozen=True)

    name: str
    tag: str

    @classmethod
    def from_url(cls, url: str, revision: str) -> "ImageRef":
        return cls(name=image_name_for(url), tag=revision.strip())

    @property
    def full(self) -> str:
        return f"{self.name}:{self.tag}"

    def __str__(self) -> str:
        return self.full


def image_name_for(url: str) -> str:
    parts = urlsplit(url)
    # hostname drops credentials and lower-cases; keep an explicit port
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    path = parts.path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return f"{host}{path}".lower()


class RunningInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    container_id: str
    host_port: int


class Deployment(BaseModel):
    host_port: int
    image: ImageRef
    container_id: str
    replaced: List[str] = []
