"""
Pydantic models for the build service payloads.

A response with HTTP 200 carries a finished build (`BuildResult`); any other
HTTP code carries a `BuildStatus` describing a queued, running or failed build.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from asu_cli.exceptions import BuildFailedError

# Status codes inside a BuildStatus that mean "still running".
IN_PROGRESS_CODES = frozenset({200, 202})


def _safe_file_name(value: str, what: str) -> str:
    """Rejects names that would escape the output directory."""
    if not value or "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


class BuildRequest(BaseModel):
    """The JSON body submitted to start a build."""

    version: str
    profile: str
    target: str
    packages: list[str] = Field(default_factory=list)


class BuildStatus(BaseModel):
    """A queued, running or failed build as reported by the service."""

    model_config = ConfigDict(extra="ignore")

    detail: str = ""
    enqueued_at: Optional[str] = None
    request_hash: str = ""
    status: int = 0
    type: str = ""

    @field_validator("enqueued_at", mode="before")
    @classmethod
    def coerce_enqueued_at(cls, v):
        return None if v is None else str(v)

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_CODES

    def to_error(self) -> BuildFailedError:
        return BuildFailedError(self.detail, self.status)

    def __str__(self) -> str:
        return self.detail


class BuildImage(BaseModel):
    """One firmware image listed in a finished build."""

    model_config = ConfigDict(extra="ignore")

    name: str
    sha256: str
    sha256_unsigned: str = ""
    filesystem: str = ""
    type: str = ""
    size: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        # Image names become file names in the output directory.
        return _safe_file_name(v, "image name")


class BuildResult(BaseModel):
    """A finished build: where its images live and how to verify them."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    bin_dir: str
    image_prefix: str
    images: list[BuildImage] = Field(default_factory=list)
    build_at: Optional[datetime] = None
    request_hash: str = ""
    id: str = ""
    target: str = ""
    version_code: str = ""
    version_number: str = ""
    detail: str = ""
    status: int = 200

    # Verbatim response body, saved next to the images as metadata.
    raw: bytes = Field(default=b"", exclude=True, repr=False)

    @field_validator("build_at", mode="before")
    @classmethod
    def empty_build_at(cls, v):
        if v in ("", 0, None):
            return None
        return v

    @field_validator("image_prefix")
    @classmethod
    def validate_image_prefix(cls, v: str) -> str:
        return _safe_file_name(v, "image prefix")


BuildResponse = Union[BuildResult, BuildStatus]


def parse_build_response(http_status: int, body: bytes) -> BuildResponse:
    """
    Decodes a build service response by its HTTP status code.

    Raises:
        pydantic.ValidationError: If the body does not match the expected shape.
    """
    if http_status == 200:
        result = BuildResult.model_validate_json(body)
        return result.model_copy(update={"raw": body})
    return BuildStatus.model_validate_json(body)
