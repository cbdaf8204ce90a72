"""
Feed Definitions
================

Pydantic models for the feeds file and the loader that reads it.

The feeds file is TOML::

    [pagefeed]
    output = "~/public/feeds"

    [[feed]]
    title = "Example blog"
    filename = "example.rss"

    [feed.config]
    url = "https://example.com/blog"
    item = "article"
    heading = "h2"
    link = "h2 a"
    summary = ".excerpt"
    date = "time"
"""

import hashlib
import tomllib
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..utils.exceptions import ConfigurationError, ErrorCode, ValidationError
from ..utils.validators import URLValidator, OutputValidator, SelectorValidator


def _as_value_error(check, *args):
    try:
        return check(*args)
    except ValidationError as e:
        raise ValueError(e.args[0]) from e


class DateKind(str, Enum):
    """Whether a date field carries a time of day."""

    DATE = "Date"
    DATETIME = "DateTime"


class DateSpec(BaseModel):
    """How to locate and read a publication date inside an item."""

    selector: str
    type: DateKind = DateKind.DATETIME
    format: Optional[str] = Field(
        default=None, description="strptime format; heuristics are used when absent"
    )

    model_config = {"frozen": True}

    @field_validator("selector")
    @classmethod
    def validate_selector(cls, v):
        return _as_value_error(SelectorValidator.validate_selector, v, "date.selector")


class ExtractionRule(BaseModel):
    """Selectors applied to one source page."""

    url: str
    item: str
    heading: str
    link: Optional[str] = None
    summary: Optional[str] = None
    date: Optional[DateSpec] = None
    media: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return _as_value_error(URLValidator.validate_source_url, v)

    @field_validator("item", "heading")
    @classmethod
    def validate_required_selector(cls, v, info):
        return _as_value_error(SelectorValidator.validate_selector, v, info.field_name)

    @field_validator("link", "summary", "media")
    @classmethod
    def validate_optional_selector(cls, v, info):
        if v is None:
            return v
        return _as_value_error(SelectorValidator.validate_selector, v, info.field_name)

    @field_validator("date", mode="before")
    @classmethod
    def expand_date_shorthand(cls, v):
        """A bare string is shorthand for ``{selector = "..."}``."""
        if isinstance(v, str):
            return {"selector": v}
        return v


class FeedDefinition(BaseModel):
    """One output feed and the page it is scraped from."""

    title: str = Field(min_length=1)
    filename: str
    user_agent: Optional[str] = None
    description: Optional[str] = None
    config: ExtractionRule

    model_config = {"frozen": True}

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v):
        return _as_value_error(OutputValidator.validate_filename, v)

    @property
    def url(self) -> str:
        return self.config.url

    def fingerprint(self) -> str:
        """Stable hash of the definition, changes whenever any field changes."""
        return hashlib.sha256(self.model_dump_json().encode("utf-8")).hexdigest()


class AppSection(BaseModel):
    """The ``[pagefeed]`` table."""

    output: Optional[str] = None
    proxy: Optional[str] = None
    file_urls: bool = False

    @property
    def output_path(self) -> Optional[Path]:
        if self.output is None:
            return None
        return Path(self.output).expanduser()


class FeedsFile(BaseModel):
    """Parsed feeds file."""

    pagefeed: AppSection = Field(default_factory=AppSection)
    feed: List[FeedDefinition] = Field(default_factory=list)

    @property
    def feeds(self) -> List[FeedDefinition]:
        return self.feed


def parse_feeds(raw: Union[str, bytes], source: str = "<string>") -> FeedsFile:
    """Parse feeds file content.

    Raises:
        ConfigurationError: If the content is not TOML or does not validate
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")

    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Unable to parse configuration file {source}: {e}",
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
            config_key=source,
        )

    try:
        return FeedsFile.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(
            f"Invalid configuration file {source}: {problems}",
            error_code=ErrorCode.CONFIG_INVALID,
            config_key=source,
        )


def load_feeds_file(path: Union[str, Path]) -> FeedsFile:
    """Read and validate the feeds file at ``path``.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path).expanduser()

    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            error_code=ErrorCode.CONFIG_MISSING,
            config_key=str(path),
        )
    except OSError as e:
        raise ConfigurationError(
            f"Unable to read configuration file {path}: {e}",
            error_code=ErrorCode.CONFIG_MISSING,
            config_key=str(path),
        )

    return parse_feeds(raw, source=str(path))
