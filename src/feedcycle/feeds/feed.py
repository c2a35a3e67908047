from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from feedcycle.main.models import InDB


class FeedBase(BaseModel):
    url: str
    author: Optional[str] = None
    link: Optional[str] = None
    owner: Optional[str] = None

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url cannot be empty")
        return v


class DiscoveredSource(FeedBase):
    """A feed URL as reported by the directory, before reconciliation."""


class FeedCreate(FeedBase):
    @classmethod
    def from_source(cls, source: DiscoveredSource) -> "FeedCreate":
        return cls(**source.model_dump())


class FeedInDB(InDB, FeedBase):
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    invalid: bool = False
    invalid_reason: Optional[str] = None

    @property
    def is_invalid(self) -> bool:
        return self.invalid


class DirectoryFeed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    author: Optional[str] = None
    link: Optional[str] = None


class DirectoryUser(BaseModel):
    """One user record as returned by the directory service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[Union[str, int]] = None
    is_flagged: bool = Field(
        default=False, validation_alias=AliasChoices("isFlagged", "is_flagged")
    )
    feeds: list[Union[str, DirectoryFeed]] = Field(default_factory=list)
    display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("displayName", "display_name")
    )
    first_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("firstName", "first_name")
    )
    last_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lastName", "last_name")
    )

    @field_validator("feeds", mode="before")
    @classmethod
    def null_feeds_are_empty(cls, v):
        return [] if v is None else v

    @property
    def author_name(self) -> Optional[str]:
        if self.display_name:
            return self.display_name

        full_name = " ".join(n for n in (self.first_name, self.last_name) if n)
        return full_name or None
