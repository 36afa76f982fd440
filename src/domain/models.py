from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

PLACEHOLDER_AVATAR_URL = "https://github.com/identicons/unknown.png"
UNKNOWN_OWNER = "unknown"

# Columns the local listing may be ordered by. Anything else falls back to the default.
SORTABLE_FIELDS = ("created_at", "updated_at", "star_count", "fork_count", "name")
SORT_FIELD_ALIASES = {"stargazers_count": "star_count", "forks_count": "fork_count"}
DEFAULT_SORT_FIELD = "created_at"

# Longest search keyword accepted from callers
MAX_QUERY_LENGTH = 255


class KeywordPolicy(str, Enum):
    """How a re-reconciled row treats the keyword that touched it again."""
    KEEP = "keep"
    OVERWRITE = "overwrite"
    ACCUMULATE = "accumulate"


class RepositoryEntity(BaseModel):
    """
    Immutable domain model representing a GitHub repository snapshot.
    This is the record reconciled into the local store.
    """
    model_config = ConfigDict(frozen=True)

    external_id: int = Field(
        ..., ge=1,
        validation_alias=AliasChoices("external_id", "github_id"),
        description="Stable numeric repository id from GitHub",
    )
    name: str = Field(..., min_length=1, description="Name of the repository")
    full_name: str = Field(..., min_length=1, description="owner/name")
    description: Optional[str] = Field(None, description="Repository description")
    url: str = Field(..., min_length=1, validation_alias=AliasChoices("url", "html_url"))
    star_count: int = Field(0, ge=0, validation_alias=AliasChoices("star_count", "stargazers_count"))
    fork_count: int = Field(0, ge=0, validation_alias=AliasChoices("fork_count", "forks_count"))
    primary_language: Optional[str] = Field(
        None, validation_alias=AliasChoices("primary_language", "language")
    )
    owner_login: str = Field(..., min_length=1, description="Login name of the repository owner")
    owner_avatar_url: str = Field(PLACEHOLDER_AVATAR_URL, description="Owner avatar, placeholder when unknown")
    search_keyword: str = Field(..., min_length=1, description="Query term that most recently touched this record")

    @field_validator("owner_avatar_url", mode="before")
    @classmethod
    def _default_avatar(cls, value):
        return value or PLACEHOLDER_AVATAR_URL

    @field_validator("star_count", "fork_count", mode="before")
    @classmethod
    def _default_count(cls, value):
        return 0 if value is None else value


class StoredRepository(RepositoryEntity):
    """A repository row as persisted, including the store-owned columns."""
    id: int = Field(..., description="Internal row id, distinct from external_id")
    created_at: datetime
    updated_at: datetime


class RateLimitInfo(BaseModel):
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset: Optional[int] = None


class SearchPage(BaseModel):
    """One page of GitHub search results, mapped to the local record shape."""
    query: str
    repositories: List[RepositoryEntity]
    total_count: int
    incomplete_results: bool = False
    current_page: int
    per_page: int
    total_pages: int
    rate_limit: RateLimitInfo


class RepositoryPage(BaseModel):
    repositories: List[StoredRepository]
    total_count: int
    current_page: int
    per_page: int
    total_pages: int


class StatsOverview(BaseModel):
    total_repositories: int = 0
    unique_keywords: int = 0
    avg_stars: float = 0.0
    max_stars: int = 0
    unique_languages: int = 0


class LanguageCount(BaseModel):
    language: str
    count: int


class RepositoryStats(BaseModel):
    overview: StatsOverview
    top_languages: List[LanguageCount]
