"""Value Objects for paged QuickBase responses.

QuickBase uses two incompatible cursor styles. Record queries report
``{totalRecords, numRecords, skip}`` and are advanced by offset; user,
audit and similar listings return ``nextPageToken`` (or ``nextToken``).
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar, Union

T = TypeVar("T")


class PaginationStyle(str, enum.Enum):
    SKIP = "skip"
    TOKEN = "token"
    NONE = "none"


@dataclass(frozen=True)
class PaginationMetadata:
    """Loose union of the paging fields a response may carry.

    A page with none of these fields is a single terminal page.
    """
    total_count: Optional[int] = None
    returned_count: Optional[int] = None
    skip: Optional[int] = None
    next_token: Optional[str] = None

    @classmethod
    def from_dict(cls, metadata: Optional[Mapping[str, Any]]) -> "PaginationMetadata":
        """Builds metadata from the wire format of a response's ``metadata`` object."""
        if not metadata:
            return cls()
        next_token = metadata.get("nextPageToken") or metadata.get("nextToken")
        return cls(
            total_count=metadata.get("totalRecords"),
            returned_count=metadata.get("numRecords"),
            skip=metadata.get("skip"),
            next_token=next_token if isinstance(next_token, str) else None,
        )

    @property
    def has_token(self) -> bool:
        return bool(self.next_token)

    @property
    def has_skip_fields(self) -> bool:
        return self.total_count is not None and self.skip is not None and self.returned_count is not None

    def detect_style(self) -> PaginationStyle:
        if self.has_token:
            return PaginationStyle.TOKEN
        if self.has_skip_fields:
            return PaginationStyle.SKIP
        return PaginationStyle.NONE


@dataclass
class Page(Generic[T]):
    """One page of results: the items plus the metadata used to advance."""
    items: List[T] = field(default_factory=list)
    metadata: PaginationMetadata = field(default_factory=PaginationMetadata)
    raw: Optional[Dict[str, Any]] = None  # Decoded response body, if any


@dataclass(frozen=True)
class SkipCursor:
    skip: int
    page_size: int


@dataclass(frozen=True)
class TokenCursor:
    token: str


PageCursor = Union[SkipCursor, TokenCursor]

# fetch(skip, next_token) -> Page. Exactly one of the two is meaningful per call.
PageFetcher = Callable[[int, str], Page[T]]
