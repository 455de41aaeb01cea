"""Data models for discovered images."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PendingImage:
    """An image still waiting for its archived location."""

    id: int
    source_id: int
    source_url: str


@dataclass
class ImageRecordSummary:
    """Result of recording a batch of discovered urls.

    ``urls`` is the caller's full input so "0 of 5 inserted (all
    duplicates)" can be told apart from "5 of 5 inserted".
    """

    source_id: int
    inserted: int = 0
    urls: list[str] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return len(self.urls) - self.inserted
