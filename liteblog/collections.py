from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

from .content import Post
from .derived import is_listed
from .utils import slugify


class TagIndex(Mapping[str, tuple[Post, ...]]):
    """Mapping of tag name to the non-draft posts carrying it.

    Tags keep first-seen order; posts under a tag keep input order. Rebuilt
    from scratch on every pass.
    """

    def __init__(self, posts: Iterable[Post]):
        mapping: dict[str, list[Post]] = {}
        self._counts: dict[str, int] = {}
        for post in posts:
            if post.draft:
                continue
            for tag in post.tags:
                self._counts[tag] = self._counts.get(tag, 0) + 1
                tagged = mapping.setdefault(tag, [])
                if not tagged or tagged[-1] is not post:
                    tagged.append(post)
        self._mapping = {tag: tuple(items) for tag, items in mapping.items()}

    def __getitem__(self, key: str) -> tuple[Post, ...]:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def count(self, tag: str) -> int:
        """Number of tag occurrences across non-draft posts."""
        return self._counts.get(tag, 0)

    def by_popularity(self) -> list[tuple[str, int]]:
        """(tag, count) pairs, most used first; ties keep first-seen order."""
        pairs = [(tag, self.count(tag)) for tag in self._mapping]
        return sorted(pairs, key=lambda pair: pair[1], reverse=True)

    @staticmethod
    def url_for(tag: str) -> str:
        return f"/tags/{slugify(tag)}.html"

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagIndex({len(self._mapping)} tags)"


@dataclass(frozen=True)
class PaginationPage:
    """One page of the post listing.

    Attributes:
        items: Posts shown on this page.
        number: 1-based page number.
        total: Total number of pages.
    """

    items: tuple[Post, ...]
    number: int
    total: int

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total

    @property
    def prev_number(self) -> int | None:
        return self.number - 1 if self.has_prev else None

    @property
    def next_number(self) -> int | None:
        return self.number + 1 if self.has_next else None

    @property
    def prev_url(self) -> str | None:
        """Link to the previous page; page 1 lives at the site root."""
        if not self.has_prev:
            return None
        return "/" if self.prev_number == 1 else f"/page/{self.prev_number}.html"

    @property
    def next_url(self) -> str | None:
        return f"/page/{self.next_number}.html" if self.has_next else None


def paginate(posts: Sequence[Post], per_page: int = 10) -> list[PaginationPage]:
    """Split an already sorted post sequence into pages.

    Args:
        posts: Posts in display order.
        per_page: Page size; must be positive.

    Returns:
        Pages in order. An empty input yields no pages.
    """
    if per_page < 1:
        raise ValueError(f"per_page must be positive, got {per_page}")
    total = math.ceil(len(posts) / per_page)
    return [
        PaginationPage(
            items=tuple(posts[i * per_page : (i + 1) * per_page]),
            number=i + 1,
            total=total,
        )
        for i in range(total)
    ]


def listed_posts(posts: Iterable[Post]) -> list[Post]:
    """Non-draft, non-special posts, newest first."""
    return sorted((p for p in posts if is_listed(p)), key=lambda p: p.date, reverse=True)
