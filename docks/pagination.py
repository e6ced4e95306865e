"""
Cursor pagination: drain multi-page listings into one ordered list.

A ``fetch_page(token) -> Page`` callable is called repeatedly, starting
with ``token=None``, until a page arrives without a continuation token.
Pages are fetched strictly one after another. A token that does not
advance raises :class:`PaginationStalled`; any error discards what was
gathered so far.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from docks.errors import PaginationStalled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One response from a listing endpoint."""

    items: list[T]
    continuation_token: str | None = None


@dataclass
class PageAccumulator(Generic[T]):
    """
    Running state of a fetch.

    ``done`` is True exactly when the last page had no continuation token.
    """

    items: list[T] = field(default_factory=list)
    done: bool = False
    continuation_token: str | None = None
    pages: int = 0

    def add(self, page: Page[T]) -> None:
        """Append *page* and advance the cursor."""
        if (
            page.continuation_token is not None
            and page.continuation_token == self.continuation_token
        ):
            raise PaginationStalled(page.continuation_token, self.pages + 1)
        self.items.extend(page.items)
        self.continuation_token = page.continuation_token
        self.done = page.continuation_token is None
        self.pages += 1


def fetch_all(
    fetch_page: Callable[[str | None], Page[T]],
    max_pages: int | None = None,
) -> list[T]:
    """
    Fetch every page and return all items in page order.

    Args:
        fetch_page: Called with the previous continuation token (None
            for the first page).
        max_pages: Optional ceiling on the number of pages; exceeding it
            raises PaginationStalled.

    Returns:
        All items, in page order and within-page order.

    Raises:
        PaginationStalled: A token repeated, or max_pages was exceeded.
    """
    acc: PageAccumulator[T] = PageAccumulator()
    while not acc.done:
        if max_pages is not None and acc.pages >= max_pages:
            raise PaginationStalled(acc.continuation_token, acc.pages)
        acc.add(fetch_page(acc.continuation_token))
        logger.debug("Fetched page %d (%d items so far)", acc.pages, len(acc.items))
    return acc.items


def boto_pages(
    call: Callable[..., dict[str, Any]],
    result_key: str,
    token_key: str = "NextToken",
    **params: Any,
) -> Callable[[str | None], Page[Any]]:
    """
    Adapt a boto3 ``describe_*`` call into a ``fetch_page`` function.

    Example::

        groups = fetch_all(boto_pages(
            asg.describe_auto_scaling_groups, "AutoScalingGroups"
        ))

    Args:
        call: Bound boto3 client method.
        result_key: Response key holding the page's items.
        token_key: Request/response key carrying the cursor.
        **params: Extra request parameters sent with every page.
    """

    def fetch_page(token: str | None) -> Page[Any]:
        request = dict(params)
        if token:
            request[token_key] = token
        response = call(**request)
        return Page(
            items=list(response.get(result_key, [])),
            continuation_token=response.get(token_key) or None,
        )

    return fetch_page
