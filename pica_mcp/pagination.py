"""Skip/limit pagination over Pica list endpoints."""

import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

PageFetcher = Callable[[int, int], Awaitable[dict[str, Any]]]


async def paginate_results(fetch_page: PageFetcher, limit: int = DEFAULT_PAGE_SIZE) -> list[Any]:
    """Call ``fetch_page(skip, limit)`` until the collected rows reach ``total``.

    Each page is a ``{"rows": [...], "total": N}`` mapping. Rows are kept in
    arrival order. A failing page aborts the whole fetch.
    """
    all_rows: list[Any] = []
    skip = 0

    while True:
        page = await fetch_page(skip, limit)
        rows = page.get("rows") or []
        total = page.get("total") or 0
        all_rows.extend(rows)
        skip += limit

        if len(all_rows) >= total:
            break
        if not rows:
            logger.warning(
                "Empty page at skip=%d before reaching total=%d; stopping", skip - limit, total
            )
            break

    return all_rows


async def fetch_paginated(
    url: str,
    headers: dict[str, str],
    extra_params: dict[str, Any] | None = None,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    timeout: float = 30.0,
) -> list[Any]:
    """Fetch every row of a paged GET endpoint.

    Raises ``httpx.HTTPStatusError`` or ``httpx.RequestError`` from the first
    page that fails.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:

        async def fetch_page(skip: int, page_limit: int) -> dict[str, Any]:
            params = {"skip": skip, "limit": page_limit, **(extra_params or {})}
            response = await client.get(url, headers=headers, params=params)
            response.raise_for_status()
            return response.json()

        return await paginate_results(fetch_page, limit)
