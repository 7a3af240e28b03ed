"""Sending one request to many peers at once."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar, Union

P = TypeVar("P")
R = TypeVar("R")


async def group_request(
    peers: Sequence[P], f: Callable[[P], Awaitable[R]]
) -> list[tuple[P, Union[R, BaseException]]]:
    """Run `f` for every peer concurrently and pair each peer with its outcome.

    A call that raised is paired with the exception it raised, so one failing
    peer does not hide the answers of the others.
    """
    peers = list(peers)
    results: list[Any] = await asyncio.gather(
        *(f(peer) for peer in peers), return_exceptions=True
    )
    return list(zip(peers, results))