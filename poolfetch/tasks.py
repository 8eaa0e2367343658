from __future__ import annotations

from typing import Iterable, Iterator

from .models import Task
from .transport import Transport


def iter_tasks(items: Iterable[str], transport: Transport) -> Iterator[Task]:
    """Lazily yield one Task per item, in input order.

    Each task's attempt_fn closes over its own item and issues a fresh
    request through the transport every time it is called. The scheduler's
    cancel event, when given, is forwarded to the transport."""
    for index, item in enumerate(items):
        yield Task(index=index, item=item, attempt_fn=_bind(transport, item))


def _bind(transport: Transport, item: str):
    def attempt(cancelled=None):
        return transport.attempt(item, cancelled)

    return attempt
