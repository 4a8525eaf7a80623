"""Id generators for anomalies and notifications.

All generators share the call shape ``ids(kind, key) -> str`` where ``kind`` is
"anomaly" or "notification" and ``key`` is a content string describing the
finding.
"""
import hashlib
from itertools import count
from typing import Callable
from uuid import uuid4

IdFactory = Callable[[str, str], str]


def random_ids(kind: str, key: str) -> str:
    return f"{kind}_{uuid4().hex}"


def content_ids(kind: str, key: str) -> str:
    digest = hashlib.sha1(f"{kind}:{key}".encode("utf-8")).hexdigest()
    return f"{kind}_{digest[:16]}"


class SequentialIds:
    """Deterministic counter, one sequence per kind."""

    def __init__(self):
        self._counters: dict[str, count] = {}

    def __call__(self, kind: str, key: str) -> str:
        counter = self._counters.setdefault(kind, count(1))
        return f"{kind}_{next(counter)}"
