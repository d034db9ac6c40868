"""Identity-keyed drawable cache with explicit disposal."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Set

from histonet.rendering.drawables import Drawable, DrawableFactory, RenderKey, StyleInputs

LOGGER = logging.getLogger(__name__)


class DisposalOrderError(RuntimeError):
    """Raised when a sweep would dispose a drawable acquired in the open pass."""


@dataclass(frozen=True)
class CacheStats:
    created: int
    disposed: int
    live: int


class RenderObjectCache:
    """Create drawables lazily and dispose the ones a pass no longer uses.

    One cache is owned by each renderer; nothing is shared across views.
    """

    def __init__(self, factory: DrawableFactory) -> None:
        self._factory = factory
        self._entries: Dict[RenderKey, Drawable] = {}
        self._acquired: Optional[Set[RenderKey]] = None
        self._created = 0
        self._disposed = 0

    @property
    def factory(self) -> DrawableFactory:
        return self._factory

    @property
    def stats(self) -> CacheStats:
        return CacheStats(created=self._created, disposed=self._disposed, live=len(self._entries))

    @property
    def in_pass(self) -> bool:
        return self._acquired is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Set[RenderKey]:
        return set(self._entries)

    def get_or_create(self, key: RenderKey, inputs: StyleInputs) -> Drawable:
        """Return the cached drawable for ``key``, building it on first use."""

        drawable = self._entries.get(key)
        if drawable is None:
            drawable = self._factory.create(key, inputs)
            self._entries[key] = drawable
            self._created += 1
        if self._acquired is not None:
            self._acquired.add(key)
        return drawable

    def sweep(self, valid_keys: Iterable[RenderKey]) -> int:
        """Dispose every entry whose key is not in ``valid_keys``.

        Returns:
            int: Number of drawables disposed.

        Raises:
            DisposalOrderError: If a key acquired in the open pass is missing
                from ``valid_keys``.
        """

        valid = set(valid_keys)
        if self._acquired is not None and not self._acquired <= valid:
            missing = len(self._acquired - valid)
            raise DisposalOrderError(f"Sweep would dispose {missing} drawables acquired in the open render pass")
        stale = [key for key in self._entries if key not in valid]
        for key in stale:
            self._entries.pop(key).dispose()
        self._disposed += len(stale)
        if stale:
            LOGGER.debug("Disposed %d stale drawables (live=%d)", len(stale), len(self._entries))
        return len(stale)

    @contextmanager
    def render_pass(self) -> Iterator["RenderObjectCache"]:
        """Record acquisitions and sweep everything else on a clean exit."""

        if self._acquired is not None:
            raise DisposalOrderError("Render passes cannot be nested")
        self._acquired = set()
        try:
            yield self
        except BaseException:
            self._acquired = None
            raise
        acquired = self._acquired
        self._acquired = None
        self.sweep(acquired)

    def dispose_all(self) -> int:
        if self._acquired is not None:
            raise DisposalOrderError("Cannot dispose the cache during a render pass")
        return self.sweep(())


__all__ = ["CacheStats", "DisposalOrderError", "RenderObjectCache"]
