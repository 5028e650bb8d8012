"""Feature source interface shared by every dataset decoder."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .models import Feature, SourceMetadata

logger = logging.getLogger(__name__)


class FeatureSource(ABC):
    """Forward-only, closeable sequence of features read from one dataset.

    A source owns the underlying dataset handles until ``close()`` is called.
    Iteration never rewinds; once exhausted or closed the sequence is over.
    Instances hold no locks and must only be consumed by one caller.
    """

    format: str = "unknown"

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Describe the opened dataset."""

    @abstractmethod
    def _next_feature(self) -> Feature:
        """Decode the next feature, raising ``StopIteration`` at the end."""

    def _release(self) -> None:
        """Free decoder resources. Called at most once."""

    def __iter__(self) -> Iterator[Feature]:
        return self

    def __next__(self) -> Feature:
        if self._closed:
            raise StopIteration
        return self._next_feature()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing %s source %s", self.format, self.metadata.source)
        self._release()

    def __enter__(self) -> FeatureSource:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class IterableSource(FeatureSource):
    """Feature source over in-memory features or attribute mappings."""

    format = "memory"

    def __init__(self, features: Iterable[Feature | Mapping[str, Any]], name: str = "<memory>"):
        super().__init__()
        self._features = iter(features)
        self._metadata = SourceMetadata(source=name, format=self.format)

    @property
    def metadata(self) -> SourceMetadata:
        return self._metadata

    def _next_feature(self) -> Feature:
        item = next(self._features)
        if isinstance(item, Feature):
            return item
        return Feature.from_mapping(item)

    def _release(self) -> None:
        close = getattr(self._features, "close", None)
        if close is not None:
            close()
