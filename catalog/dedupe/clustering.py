"""Cluster assignment policies for incremental deduplication."""

from abc import ABC, abstractmethod
from typing import Callable, Container, Generic, Optional, Sequence, TypeVar
import logging

from ..matching.similarity import deterministic_hash

logger = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")


def unique_id(candidate: str, taken: Container[str]) -> str:
    """Disambiguate a content hash already used by a distinct entity.

    Two entities can round to the same seed while the matcher keeps them
    apart (e.g. 80m apart in the same 0.001 degree cell).
    """
    if candidate not in taken:
        return candidate

    n = 2
    while deterministic_hash(f"{candidate}#{n}") in taken:
        n += 1
    new_id = deterministic_hash(f"{candidate}#{n}")
    logger.debug(f"Id collision on {candidate}, using {new_id}")
    return new_id


class Clusterer(ABC, Generic[C, R]):
    """Pick the cluster an incoming record joins."""

    @abstractmethod
    def find_cluster(
        self, clusters: Sequence[C], record: R, is_match: Callable[[C, R], bool]
    ) -> Optional[C]:
        """Return the cluster to merge ``record`` into, or None for a new one."""


class FirstMatchClusterer(Clusterer[C, R]):
    """Merge into the first matching cluster in creation order.

    Not transitive-safe: a record joins the first cluster it matches even
    if a later cluster would match better, and chains (A~B, B~C) can pull
    records together that would not match on their own.
    """

    def find_cluster(
        self, clusters: Sequence[C], record: R, is_match: Callable[[C, R], bool]
    ) -> Optional[C]:
        for cluster in clusters:
            if is_match(cluster, record):
                return cluster
        return None
