"""
Cross-provider deduplication of canonical events.

Clustering is a greedy single-linkage pass: every event is compared with
the current survivor of each open cluster, in input order, and joins the
first cluster it matches. This is a practical approximation, not an
optimal clustering; its cost grows with events x open clusters rather than
with every pair of events. A residual pass afterwards merges clusters whose
survivors still match, so no two returned events are similar.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from processor.errors import DedupInvariantError
from processor.models import CanonicalEvent, DedupeOptions
from processor.similarity import are_similar

logger = logging.getLogger(__name__)

Member = Tuple[int, CanonicalEvent]


def select_survivor(members: List[Member], preserve_provider: Optional[str] = None) -> Member:
    """
    Pick the member that represents a cluster.

    Priority: a member from the preferred provider, then the highest
    completeness score, then the earliest input position.

    Raises:
        DedupInvariantError: If there are no members to choose from
    """
    if not members:
        raise DedupInvariantError("Cannot select a survivor from an empty cluster")

    pool = members
    if preserve_provider:
        preferred = [m for m in members if m[1].source_provider == preserve_provider]
        if preferred:
            pool = preferred

    return min(pool, key=lambda member: (-member[1].completeness_score, member[0]))


@dataclass
class DedupCluster:
    """Candidate records judged to be the same occurrence."""
    members: List[Member] = field(default_factory=list)
    comparable: bool = True
    survivor_index: Optional[int] = None
    survivor: Optional[CanonicalEvent] = None

    @property
    def anchor(self) -> int:
        """Earliest input position, used to order the output."""
        return min(index for index, _ in self.members)

    @property
    def discarded(self) -> List[CanonicalEvent]:
        return [event for index, event in self.members if index != self.survivor_index]

    def add(self, index: int, event: CanonicalEvent) -> None:
        self.members.append((index, event))

    def absorb(self, other: 'DedupCluster') -> None:
        self.members.extend(other.members)
        self.members.sort(key=lambda member: member[0])

    def resolve(self, preserve_provider: Optional[str] = None) -> CanonicalEvent:
        self.survivor_index, self.survivor = select_survivor(self.members, preserve_provider)
        return self.survivor


class EventDeduplicator:
    """Clusters near-duplicate events and keeps one survivor per cluster."""

    def __init__(self, options: Optional[DedupeOptions] = None):
        self.options = options or DedupeOptions()

    def cluster(self, events: List[CanonicalEvent]) -> List[DedupCluster]:
        """
        Group events into resolved clusters, ordered by first appearance.

        Events without a title are placed in their own non-comparable
        cluster and are never joined.
        """
        preserve = self.options.preserve_provider
        clusters: List[DedupCluster] = []
        open_clusters: List[DedupCluster] = []

        for index, event in enumerate(events):
            if not event.title:
                retained = DedupCluster(comparable=False)
                retained.add(index, event)
                retained.resolve()
                clusters.append(retained)
                continue

            for candidate in open_clusters:
                if are_similar(event, candidate.survivor, self.options):
                    candidate.add(index, event)
                    candidate.resolve(preserve)
                    break
            else:
                opened = DedupCluster()
                opened.add(index, event)
                opened.resolve(preserve)
                open_clusters.append(opened)

        self._merge_residual(open_clusters)
        clusters.extend(open_clusters)
        clusters.sort(key=lambda c: c.anchor)

        for resolved in clusters:
            if resolved.survivor is None:
                raise DedupInvariantError(
                    f"Cluster at position {resolved.anchor} has no survivor"
                )
        return clusters

    def deduplicate(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        """
        Remove duplicate events, keeping one survivor per cluster.

        Args:
            events: Candidate events in input order

        Returns:
            Survivors in input order; None or an empty list is returned as is
        """
        if not events:
            return events

        clusters = self.cluster(events)
        survivors = [c.survivor for c in clusters]

        removed = len(events) - len(survivors)
        if removed:
            logger.info(
                f"Removed {removed} duplicates, kept {len(survivors)} unique events"
            )
        return survivors

    def _merge_residual(self, clusters: List[DedupCluster]) -> None:
        """
        Merge clusters whose survivors still match, in place.

        Clusters before ``position`` are known to have no partner, so after a
        merge only the changed cluster is re-checked and the scan resumes
        where it left off.
        """
        preserve = self.options.preserve_provider
        position = 0
        while position < len(clusters):
            partner = self._find_partner(clusters, position, position + 1)
            if partner is None:
                position += 1
                continue

            keep = position
            while partner is not None:
                keep, drop = min(keep, partner), max(keep, partner)
                logger.debug(
                    f"Merging residual duplicate '{clusters[drop].survivor.title}' "
                    f"into '{clusters[keep].survivor.title}'"
                )
                clusters[keep].absorb(clusters[drop])
                clusters[keep].resolve(preserve)
                del clusters[drop]
                partner = self._find_partner(clusters, keep, 0)
            position = keep + 1

    def _find_partner(self, clusters: List[DedupCluster], index: int, start: int) -> Optional[int]:
        """Index of the first cluster from start on whose survivor matches clusters[index]."""
        survivor = clusters[index].survivor
        for other in range(start, len(clusters)):
            if other != index and are_similar(survivor, clusters[other].survivor, self.options):
                return other
        return None


def dedupe(events, options: Optional[DedupeOptions] = None):
    """Deduplicate a list of canonical events with the given options."""
    return EventDeduplicator(options).deduplicate(events)
