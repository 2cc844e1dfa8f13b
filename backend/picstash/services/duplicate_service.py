"""
Duplicate Detection Service

Groups near-identical images by clustering a distance-thresholded k-NN graph
with union-find.

Flow:
    every indexed image → VectorStore.find_similar(limit=100, self excluded)
        → neighbours within threshold → union + record pair distance
        → connected components of size >= 2
        → members sorted by created_at; earliest is the original

Groups are transitive: if A~B and B~C are within the threshold, A, B and C
are one group even when A and C are far apart. A duplicate's distance is the
one recorded for the pair (original, duplicate); a pair joined only through
an intermediate image was never compared directly and has distance None.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from picstash.core.database import as_utc
from picstash.repositories.image_repository import ImageRepository
from picstash.services.vector_store import VectorStore, bytes_to_vector

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
NEIGHBOUR_LIMIT = 100


class UnionFind:
    """Disjoint sets with path compression and union by rank."""

    def __init__(self):
        self._parent: dict[str, str] = {}
        self._rank: dict[str, int] = {}

    def add(self, item: str) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0

    def find(self, item: str) -> str:
        self.add(item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1

    def groups(self) -> dict[str, list[str]]:
        """Members keyed by root, in insertion order."""
        result: dict[str, list[str]] = {}
        for item in self._parent:
            result.setdefault(self.find(item), []).append(item)
        return result


def pair_key(a: str, b: str) -> str:
    """Order-independent key for a pair of image ids."""
    return f"{a}:{b}" if a < b else f"{b}:{a}"


@dataclass
class DuplicateImage:
    """Image in a duplicate group."""
    id: str
    title: str
    thumbnail_path: Optional[str]
    created_at: datetime
    distance: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail_path": self.thumbnail_path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "distance": self.distance,
        }


@dataclass
class DuplicateGroup:
    """An original image and the images that duplicate it."""
    original: DuplicateImage
    duplicates: list[DuplicateImage] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "original": self.original.to_dict(),
            "duplicates": [d.to_dict() for d in self.duplicates],
        }


@dataclass
class FindDuplicatesResult:
    groups: list[DuplicateGroup]
    total_groups: int
    total_duplicates: int

    def to_dict(self) -> dict:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "total_groups": self.total_groups,
            "total_duplicates": self.total_duplicates,
        }


def find_duplicates(
    db: Session,
    vector_store: VectorStore,
    threshold: float = DEFAULT_THRESHOLD,
) -> FindDuplicatesResult:
    """
    Cluster all embedded images into duplicate groups.

    Args:
        db: SQLAlchemy database session
        vector_store: Vector index to query
        threshold: Maximum L2 distance for two images to be linked

    Returns:
        FindDuplicatesResult; groups ordered by their original's created_at
    """
    start_time = time.time()
    repo = ImageRepository(db)

    union_find = UnionFind()
    distances: dict[str, float] = {}
    processed_pairs: set[str] = set()

    indexed_ids = vector_store.get_all_image_ids()
    for image_id in indexed_ids:
        union_find.add(image_id)

        source = repo.find_by_id_with_embedding(image_id)
        vector = bytes_to_vector(source.embedding, vector_store.dimension) if source else None
        if vector is None:
            continue

        for hit in vector_store.find_similar(vector, NEIGHBOUR_LIMIT, [image_id]):
            if hit.distance > threshold:
                continue
            key = pair_key(image_id, hit.image_id)
            if key in processed_pairs:
                continue
            processed_pairs.add(key)
            distances[key] = hit.distance
            union_find.union(image_id, hit.image_id)

    groups: list[DuplicateGroup] = []
    for member_ids in union_find.groups().values():
        if len(member_ids) < 2:
            continue

        images = repo.find_by_ids(member_ids)
        members = sorted(
            (images[i] for i in member_ids if i in images),
            key=lambda img: (as_utc(img.created_at), img.id),
        )
        if len(members) < 2:
            continue

        original, *rest = members
        groups.append(
            DuplicateGroup(
                original=DuplicateImage(
                    id=original.id,
                    title=original.title,
                    thumbnail_path=original.thumbnail_path,
                    created_at=as_utc(original.created_at),
                ),
                duplicates=[
                    DuplicateImage(
                        id=dup.id,
                        title=dup.title,
                        thumbnail_path=dup.thumbnail_path,
                        created_at=as_utc(dup.created_at),
                        distance=distances.get(pair_key(original.id, dup.id)),
                    )
                    for dup in rest
                ],
            )
        )

    groups.sort(key=lambda g: (g.original.created_at, g.original.id))
    total_duplicates = sum(len(g.duplicates) for g in groups)

    logger.info(
        f"Found {len(groups)} duplicate groups ({total_duplicates} duplicates)",
        extra={
            "event_type": "duplicates_found",
            "images_checked": len(indexed_ids),
            "total_groups": len(groups),
            "total_duplicates": total_duplicates,
            "threshold": threshold,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        }
    )
    return FindDuplicatesResult(
        groups=groups,
        total_groups=len(groups),
        total_duplicates=total_duplicates,
    )
