"""
Per-workspace vector storage and similarity search.

Each VectorStore holds (text, embedding, metadata) records for one workspace.
Search is cosine similarity expressed on a 0-100 scale:

    - filter: exact-match AND over metadata (dotted keys reach nested dicts)
    - score: max(0, cosine) * 100
    - threshold: drop results scoring below score_threshold
    - sort: descending, ties keep insertion order
    - truncate to limit

Small stores are scanned exactly with NumPy. Once a store reaches
hnsw_threshold records, unfiltered searches use a FAISS HNSW graph to pick
candidates, which then go through the same threshold and sort steps.
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

import faiss
import numpy as np
from numpy.typing import NDArray

from ragcore.exceptions import DimensionMismatch
from ragcore.retrieval.models import EmbeddingVector, SearchResult, new_id

logger = logging.getLogger(__name__)

EmbeddingLike = Union[EmbeddingVector, Sequence[float], NDArray[np.float32]]

HNSW_NEIGHBORS = 32
HNSW_MIN_CANDIDATES = 100


@dataclass
class StoredDocument:
    """A record as held by the store."""

    id: str
    text: str
    metadata: dict[str, Any]


def matches_filters(metadata: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """
    Check every filter key against metadata by exact equality.

    A key present verbatim in metadata is compared directly; otherwise a
    dotted key such as "author.name" walks nested dictionaries. Missing keys
    never match.
    """
    if not filters:
        return True
    for key, expected in filters.items():
        if key in metadata:
            actual = metadata[key]
        else:
            actual = metadata
            for part in key.split("."):
                if not isinstance(actual, dict) or part not in actual:
                    return False
                actual = actual[part]
        if actual != expected:
            return False
    return True


def _normalize(rows: NDArray[np.float32]) -> NDArray[np.float32]:
    norms = np.linalg.norm(rows, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    return (rows / norms).astype(np.float32)


class VectorStore:
    """
    Vector store for a single workspace.

    Writes are serialized by a lock. Searches take a snapshot of the records
    under the lock and score outside it, so reads run concurrently with each
    other and never observe a half-applied write.

    Example:
        >>> store = VectorStore(embedding_dimensions=384)
        >>> doc_id = store.add_document("hello", embedding, {"lang": "en"})
        >>> results = store.search(query_embedding, limit=3, score_threshold=70)
    """

    def __init__(
        self,
        embedding_dimensions: int,
        workspace_id: str = "default",
        hnsw_threshold: int = 5000,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            embedding_dimensions: Length every stored and query vector must have
            workspace_id: Workspace this store belongs to
            hnsw_threshold: Record count at which searches switch to HNSW
        """
        if embedding_dimensions <= 0:
            raise ValueError(f"embedding_dimensions must be positive, got {embedding_dimensions}")
        self.embedding_dimensions = embedding_dimensions
        self.workspace_id = workspace_id
        self.hnsw_threshold = hnsw_threshold
        self._lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._matrix: NDArray[np.float32] = np.zeros((0, self.embedding_dimensions), dtype=np.float32)
        self._count = 0
        self._records: list[StoredDocument] = []
        self._positions: dict[str, int] = {}
        self._hnsw: Optional[faiss.IndexHNSWFlat] = None

    @property
    def size(self) -> int:
        """Number of stored records."""
        return self._count

    def __len__(self) -> int:
        return self._count

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _as_array(self, embedding: EmbeddingLike) -> NDArray[np.float32]:
        values = embedding.values if isinstance(embedding, EmbeddingVector) else embedding
        array = np.asarray(values, dtype=np.float32).reshape(-1)
        if array.shape[0] != self.embedding_dimensions:
            raise DimensionMismatch(self.embedding_dimensions, int(array.shape[0]), f"workspace {self.workspace_id}")
        return array

    def add_document(
        self,
        text: str,
        embedding: EmbeddingLike,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Store a record and return its freshly generated id.

        Raises:
            DimensionMismatch: If the embedding length differs from the store's;
                the store is left unchanged
        """
        return self.add_documents([(text, embedding, metadata)])[0]

    def add_documents(
        self,
        items: Iterable[tuple[str, EmbeddingLike, Optional[dict[str, Any]]]],
    ) -> list[str]:
        """
        Store several records at once.

        All embeddings are validated before any record is inserted.

        Returns:
            Ids of the new records, in input order
        """
        texts: list[str] = []
        rows: list[NDArray[np.float32]] = []
        metadatas: list[dict[str, Any]] = []
        for text, embedding, metadata in items:
            rows.append(self._as_array(embedding))
            texts.append(text)
            metadatas.append(dict(metadata or {}))

        if not rows:
            return []

        normalized = _normalize(np.vstack(rows))
        records = [StoredDocument(id=new_id(), text=t, metadata=m) for t, m in zip(texts, metadatas)]

        with self._lock:
            start = self._count
            needed = start + len(records)
            if needed > self._matrix.shape[0]:
                capacity = max(needed, self._matrix.shape[0] * 2, 16)
                grown = np.zeros((capacity, self.embedding_dimensions), dtype=np.float32)
                grown[:start] = self._matrix[:start]
                self._matrix = grown
            self._matrix[start:needed] = normalized
            for offset, record in enumerate(records):
                self._records.append(record)
                self._positions[record.id] = start + offset
            self._count = needed
            if self._hnsw is not None:
                self._hnsw.add(np.ascontiguousarray(normalized))

        return [record.id for record in records]

    def _remove_positions(self, positions: list[int]) -> None:
        """Drop rows by position. Caller holds the lock."""
        keep = np.ones(self._count, dtype=bool)
        keep[positions] = False
        # Copy on write so snapshots taken by in-flight searches stay valid
        self._matrix = self._matrix[: self._count][keep].copy()
        self._records = [record for record, kept in zip(self._records, keep) if kept]
        self._positions = {record.id: i for i, record in enumerate(self._records)}
        self._count = len(self._records)
        self._hnsw = None

    def delete_document(self, document_id: str) -> bool:
        """Delete one record by id. Returns False if the id is unknown."""
        with self._lock:
            position = self._positions.get(document_id)
            if position is None:
                return False
            self._remove_positions([position])
        return True

    def delete_document_chunks(self, document_id: str) -> int:
        """Delete every record whose metadata document_id matches. Returns the count."""
        with self._lock:
            positions = [
                i for i, record in enumerate(self._records) if record.metadata.get("document_id") == document_id
            ]
            if positions:
                self._remove_positions(positions)
        if positions:
            logger.debug(f"Deleted {len(positions)} chunks of document {document_id} from {self.workspace_id}")
        return len(positions)

    def clear_all(self) -> bool:
        """Remove every record. Safe to call repeatedly."""
        with self._lock:
            self._reset()
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> Optional[StoredDocument]:
        """Return the record with this id, or None."""
        with self._lock:
            position = self._positions.get(document_id)
            return self._records[position] if position is not None else None

    def get_embeddings(self, ids: Iterable[str]) -> dict[str, NDArray[np.float32]]:
        """Return the unit-normalized stored vectors for the known ids."""
        with self._lock:
            return {
                document_id: self._matrix[self._positions[document_id]].copy()
                for document_id in ids
                if document_id in self._positions
            }

    def search(
        self,
        embedding: EmbeddingLike,
        limit: int = 10,
        score_threshold: float = 0.0,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """
        Find the records most similar to a query vector.

        Args:
            embedding: Query vector
            limit: Maximum number of results
            score_threshold: Minimum score (0-100) a result must reach
            filters: Exact-match metadata constraints, all of which must hold

        Returns:
            Results sorted by score descending, ties in insertion order

        Raises:
            DimensionMismatch: If the query length differs from the store's
        """
        query = _normalize(self._as_array(embedding).reshape(1, -1))[0]
        if limit <= 0:
            return []

        with self._lock:
            count = self._count
            matrix = self._matrix[:count]
            records = list(self._records)
            candidates: Optional[NDArray[np.int64]] = None
            if not filters and count >= self.hnsw_threshold:
                candidates = self._hnsw_candidates(query, limit)

        if count == 0:
            return []

        if candidates is None:
            positions = np.arange(count)
            if filters:
                mask = np.fromiter(
                    (matches_filters(record.metadata, filters) for record in records),
                    dtype=bool,
                    count=count,
                )
                positions = positions[mask]
        else:
            positions = candidates

        if positions.size == 0:
            return []

        cosine = (matrix[positions] @ query).astype(np.float64)
        scores = np.clip(cosine, 0.0, 1.0) * 100.0
        keep = scores >= score_threshold
        positions, scores = positions[keep], scores[keep]

        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            SearchResult(
                id=records[positions[i]].id,
                text=records[positions[i]].text,
                metadata=dict(records[positions[i]].metadata),
                score=float(scores[i]),
            )
            for i in order
        ]

    def _hnsw_candidates(self, query: NDArray[np.float32], limit: int) -> NDArray[np.int64]:
        """Approximate nearest positions from the HNSW graph. Caller holds the lock."""
        if self._hnsw is None:
            logger.info(f"Building HNSW index for {self.workspace_id} ({self._count} vectors)")
            index = faiss.IndexHNSWFlat(self.embedding_dimensions, HNSW_NEIGHBORS, faiss.METRIC_INNER_PRODUCT)
            index.add(np.ascontiguousarray(self._matrix[: self._count]))
            self._hnsw = index

        k = min(self._count, max(limit * 10, HNSW_MIN_CANDIDATES))
        self._hnsw.hnsw.efSearch = max(k, 64)
        _, indices = self._hnsw.search(np.ascontiguousarray(query.reshape(1, -1)), k)
        found = indices[0][indices[0] >= 0]
        # Sorting by position keeps insertion order for the stable tie-break
        return np.sort(found).astype(np.int64)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> None:
        """
        Save vectors (.npy) and records (.json) next to each other.

        Args:
            path: Base path; suffixes are replaced
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            matrix = self._matrix[: self._count].copy()
            records = list(self._records)

        np.save(path.with_suffix(".npy"), matrix)
        payload = {
            "workspace_id": self.workspace_id,
            "embedding_dimensions": self.embedding_dimensions,
            "records": [{"id": r.id, "text": r.text, "metadata": r.metadata} for r in records],
        }
        with path.with_suffix(".json").open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, default=str)

        logger.info(f"Saved {len(records)} vectors for {self.workspace_id} to {path}")

    def load(self, path: Union[str, Path]) -> None:
        """
        Replace this store's contents with a saved store.

        Raises:
            FileNotFoundError: If either file is missing
            DimensionMismatch: If the saved vectors have a different length
        """
        path = Path(path)
        vectors_file = path.with_suffix(".npy")
        records_file = path.with_suffix(".json")
        if not vectors_file.exists():
            raise FileNotFoundError(f"Vector file not found: {vectors_file}")
        if not records_file.exists():
            raise FileNotFoundError(f"Record file not found: {records_file}")

        matrix = np.load(vectors_file).astype(np.float32)
        with records_file.open(encoding="utf-8") as f:
            payload = json.load(f)

        if matrix.ndim != 2 or (len(matrix) and matrix.shape[1] != self.embedding_dimensions):
            actual = int(matrix.shape[-1]) if matrix.ndim else 0
            raise DimensionMismatch(self.embedding_dimensions, actual, str(path))
        records = [StoredDocument(id=r["id"], text=r["text"], metadata=r["metadata"]) for r in payload["records"]]
        if len(records) != len(matrix):
            raise ValueError(f"{path}: {len(records)} records but {len(matrix)} vectors")

        with self._lock:
            self._reset()
            if len(matrix):
                self._matrix = np.ascontiguousarray(matrix)
            self._records = records
            self._positions = {record.id: i for i, record in enumerate(records)}
            self._count = len(records)

    @classmethod
    def from_disk(cls, path: Union[str, Path], hnsw_threshold: int = 5000) -> "VectorStore":
        """Create a store from saved files, reading its dimensionality from the records file."""
        path = Path(path)
        records_file = path.with_suffix(".json")
        if not records_file.exists():
            raise FileNotFoundError(f"Record file not found: {records_file}")
        with records_file.open(encoding="utf-8") as f:
            header = json.load(f)
        store = cls(
            embedding_dimensions=header["embedding_dimensions"],
            workspace_id=header.get("workspace_id", path.stem),
            hnsw_threshold=hnsw_threshold,
        )
        store.load(path)
        return store


class VectorStoreRegistry:
    """One VectorStore per workspace id, created on first use."""

    def __init__(self, embedding_dimensions: int, hnsw_threshold: int = 5000) -> None:
        self.embedding_dimensions = embedding_dimensions
        self.hnsw_threshold = hnsw_threshold
        self._stores: dict[str, VectorStore] = {}
        self._lock = threading.Lock()

    def get_or_create(self, workspace_id: str) -> VectorStore:
        with self._lock:
            store = self._stores.get(workspace_id)
            if store is None:
                store = VectorStore(
                    embedding_dimensions=self.embedding_dimensions,
                    workspace_id=workspace_id,
                    hnsw_threshold=self.hnsw_threshold,
                )
                self._stores[workspace_id] = store
                logger.debug(f"Created vector store for workspace {workspace_id}")
            return store

    def get(self, workspace_id: str) -> Optional[VectorStore]:
        with self._lock:
            return self._stores.get(workspace_id)

    def register(self, workspace_id: str, store: VectorStore) -> None:
        """Install an existing store (e.g. one loaded from disk) for a workspace."""
        with self._lock:
            self._stores[workspace_id] = store

    def drop(self, workspace_id: str) -> bool:
        """Forget a workspace's store. Returns False if it did not exist."""
        with self._lock:
            return self._stores.pop(workspace_id, None) is not None

    @property
    def workspace_ids(self) -> list[str]:
        with self._lock:
            return list(self._stores)
