# supportdesk/services/vector_store.py
"""
Vector Store - Qdrant-backed embedding families

Two families share one implementation:
- answers: knowledge-base content, upserted in place by (source, chunk_index)
- questions: one record per ticket question, append-only

Point ids for answers are derived from the source, so concurrent
re-ingestion of the same URL converges on the same points instead of
racing into duplicates.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointIdsList,
    PointStruct,
    Range,
    VectorParams,
)

from supportdesk.core.logger import get_logger
from supportdesk.utils.datetime_utils import parse_iso_datetime, to_iso_string, utc_now
from supportdesk.utils.exceptions import DimensionMismatch, InvalidInput

logger = get_logger(__name__)

# Namespace for deterministic answer point ids
SOURCE_NAMESPACE = uuid.UUID("6f1c2a4e-8d3b-5e7f-9a10-2b4c6d8e0f12")


@dataclass(frozen=True)
class EmbeddingFamily:
    """A logical set of embeddings with its own identity space"""
    name: str
    collection: str
    upsert_by_source: bool
    owner_required: bool


@dataclass
class EmbeddingRecord:
    id: str
    owner_id: Optional[str]
    content: str
    source: Optional[str]
    chunk_index: int
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "content": self.content,
            "source": self.source,
            "chunk_index": self.chunk_index,
            "metadata": self.metadata,
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
        }


@dataclass
class SearchResult:
    record: EmbeddingRecord
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        data = self.record.to_dict()
        data["similarity"] = round(self.similarity, 6)
        return data


def answer_point_id(source: str, chunk_index: int = 0) -> str:
    """Deterministic point id for one chunk of a source"""
    return str(uuid.uuid5(SOURCE_NAMESPACE, f"{source}#{chunk_index}"))


def _record_from_point(point) -> EmbeddingRecord:
    payload = point.payload or {}
    created_at = parse_iso_datetime(payload.get("created_at")) or utc_now()
    updated_at = parse_iso_datetime(payload.get("updated_at")) or created_at
    return EmbeddingRecord(
        id=str(point.id),
        owner_id=payload.get("owner_id"),
        content=payload.get("content", ""),
        source=payload.get("source"),
        chunk_index=int(payload.get("chunk_index", 0)),
        metadata=payload.get("metadata") or {},
        created_at=created_at,
        updated_at=updated_at,
    )


class VectorStore:
    """Stores and searches embedding records for each family"""

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedder,
        dimension: int,
        answer_collection: str = "answer_embeddings",
        question_collection: str = "question_embeddings",
    ):
        """
        Args:
            client: Qdrant async client
            embedder: Object exposing `async embed(text) -> list[float]`
            dimension: Vector dimension D for this deployment
            answer_collection: Collection backing the answer family
            question_collection: Collection backing the question family
        """
        self.client = client
        self.embedder = embedder
        self.dimension = dimension
        self.answers = EmbeddingFamily(
            name="answers",
            collection=answer_collection,
            upsert_by_source=True,
            owner_required=False,
        )
        self.questions = EmbeddingFamily(
            name="questions",
            collection=question_collection,
            upsert_by_source=False,
            owner_required=True,
        )

    @property
    def families(self) -> List[EmbeddingFamily]:
        return [self.answers, self.questions]

    def family(self, name: str) -> EmbeddingFamily:
        for family in self.families:
            if family.name == name:
                return family
        raise InvalidInput(f"Unknown embedding family: {name}")

    # ==================== COLLECTIONS ====================

    async def ensure_collections(self) -> None:
        """Create missing collections and verify existing vector sizes"""
        for family in self.families:
            if await self.client.collection_exists(family.collection):
                info = await self.client.get_collection(family.collection)
                size = info.config.params.vectors.size
                if size != self.dimension:
                    raise DimensionMismatch(
                        self.dimension, size, where=f"collection '{family.collection}'"
                    )
                continue

            logger.info(f"Creating Qdrant collection '{family.collection}' (dim={self.dimension})")
            await self.client.create_collection(
                collection_name=family.collection,
                vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
            )

    # ==================== WRITES ====================

    async def embed(self, text: str) -> List[float]:
        """Embed text, checking the vector dimension"""
        vector = await self.embedder.embed(text)
        self._check_dimension(vector)
        return vector

    async def upsert_answer(
        self,
        owner_id: Optional[Union[str, UUID]],
        content: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        chunk_index: int = 0,
        vector: Optional[List[float]] = None,
    ) -> EmbeddingRecord:
        """
        Insert or replace the answer chunk identified by (source, chunk_index).

        An existing record keeps its id and created_at; content, vector,
        owner, metadata and updated_at are replaced.
        """
        if not source:
            raise InvalidInput("Answer embeddings require a source")

        if vector is None:
            vector = await self.embed(content)
        else:
            self._check_dimension(vector)

        point_id = answer_point_id(source, chunk_index)
        now = utc_now()
        created_at = now

        existing = await self.client.retrieve(
            collection_name=self.answers.collection,
            ids=[point_id],
            with_payload=True,
        )
        if existing:
            created_at = _record_from_point(existing[0]).created_at

        record = EmbeddingRecord(
            id=point_id,
            owner_id=str(owner_id) if owner_id else None,
            content=content,
            source=source,
            chunk_index=chunk_index,
            metadata=dict(metadata or {}),
            created_at=created_at,
            updated_at=now,
        )
        await self._write(self.answers, record, vector)
        return record

    async def insert_question(
        self,
        owner_id: Union[str, UUID],
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        vector: Optional[List[float]] = None,
    ) -> EmbeddingRecord:
        """Insert a question embedding; questions are never merged"""
        if not owner_id:
            raise InvalidInput("Question embeddings require an owning ticket")

        if vector is None:
            vector = await self.embed(content)
        else:
            self._check_dimension(vector)

        now = utc_now()
        record = EmbeddingRecord(
            id=str(uuid.uuid4()),
            owner_id=str(owner_id),
            content=content,
            source=None,
            chunk_index=0,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        await self._write(self.questions, record, vector)
        return record

    async def _write(self, family: EmbeddingFamily, record: EmbeddingRecord, vector: List[float]) -> None:
        payload = {
            "owner_id": record.owner_id,
            "content": record.content,
            "source": record.source,
            "chunk_index": record.chunk_index,
            "metadata": record.metadata,
            "created_at": to_iso_string(record.created_at),
            "updated_at": to_iso_string(record.updated_at),
        }
        await self.client.upsert(
            collection_name=family.collection,
            points=[PointStruct(id=record.id, vector=vector, payload=payload)],
            wait=True,
        )

    # ==================== SEARCH ====================

    async def search(
        self,
        family: EmbeddingFamily,
        query: str,
        limit: int,
        threshold: float,
        exclude_resolved: bool = False,
    ) -> List[SearchResult]:
        """
        Return up to `limit` records with similarity strictly above
        `threshold`, most similar first, newest first on equal similarity.

        Every point tied with the score at the cut is fetched before
        ordering, so which ties survive never depends on index order.
        With `exclude_resolved`, records flagged by `set_owner_resolved`
        are skipped.
        """
        if limit <= 0:
            return []

        vector = await self.embed(query)
        query_filter = None
        if exclude_resolved:
            query_filter = Filter(
                must_not=[FieldCondition(key="resolved", match=MatchValue(value=True))]
            )

        fetch = limit * 2
        while True:
            response = await self.client.query_points(
                collection_name=family.collection,
                query=vector,
                query_filter=query_filter,
                limit=fetch,
                score_threshold=threshold,
                with_payload=True,
            )
            points = response.points
            if len(points) < fetch or points[-1].score < points[limit - 1].score:
                break
            fetch *= 2

        results = [
            SearchResult(record=_record_from_point(point), similarity=float(point.score))
            for point in points
            if point.score > threshold
        ]
        results.sort(
            key=lambda r: (-r.similarity, -r.record.created_at.timestamp(), r.record.id)
        )
        return results[:limit]

    # ==================== DELETES / MAINTENANCE ====================

    async def prune_source(self, source: str, keep_chunks: int) -> None:
        """Delete chunks of `source` with chunk_index >= keep_chunks"""
        await self.client.delete(
            collection_name=self.answers.collection,
            points_selector=FilterSelector(
                filter=Filter(
                    must=[
                        FieldCondition(key="source", match=MatchValue(value=source)),
                        FieldCondition(key="chunk_index", range=Range(gte=keep_chunks)),
                    ]
                )
            ),
            wait=True,
        )

    async def set_owner_resolved(
        self,
        family: EmbeddingFamily,
        owner_id: Union[str, UUID],
        resolved: bool,
    ) -> None:
        """Flag every record of an owner so `exclude_resolved` searches skip it"""
        await self.client.set_payload(
            collection_name=family.collection,
            payload={"resolved": resolved},
            points=FilterSelector(
                filter=Filter(
                    must=[FieldCondition(key="owner_id", match=MatchValue(value=str(owner_id)))]
                )
            ),
            wait=True,
        )

    async def delete_by_owner(
        self,
        family: EmbeddingFamily,
        owner_ids: Iterable[Union[str, UUID]],
    ) -> None:
        ids = [str(owner_id) for owner_id in owner_ids]
        if not ids:
            return
        await self.client.delete(
            collection_name=family.collection,
            points_selector=FilterSelector(
                filter=Filter(must=[FieldCondition(key="owner_id", match=MatchAny(any=ids))])
            ),
            wait=True,
        )

    async def delete_records(self, family: EmbeddingFamily, record_ids: Iterable[str]) -> None:
        ids = list(record_ids)
        if not ids:
            return
        await self.client.delete(
            collection_name=family.collection,
            points_selector=PointIdsList(points=ids),
            wait=True,
        )

    async def count_by_owner(self, family: EmbeddingFamily, owner_id: Union[str, UUID]) -> int:
        result = await self.client.count(
            collection_name=family.collection,
            count_filter=Filter(
                must=[FieldCondition(key="owner_id", match=MatchValue(value=str(owner_id)))]
            ),
            exact=True,
        )
        return result.count

    async def list_by_source(self, source: str) -> List[EmbeddingRecord]:
        """All answer chunks for a source, ordered by chunk index"""
        points, _ = await self.client.scroll(
            collection_name=self.answers.collection,
            scroll_filter=Filter(
                must=[FieldCondition(key="source", match=MatchValue(value=source))]
            ),
            limit=10_000,
            with_payload=True,
        )
        records = [_record_from_point(point) for point in points]
        records.sort(key=lambda r: r.chunk_index)
        return records

    def _check_dimension(self, vector: List[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatch(self.dimension, len(vector))

    async def close(self) -> None:
        await self.client.close()
