"""Qdrant-backed content store: one point per fingerprint, dense (OpenAI embedding) + sparse (keyword) vectors for hybrid knowledge search."""
import logging
import uuid
from typing import List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    Distance,
    Fusion,
    FusionQuery,
    PointIdsList,
    PointStruct,
    Prefetch,
    SparseVector,
    SparseVectorParams,
    VectorParams,
)

from app.core.config import Settings
from app.core.errors import DuplicateFingerprintError
from app.core.openai_client import get_openai_client
from app.storage.content_store import ContentRecord, ContentStore
from app.utils.retry import with_retry
from app.utils.sparse_encoding import text_to_sparse_indices_values

logger = logging.getLogger(__name__)

NAMESPACE = uuid.UUID("6f1c2b9e-0d4a-4c51-9a57-3e2f8b7d1c40")
DENSE_VECTOR_NAME = "dense"
SPARSE_VECTOR_NAME = "sparse"
MAX_EMBED_CHARS = 8000
SCROLL_PAGE = 256


def stable_point_id(fingerprint: str) -> str:
    """Return a deterministic UUID string for a fingerprint (Qdrant point id).
    Why available: get/delete address the point directly; the same filename always maps to the same point."""
    return str(uuid.uuid5(NAMESPACE, fingerprint))


async def embed_texts(texts: List[str], model: str) -> List[List[float]]:
    """Embed texts into dense vectors with the configured embedding model (with retry)."""
    oc = get_openai_client()
    resp = await with_retry(lambda: oc.embeddings.create(model=model, input=texts))
    return [d.embedding for d in resp.data]


class QdrantContentStore(ContentStore):
    """Persists ContentRecords as Qdrant point payloads.
    Why available: Production store; gives the knowledge search endpoint semantic + keyword retrieval over processed screenshots."""

    def __init__(self, client: AsyncQdrantClient, collection: str, embedding_model: str):
        self.client = client
        self.collection = collection
        self.embedding_model = embedding_model
        self._ensured = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "QdrantContentStore":
        return cls(
            client=AsyncQdrantClient(url=settings.qdrant_url),
            collection=settings.qdrant_collection,
            embedding_model=settings.embedding_model,
        )

    async def _ensure_collection(self, vector_size: int) -> None:
        """Create the collection (dense + sparse vectors) if it does not exist."""
        if self._ensured:
            return
        if not await self.client.collection_exists(self.collection):
            await self.client.create_collection(
                collection_name=self.collection,
                vectors_config={
                    DENSE_VECTOR_NAME: VectorParams(size=vector_size, distance=Distance.COSINE),
                },
                sparse_vectors_config={
                    SPARSE_VECTOR_NAME: SparseVectorParams(),
                },
            )
        self._ensured = True

    async def _exists(self) -> bool:
        return self._ensured or await self.client.collection_exists(self.collection)

    async def get(self, fingerprint: str) -> Optional[ContentRecord]:
        if not await self._exists():
            return None
        points = await self.client.retrieve(
            collection_name=self.collection,
            ids=[stable_point_id(fingerprint)],
            with_payload=True,
            with_vectors=False,
        )
        if not points:
            return None
        return ContentRecord.from_payload(points[0].payload or {})

    async def delete(self, fingerprint: str) -> None:
        if not await self._exists():
            return
        await self.client.delete(
            collection_name=self.collection,
            points_selector=PointIdsList(points=[stable_point_id(fingerprint)]),
            wait=True,
        )

    async def insert(self, fingerprint: str, record: ContentRecord) -> None:
        if await self.get(fingerprint) is not None:
            raise DuplicateFingerprintError(fingerprint)
        record.fingerprint = fingerprint
        text = record.searchable_text()
        vectors = await embed_texts([text[:MAX_EMBED_CHARS] or record.title or fingerprint], self.embedding_model)
        await self._ensure_collection(len(vectors[0]))

        idx_sparse, val_sparse = text_to_sparse_indices_values(text, mode="doc")
        point = PointStruct(
            id=stable_point_id(fingerprint),
            vector={
                DENSE_VECTOR_NAME: vectors[0],
                SPARSE_VECTOR_NAME: SparseVector(indices=idx_sparse, values=val_sparse),
            },
            payload=record.to_payload(),
        )
        await self.client.upsert(collection_name=self.collection, points=[point], wait=True)
        logger.info("content_record_stored", extra={"fingerprint": fingerprint, "content_type": record.content_type})

    async def list_records(self) -> List[ContentRecord]:
        if not await self._exists():
            return []
        out: List[ContentRecord] = []
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection,
                limit=SCROLL_PAGE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            out.extend(ContentRecord.from_payload(p.payload or {}) for p in points)
            if offset is None:
                break
        return out

    async def search(self, query: str, limit: int = 50) -> List[ContentRecord]:
        """Hybrid search: dense and sparse prefetch fused with RRF."""
        query = (query or "").strip()
        if not query or not await self._exists():
            return []
        qvec = (await embed_texts([query], self.embedding_model))[0]
        idx_sparse, val_sparse = text_to_sparse_indices_values(query, mode="query")
        prefetch_limit = max(limit * 2, 20)
        prefetch = [Prefetch(query=qvec, using=DENSE_VECTOR_NAME, limit=prefetch_limit)]
        if idx_sparse:
            prefetch.append(
                Prefetch(
                    query=SparseVector(indices=idx_sparse, values=val_sparse),
                    using=SPARSE_VECTOR_NAME,
                    limit=prefetch_limit,
                )
            )
        res = await self.client.query_points(
            collection_name=self.collection,
            prefetch=prefetch,
            query=FusionQuery(fusion=Fusion.RRF),
            limit=limit,
            with_payload=True,
        )
        return [ContentRecord.from_payload(p.payload or {}) for p in res.points or []]
