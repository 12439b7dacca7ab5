"""Background ingestion tasks executed by Redis workers."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from redis import Redis
from rq import Queue

from docingest.config import settings
from docingest.errors import IngestionError
from docingest.models import Document
from docingest.pipeline import get_pipeline

logger = logging.getLogger(__name__)

_queue: Optional[Queue] = None


def get_ingest_queue() -> Queue:
    global _queue
    if _queue is None:
        redis_conn = Redis.from_url(settings.redis_url)
        _queue = Queue(settings.redis_queue_ingest, connection=redis_conn)
    return _queue


def enqueue_document(document: Document, queue: Optional[Queue] = None) -> str:
    """Queue a document for ingestion by a worker and return the job id."""
    queue = queue or get_ingest_queue()
    job = queue.enqueue(
        process_document_task,
        document.to_payload(),
        job_timeout=settings.job_timeout,
        description=f"ingest {document.filename}",
    )
    logger.info("Enqueued document %s as job %s on %s", document.id, job.id, queue.name)
    return job.id


def process_document_task(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run one queued document through the ingestion pipeline."""

    document = Document.from_payload(payload)
    try:
        chunk_ids = get_pipeline().process_document(document).result()
    except IngestionError as exc:
        logger.error("Ingestion failed for %s at %s stage: %s", document.id, exc.stage, exc)
        raise

    return {
        "status": "succeeded",
        "document_id": str(document.id),
        "chunk_ids": [str(chunk_id) for chunk_id in chunk_ids],
    }
