"""IDEMFLOW — Ingestion Routes."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.errors import IngestionError, NormalizationError
from app.core.logging import get_logger
from app.ingestion.pipeline import IngestionPipeline, IngestOutcome
from app.models.event_models import IngestRequest
from app.storage.dependencies import get_pipeline

logger = get_logger("api.ingest")

router = APIRouter(tags=["Ingestion"])


@router.post("/ingest")
async def ingest_event(
    request: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Accept one producer event.

    Identical payloads are stored once. Retries after a 500 are safe:
    resend the same payload and it will be persisted exactly once.
    """
    try:
        result = pipeline.ingest(request.event, simulate_failure=request.simulate_failure)
    except NormalizationError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.public_message, "reason": e.reason},
        )
    except IngestionError as e:
        logger.error(
            f"Ingestion aborted: {e.public_message}",
            extra={"status_code": e.status_code},
        )
        return JSONResponse(status_code=e.status_code, content={"error": e.public_message})

    if result.outcome is IngestOutcome.CREATED:
        return JSONResponse(status_code=201, content={"status": "success", "id": result.id})

    return JSONResponse(
        status_code=200,
        content={
            "status": "success",
            "message": result.message,
            "deduplicated": True,
        },
    )
