"""
FastAPI server for DuckBake.

Exposes table/document vectorization, similarity search and a WebSocket
endpoint streaming vectorization progress events.
"""

import asyncio
from dataclasses import asdict
from typing import Any

from fastapi import BackgroundTasks, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from .errors import (
    DocumentNotFoundError,
    DuckBakeError,
    EmbeddingResponseError,
    EmbeddingServiceUnavailableError,
    EmbeddingTimeoutError,
    TableNotFoundError,
)
from .indexing import VectorizationJob, VectorizationProgress
from .search import SearchHit
from .service import DuckBakeService

app = FastAPI(title="DuckBake", description="Local semantic search over DuckDB projects")

_service: DuckBakeService | None = None


def get_service() -> DuckBakeService:
    """Return the process-wide service, creating it on first use."""
    global _service
    if _service is None:
        _service = DuckBakeService()
    return _service


def set_service(service: DuckBakeService | None) -> None:
    global _service
    _service = service


class VectorizeTableRequest(BaseModel):
    """Request model for table vectorization."""

    columns: list[str]


class TableSearchRequest(BaseModel):
    """Request model for table similarity search."""

    query: str
    limit: int | None = None
    columns: list[str] | None = None


class DocumentSearchRequest(BaseModel):
    """Request model for document similarity search."""

    query: str
    limit: int | None = None
    document_id: str | None = None


class AddDocumentRequest(BaseModel):
    """Request model for storing decoded document text."""

    filename: str
    content: str
    file_type: str | None = None
    file_size: int | None = None
    title: str | None = None
    author: str | None = None
    page_count: int | None = None


def _error_response(exc: Exception) -> JSONResponse:
    if isinstance(exc, EmbeddingServiceUnavailableError):
        status_code = 503
    elif isinstance(exc, EmbeddingTimeoutError):
        status_code = 504
    elif isinstance(exc, EmbeddingResponseError):
        status_code = 502
    elif isinstance(exc, (TableNotFoundError, DocumentNotFoundError)):
        status_code = 404
    elif isinstance(exc, ValueError):
        status_code = 400
    else:
        status_code = 500
    return JSONResponse({"error": str(exc)}, status_code=status_code)


def _job_payload(job: VectorizationJob) -> dict[str, Any]:
    return VectorizationProgress(
        source_id=job.source_id,
        source_name=job.source_name,
        total_units=job.total_units,
        processed_units=job.processed,
        status=job.status,
        error=job.error,
    ).to_payload()


def _hit_payload(hit: SearchHit) -> dict[str, Any]:
    return asdict(hit)


def _run_job(label: str, func: Any, *args: Any) -> None:
    """Run a vectorization job after the response has been sent.

    Failures are already published on the progress channel; they are only
    logged here.
    """
    try:
        func(*args)
    except DuckBakeError as exc:
        logger.warning(f"Background vectorization of {label} failed: {exc}")
    except Exception:
        logger.exception(f"Background vectorization of {label} crashed")


@app.get("/api/ollama/status")
async def ollama_status():
    """Report whether the embedding service is reachable."""
    service = get_service()
    return await asyncio.to_thread(service.embedding_service_status)


@app.get("/api/ollama/models")
async def ollama_models():
    try:
        models = await asyncio.to_thread(get_service().list_models)
        return {"models": models}
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/tables")
async def list_tables(project_id: str):
    try:
        tables = await asyncio.to_thread(get_service().list_tables, project_id)
        return {"tables": tables}
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/tables/{table_name}/text-columns")
async def text_columns(project_id: str, table_name: str):
    try:
        columns = await asyncio.to_thread(
            get_service().get_text_columns, project_id, table_name
        )
        return {"table": table_name, "columns": columns}
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/projects/{project_id}/tables/{table_name}/vectorize", status_code=202)
async def vectorize_table(
    project_id: str,
    table_name: str,
    request: VectorizeTableRequest,
    background_tasks: BackgroundTasks,
):
    """Start vectorizing table columns; progress streams on /ws/progress."""
    try:
        if not request.columns:
            raise ValueError("At least one column is required to vectorize a table.")
        service = get_service()
        await asyncio.to_thread(
            service.validate_table_source, project_id, table_name, list(request.columns)
        )
        background_tasks.add_task(
            _run_job,
            table_name,
            service.vectorize_table,
            project_id,
            table_name,
            list(request.columns),
        )
        return {"sourceId": table_name, "status": "pending"}
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/tables/{table_name}/status")
async def table_status(project_id: str, table_name: str):
    try:
        status = await asyncio.to_thread(
            get_service().table_status, project_id, table_name
        )
        return asdict(status)
    except Exception as exc:
        return _error_response(exc)


@app.delete("/api/projects/{project_id}/tables/{table_name}/embeddings")
async def remove_table_embeddings(project_id: str, table_name: str):
    try:
        await asyncio.to_thread(
            get_service().remove_table_embeddings, project_id, table_name
        )
        return {"removed": True}
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/projects/{project_id}/tables/{table_name}/search")
async def search_table(project_id: str, table_name: str, request: TableSearchRequest):
    try:
        hits = await asyncio.to_thread(
            get_service().search_table,
            project_id,
            table_name,
            request.query,
            request.limit,
            request.columns,
        )
        return {"query": request.query, "hits": [_hit_payload(h) for h in hits]}
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/projects/{project_id}/documents")
async def add_document(project_id: str, request: AddDocumentRequest):
    try:
        document = await asyncio.to_thread(
            lambda: get_service().add_document(project_id, **request.model_dump())
        )
        payload = asdict(document)
        payload.pop("content", None)
        return payload
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/documents")
async def list_documents(project_id: str):
    try:
        documents = await asyncio.to_thread(get_service().list_documents, project_id)
        return {"documents": documents}
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/projects/{project_id}/documents/search")
async def search_documents(project_id: str, request: DocumentSearchRequest):
    try:
        hits = await asyncio.to_thread(
            get_service().search_documents,
            project_id,
            request.query,
            request.limit,
            request.document_id,
        )
        return {"query": request.query, "hits": [_hit_payload(h) for h in hits]}
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/documents/{document_id}")
async def get_document(project_id: str, document_id: str):
    try:
        document = await asyncio.to_thread(
            get_service().get_document, project_id, document_id
        )
        return asdict(document)
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/documents/{document_id}/chunks")
async def get_document_chunks(project_id: str, document_id: str, limit: int | None = None):
    try:
        chunks = await asyncio.to_thread(
            get_service().get_document_chunks, project_id, document_id, limit
        )
        return {"chunks": [asdict(chunk) for chunk in chunks]}
    except Exception as exc:
        return _error_response(exc)


@app.delete("/api/projects/{project_id}/documents/{document_id}")
async def delete_document(project_id: str, document_id: str):
    try:
        await asyncio.to_thread(get_service().delete_document, project_id, document_id)
        return {"deleted": True}
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/projects/{project_id}/documents/{document_id}/vectorize", status_code=202)
async def vectorize_document(
    project_id: str, document_id: str, background_tasks: BackgroundTasks
):
    """Start vectorizing a document; progress streams on /ws/progress."""
    try:
        service = get_service()
        await asyncio.to_thread(service.get_document, project_id, document_id)
        background_tasks.add_task(
            _run_job, document_id, service.vectorize_document, project_id, document_id
        )
        return {"sourceId": document_id, "status": "pending"}
    except Exception as exc:
        return _error_response(exc)


@app.get("/api/projects/{project_id}/documents/{document_id}/status")
async def document_status(project_id: str, document_id: str):
    try:
        status = await asyncio.to_thread(
            get_service().document_status, project_id, document_id
        )
        return asdict(status)
    except Exception as exc:
        return _error_response(exc)


@app.post("/api/vectorize/{source_id}/cancel")
async def cancel_vectorization(source_id: str):
    get_service().cancel(source_id)
    return {"sourceId": source_id, "cancelRequested": True}


@app.post("/api/projects/{project_id}/close")
async def close_project(project_id: str):
    await asyncio.to_thread(get_service().close_project, project_id)
    return {"closed": True}


@app.delete("/api/projects/{project_id}")
async def delete_project_database(project_id: str):
    try:
        await asyncio.to_thread(get_service().delete_project_database, project_id)
        return {"deleted": True}
    except Exception as exc:
        return _error_response(exc)


@app.websocket("/ws/progress")
async def websocket_progress(websocket: WebSocket):
    """
    WebSocket endpoint streaming vectorization progress.

    Protocol:
    1. Server pushes every progress event as camelCase JSON.
    2. Client may send {"type": "cancel", "sourceId": "..."} to stop a job.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    service = get_service()

    def _listener(event: VectorizationProgress) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event.to_payload())

    unsubscribe = service.broadcaster.subscribe(_listener)
    await websocket.accept()

    async def _send_events() -> None:
        while True:
            payload = await queue.get()
            await websocket.send_json(payload)

    async def _receive_commands() -> None:
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "cancel" and isinstance(data.get("sourceId"), str):
                service.cancel(data["sourceId"])

    sender = asyncio.create_task(_send_events())
    receiver = asyncio.create_task(_receive_commands())
    try:
        done, pending = await asyncio.wait(
            {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Progress WebSocket closed with error: {exc}")
    finally:
        unsubscribe()


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    try:
        uvicorn.run(app, host=host, port=port)
    finally:
        if _service is not None:
            _service.close()


if __name__ == "__main__":
    run_server()
