# API routes

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from dualstore.catalog.store import CatalogStore
from dualstore.common.errors import (
    AnalysisError,
    DatasetNotFoundError,
    DualStoreError,
    InputError,
    QueryValidationError,
)
from dualstore.config.settings import get_settings
from dualstore.ingest.orchestrator import JsonOrchestrator, StagedFile
from dualstore.retrieval.engine import RetrievalEngine, RetrievalRequest
from dualstore.retrieval.filters import parse_query_value
from dualstore.api.dependencies import get_catalog_store, get_orchestrator, get_retrieval_engine

logger = logging.getLogger(__name__)

router = APIRouter()

BACKEND_STORAGE = {"sql": "postgres", "nosql": "mongodb"}

# Query-string keys of GET /datasets/{id}/data that are not filters
DATA_CONTROL_KEYS = {"page", "limit", "orderBy", "sort", "fields"}


class StagedIngestRequest(BaseModel):
    filePath: str
    originalFilename: Optional[str] = None
    size: int = 0
    mimeType: Optional[str] = None
    datasetName: Optional[str] = None


class ProfileRequest(BaseModel):
    filePath: str


class DatasetUpdateRequest(BaseModel):
    tags: Optional[List[str]] = None
    description: Optional[str] = None


def to_http_exception(error: DualStoreError) -> HTTPException:
    """Map a core error to an HTTP error response."""
    if isinstance(error, DatasetNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (InputError, QueryValidationError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, AnalysisError):
        code = 422
    else:
        logger.error(f"{type(error).__name__} during {error.operation}: {error.message}")
        code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(
        status_code=code,
        detail={
            "success": False,
            "error": type(error).__name__,
            "message": error.message,
        },
    )


def internal_error(operation: str, error: Exception) -> HTTPException:
    logger.exception(f"Unexpected error during {operation}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"success": False, "error": "InternalError", "message": f"{operation} failed: {error}"},
    )


@router.post("/ingest/staged", status_code=status.HTTP_201_CREATED)
def ingest_staged(
    body: StagedIngestRequest,
    orchestrator: JsonOrchestrator = Depends(get_orchestrator),
):
    """
    Ingest a file that the upload layer has already staged.

    - **filePath**: Path of the staged file
    - **originalFilename**: Name the file was uploaded under
    - **size**: File size in bytes
    - **datasetName**: Optional dataset name (derived from the file name otherwise)
    """
    staged = StagedFile(
        file_path=body.filePath,
        original_filename=body.originalFilename,
        size=body.size,
        mime_type=body.mimeType,
    )
    try:
        result = orchestrator.process_staging_file(staged, dataset_name=body.datasetName)
    except DualStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("ingest", e)

    return {"success": True, **result.to_dict()}


@router.post("/profile")
def profile_file(
    body: ProfileRequest,
    orchestrator: JsonOrchestrator = Depends(get_orchestrator),
):
    """Profile a staged file without ingesting it."""
    try:
        profile = orchestrator.get_profile(body.filePath)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, "profile": profile}


@router.get("/datasets")
def list_datasets(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    backend: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sortBy: str = Query("createdAt"),
    sortOrder: str = Query("desc"),
    catalog: CatalogStore = Depends(get_catalog_store),
):
    """List datasets with pagination, filtering by backend (sql/nosql) and category."""
    if backend is not None and backend not in BACKEND_STORAGE:
        raise HTTPException(
            status_code=400,
            detail={"success": False, "error": "QueryValidationError",
                    "message": "backend must be 'sql' or 'nosql'"},
        )

    filters = {
        "storage": BACKEND_STORAGE.get(backend) if backend else None,
        "category": category,
    }
    try:
        result = catalog.list(
            filters=filters,
            page=page,
            limit=limit or get_settings().catalog_default_limit,
            sort_by=sortBy,
            sort_order=sortOrder,
        )
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, **result.to_dict()}


@router.get("/datasets/search/{keyword}")
def search_datasets(keyword: str, catalog: CatalogStore = Depends(get_catalog_store)):
    """Search datasets by name, description or tag."""
    try:
        entries = catalog.search(keyword)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "datasets": [entry.to_dict() for entry in entries],
        "count": len(entries),
    }


@router.get("/datasets/{dataset_id}")
def get_dataset(dataset_id: str, catalog: CatalogStore = Depends(get_catalog_store)):
    try:
        entry = catalog.get(dataset_id)
    except DualStoreError as e:
        raise to_http_exception(e)

    if entry is None:
        raise HTTPException(
            status_code=404,
            detail={"success": False, "error": "DatasetNotFoundError",
                    "message": f"Dataset not found: {dataset_id}"},
        )
    return {"success": True, "dataset": entry.to_dict()}


@router.patch("/datasets/{dataset_id}")
def update_dataset(
    dataset_id: str,
    body: DatasetUpdateRequest,
    catalog: CatalogStore = Depends(get_catalog_store),
):
    """Update a dataset's tags and/or description."""
    try:
        entry = catalog.update(dataset_id, tags=body.tags, description=body.description)
    except DualStoreError as e:
        raise to_http_exception(e)

    if entry is None:
        raise HTTPException(
            status_code=404,
            detail={"success": False, "error": "DatasetNotFoundError",
                    "message": f"Dataset not found: {dataset_id}"},
        )
    return {"success": True, "dataset": entry.to_dict()}


@router.delete("/datasets/{dataset_id}")
def delete_dataset(
    dataset_id: str,
    orchestrator: JsonOrchestrator = Depends(get_orchestrator),
):
    """Delete a dataset's records and its catalog entry."""
    try:
        orchestrator.delete_dataset(dataset_id)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, "message": f"Dataset {dataset_id} deleted"}


@router.get("/datasets/{dataset_id}/data")
def get_dataset_data(
    dataset_id: str,
    request: Request,
    engine: RetrievalEngine = Depends(get_retrieval_engine),
):
    """
    Page through a dataset's records.

    Query string: page, limit, orderBy, sort (JSON), fields (comma separated);
    any other key is an equality filter.
    """
    params = request.query_params
    where = {
        key: parse_query_value(value)
        for key, value in params.items()
        if key not in DATA_CONTROL_KEYS
    }

    try:
        result = engine.retrieve_dataset(
            dataset_id,
            page=params.get("page", 1),
            limit=params.get("limit"),
            where=where,
            order_by=params.get("orderBy"),
            sort=parse_query_value(params["sort"]) if "sort" in params else None,
            fields=params.get("fields"),
        )
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, **result}


@router.post("/datasets/{dataset_id}/query")
def query_dataset(
    dataset_id: str,
    query: Optional[Dict[str, Any]] = Body(None),
    engine: RetrievalEngine = Depends(get_retrieval_engine),
):
    """Run a query document ({where, orderBy, sort, page, limit, fields}) against a dataset."""
    try:
        result = engine.query_dataset(dataset_id, query)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, **result}


@router.get("/datasets/{dataset_id}/stats")
def dataset_stats(dataset_id: str, engine: RetrievalEngine = Depends(get_retrieval_engine)):
    try:
        stats = engine.get_dataset_stats(dataset_id)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, "stats": stats}


@router.post("/retrieve")
def retrieve(
    body: Dict[str, Any] = Body(...),
    engine: RetrievalEngine = Depends(get_retrieval_engine),
):
    """
    Retrieve records from a dataset entity.

    Body: {dataset, entity, filter, fields, include, limit, offset, orderBy, sort}
    """
    request = RetrievalRequest.from_dict(body, default_limit=get_settings().retrieval_default_limit)
    try:
        records = engine.retrieve(request)
    except DualStoreError as e:
        raise to_http_exception(e)

    return {"success": True, "data": records, "count": len(records)}
