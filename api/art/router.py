"""
Art API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from core.kv import StoreUnavailable

from . import schemas, service

router = APIRouter()


def _store_error(exc: StoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": "Storage is unavailable.", "error": str(exc)},
    )


@router.post("/api/art", status_code=status.HTTP_201_CREATED)
async def create_art(request: schemas.CreateArtRequest) -> dict:
    try:
        result = await service.create_record(
            name=request.name,
            author=request.author,
            mapping=request.mapping,
            size=request.size,
        )
    except service.ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc)},
        ) from exc
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc
    return schemas.CreateArtResponse(id=result["id"]).model_dump()


@router.get("/api/art")
async def list_art(
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    size: int | None = Query(default=None),
) -> dict:
    """
    List art newest first. Feed `next_cursor` back as `cursor` for the next page.
    """
    try:
        result = await service.list_records(limit=limit, cursor=cursor, size=size)
    except service.ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc)},
        ) from exc
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc

    page = schemas.ArtPage(data=result["items"], next_cursor=result["next_cursor"])
    return page.model_dump(by_alias=True)


@router.get("/api/art/{art_id}")
async def get_art(art_id: str) -> dict:
    try:
        record = await service.get_record(art_id)
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Art not found.")
    return record.model_dump(by_alias=True)


@router.delete("/api/art/{art_id}")
async def delete_art(art_id: str) -> dict:
    try:
        result = await service.delete_record(art_id)
    except StoreUnavailable as exc:
        raise _store_error(exc) from exc
    if not result["deleted"]:
        raise HTTPException(status_code=404, detail="Art not found.")
    return result
