"""API routes for the web application."""

from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException

from ..config import load_config
from ..errors import GitError, IncompleteAnnotation, RangeDeclined, TransportFailure
from ..models import ResolvedAnnotation
from ..session import Session, open_session
from .schemas import (
    AddressSchema,
    AnnotationSchema,
    AnnotationsResponse,
    CreateAnnotationRequest,
    CreateAnnotationResponse,
    DeleteAnnotationResponse,
    ToggleRequest,
    ToggleResponse,
)

router = APIRouter(prefix="/api")


@lru_cache(maxsize=1)
def get_session() -> Session:
    return open_session(load_config())


def _to_schema(resolved: ResolvedAnnotation) -> AnnotationSchema:
    annotation = resolved.annotation
    return AnnotationSchema(
        id=annotation.id,
        text=annotation.text,
        emoticon=annotation.emoticon,
        code_snippet=annotation.code_snippet,
        start_line=resolved.start_line,
        end_line=resolved.end_line,
        error=resolved.error,
        addresses=[
            AddressSchema(
                sequence=a.sequence,
                revision=a.revision,
                file_checksum=a.file_checksum,
                start_line_number=a.start_line_number,
                end_line_number=a.end_line_number,
            )
            for a in annotation.ordered_addresses()
        ],
    )


def _raise_for(exc: Exception):
    """Translate smilebin errors into HTTP errors."""
    if isinstance(exc, RangeDeclined):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, IncompleteAnnotation):
        # The caller needs the id to delete what was half written
        raise HTTPException(
            status_code=502,
            detail={"message": str(exc), "annotation_id": exc.annotation_id},
        )
    if isinstance(exc, TransportFailure):
        raise HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (GitError, OSError)):
        raise HTTPException(status_code=500, detail=str(exc))
    raise exc


@router.get("/annotations", response_model=AnnotationsResponse)
async def list_annotations(path: str, session: Session = Depends(get_session)):
    """Get the annotations for a file, positioned against the working tree."""
    skipped = session.cooldown.active()
    result = await session.resolver.fetch_annotations(path, skip=skipped)
    return AnnotationsResponse(
        path=result.path,
        annotations=[_to_schema(a) for a in result.annotations],
        skipped=skipped,
        error=result.error,
    )


@router.post("/annotations", response_model=CreateAnnotationResponse, status_code=201)
async def create_annotation(
    request: CreateAnnotationRequest, session: Session = Depends(get_session)
):
    """Anchor a new annotation to a committed line range."""
    try:
        annotation_id = await session.resolver.create_annotation(
            request.path, request.text, request.emoticon, request.start_line, request.end_line
        )
    except Exception as exc:
        _raise_for(exc)
    return CreateAnnotationResponse(id=annotation_id)


@router.delete("/annotations/{annotation_id}", response_model=DeleteAnnotationResponse)
async def delete_annotation(annotation_id: str, session: Session = Depends(get_session)):
    """Delete an annotation; deleting a missing one is not an error."""
    try:
        deleted = await session.resolver.delete_annotation(annotation_id)
    except TransportFailure as exc:
        _raise_for(exc)
    return DeleteAnnotationResponse(id=annotation_id, deleted=deleted)


@router.post("/annotations/toggle", response_model=ToggleResponse)
async def toggle_annotation(request: ToggleRequest, session: Session = Depends(get_session)):
    """Remove the smiles on a line, or add one if there are none."""
    try:
        outcome = await session.resolver.toggle_smile(
            request.path, request.line, emoticon=request.emoticon, text=request.text
        )
    except Exception as exc:
        _raise_for(exc)
    return ToggleResponse(action=outcome.action, annotation_ids=outcome.annotation_ids)
