# API routes

import logging
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from src.catalog.database import get_db
from src.catalog.queries import ProfileStore
from src.config.settings import get_settings
from src.ingest.converter import ConvertService
from src.ingest.errors import ConvertError, UnsupportedFormatError
from src.profiling.profile import Profile, ProfileInvalidError, load_profile, profile_path_for_dataset
from src.profiling.report import ONLY_FILTERS, build_report_rows, render_report

logger = logging.getLogger(__name__)

router = APIRouter()


class ConvertRequest(BaseModel):
    input: str
    output: Optional[str] = None
    limit: Optional[int] = None
    profile_only: bool = False
    dataset: Optional[str] = None
    tags: List[str] = []
    zip_path: Optional[str] = None
    root_key: Optional[str] = None
    apply_profile: Optional[str] = None


class ConvertResponse(BaseModel):
    input: str
    dataset: str
    jsonl_path: str
    profile_path: str
    record_count: int
    converted_count: Optional[int] = None
    unique_fields: List[str]
    tags: List[str]
    dropped: Dict[str, int]
    run_id: Optional[str] = None
    duration_ms: Optional[float] = None


class ProfileListItem(BaseModel):
    dataset: str
    record_count: int
    unique_fields: List[str]
    version: int


class ReportResponse(BaseModel):
    dataset: str
    rows: List[dict]
    text: str


@router.post("/convert", response_model=ConvertResponse, status_code=status.HTTP_201_CREATED)
def convert(request: ConvertRequest, db: Session = Depends(get_db)):
    """
    Convert a server-side file to JSON-lines and profile it.

    - **input**: CSV/TSV/JSON/JSONL file, record directory, or ZIP/GZ archive
    - **profile_only**: Only profile ``input`` (treated as JSONL)
    - **tags**: Extra tags recorded on the profile and every row

    The profile is stored in the catalog as the current version of its dataset.
    """
    if not Path(request.input).exists():
        raise HTTPException(status_code=404, detail=f"Input not found: {request.input}")

    service = ConvertService(settings=get_settings(), db=db)
    try:
        result = service.convert(
            request.input,
            output=request.output,
            limit=request.limit,
            profile_only=request.profile_only,
            dataset=request.dataset,
            tags=request.tags,
            zip_path=request.zip_path,
            root_key=request.root_key,
            apply_profile=request.apply_profile,
        )
        db.commit()
    except UnsupportedFormatError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    except ConvertError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return ConvertResponse(
        input=result.input,
        dataset=result.dataset,
        jsonl_path=result.jsonl_path,
        profile_path=result.profile_path,
        record_count=result.record_count,
        converted_count=result.converted_count,
        unique_fields=result.unique_fields,
        tags=result.tags,
        dropped=result.dropped,
        run_id=result.run_id,
        duration_ms=result.duration_ms,
    )


@router.get("/profiles", response_model=List[ProfileListItem])
def list_profiles(db: Session = Depends(get_db)):
    """List datasets whose profiles are stored in the catalog."""
    return [
        ProfileListItem(
            dataset=s.dataset,
            record_count=s.record_count,
            unique_fields=s.unique_fields,
            version=s.version,
        )
        for s in ProfileStore(db).list_profiles()
    ]


def _find_profile(dataset: str, db: Session) -> Profile:
    profile = ProfileStore(db).get(dataset)
    if profile is not None:
        return profile

    path = profile_path_for_dataset(get_settings().data_dir, dataset)
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Profile not found: {dataset}")
    try:
        return load_profile(path)
    except ProfileInvalidError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/profiles/{dataset}")
def get_profile(dataset: str, db: Session = Depends(get_db)):
    """
    Get the profile document of a dataset.

    The catalog is checked first, then ``<data_dir>/<dataset>.profile.json``.
    """
    return _find_profile(dataset, db).to_dict()


@router.get("/profiles/{dataset}/report", response_model=ReportResponse)
def get_profile_report(
    dataset: str,
    only: Optional[str] = Query(None),
    sort: str = Query("name"),
    limit: int = Query(0, ge=0),
    match: Optional[str] = Query(None),
    show_transforms: bool = Query(False),
    db: Session = Depends(get_db),
):
    """Field report of a dataset profile, as rows and as plain text."""
    if only is not None and only not in ONLY_FILTERS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid filter: {only}. Must be one of {', '.join(ONLY_FILTERS)}",
        )

    profile = _find_profile(dataset, db)
    rows = build_report_rows(profile, only=only, sort=sort, limit=limit, match=match)
    text = render_report(profile, rows, show_transforms=show_transforms)

    return ReportResponse(
        dataset=dataset,
        rows=[{k: v for k, v in row.items() if not k.startswith("_")} for row in rows],
        text=text,
    )
