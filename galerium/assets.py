import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .db import get_db
from .errors import NotFoundError
from .models import Asset
from .schemas import AssetOut, AssetSummaryOut

router = APIRouter(prefix="/api/assets", tags=["assets"])

MAX_PAGE_SIZE = 100


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@router.get("")
def list_assets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    q = db.query(Asset)
    if category:
        q = q.filter(Asset.category == category)
    if search:
        pattern = _like_pattern(search)
        q = q.filter(or_(
            Asset.title.ilike(pattern, escape="\\"),
            Asset.description.ilike(pattern, escape="\\"),
        ))

    total = q.count()
    rows = (
        q.order_by(Asset.created_at.desc(), Asset.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "assets": [AssetSummaryOut.model_validate(a) for a in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@router.get("/{asset_id}")
def get_asset(asset_id: str, db: Session = Depends(get_db)):
    asset = db.get(Asset, asset_id)
    if not asset:
        raise NotFoundError("Asset not found")
    return AssetOut.model_validate(asset)
