from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db.database import get_db
from ..schemas.booking import CommentOut
from ..services.booking_service import list_comments

router = APIRouter()


@router.get("/", response_model=List[CommentOut])
def comments(
    new_only: bool = Query(False),
    since: Optional[datetime] = Query(None, description="Only comments created at or after this time"),
    limit: int = Query(20),
    db: Session = Depends(get_db),
):
    # limit is clamped to 1..100 by the service
    return list_comments(db, new_only=new_only, since=since, limit=limit)
