from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.models import User


def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the X-User-Id header."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
