"""
FastAPI dependencies (DB session, authentication, budget ownership)

Authentication itself lives outside this service: an upstream login flow
stores user_id in the signed session cookie.
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from ledger.infrastructure.db.session import get_db as _get_db
from ledger.infrastructure.db.models import Budget


# Re-export get_db for convenience
get_db = _get_db


def get_current_user_id(request: Request) -> int:
    """
    User id from the session

    Raises:
        HTTPException(401): not logged in
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return int(user_id)


def require_budget(db: Session, budget_id: int, user_id: int) -> Budget:
    """
    Budget owned by the user

    Raises:
        HTTPException(404): missing or owned by someone else
    """
    budget = db.query(Budget).filter(Budget.id == budget_id).first()
    if budget is None or budget.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    return budget


def get_owned_budget(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Budget:
    """Path dependency for /budgets/{budget_id}/... routes"""
    return require_budget(db, budget_id, user_id)
