from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas import schemas
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=schemas.TokenPair)
def login(credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    result = AuthService(db).login(credentials.username, credentials.password)
    if not result.is_success:
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return result.value


@router.post("/refresh", response_model=schemas.TokenPair)
def refresh(body: schemas.RefreshRequest, db: Session = Depends(get_db)):
    result = AuthService(db).refresh(body.refresh_token)
    if not result.is_success:
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return result.value


@router.post("/logout")
def logout(body: schemas.RefreshRequest, db: Session = Depends(get_db)):
    result = AuthService(db).logout(body.refresh_token)
    if not result.is_success:
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return {"ok": True}
