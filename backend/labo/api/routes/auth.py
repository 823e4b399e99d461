from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from labo.api.deps import get_db
from labo.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token
from labo.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, session: Session = Depends(get_db)) -> Token:
    try:
        return AuthService(session).register(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/login", response_model=Token)
def login(payload: LoginRequest, session: Session = Depends(get_db)) -> Token:
    try:
        return AuthService(session).authenticate(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


@router.post("/refresh", response_model=Token)
def refresh(payload: RefreshRequest, session: Session = Depends(get_db)) -> Token:
    try:
        return AuthService(session).refresh(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
