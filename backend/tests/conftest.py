from __future__ import annotations

import os
import uuid

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select

from labo.api.deps import get_db
from labo.core.config import settings
from labo.db import session as db_session_module
from labo.main import app
from labo.models.billing import SubscriptionPlan
from labo.models.user import User
from labo.services.auth import AuthService
from labo.services.billing import BillingService
from labo.services.rate_limit import checkout_rate_limiter
from labo.utils.signature import SECURE_HASH_TYPE_FIELD, attach_signature


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not test_database_url:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        test_database_url = f"sqlite:///{db_path}"

    connect_args = {"check_same_thread": False} if test_database_url.startswith("sqlite") else {}
    engine = create_engine(test_database_url, connect_args=connect_args)
    SQLModel.metadata.create_all(bind=engine)

    with Session(engine) as session:
        BillingService(session).ensure_default_plans()

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_db, None)
    db_session_module.engine = original_engine
    SQLModel.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    checkout_rate_limiter.reset()
    yield
    checkout_rate_limiter.reset()


@pytest.fixture()
def client(db_engine) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


@pytest.fixture()
def plans(db_session: Session) -> dict[str, SubscriptionPlan]:
    return {plan.slug: plan for plan in db_session.exec(select(SubscriptionPlan)).all()}


@pytest.fixture()
def factory_user(db_session: Session) -> User:
    user = User(
        email=f"factory_{uuid.uuid4().hex[:8]}@example.com",
        full_name="Xuong May Binh Duong",
        password_hash="hash",
        role="factory",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def register_and_login(client: TestClient, email: str, password: str, role: str = "factory") -> tuple[dict[str, str], str]:
    unique_email = f"{uuid.uuid4().hex[:8]}_{email}"
    payload = {
        "full_name": "Cong ty TNHH Labo",
        "email": unique_email,
        "password": password,
        "role": role,
    }
    register_response = client.post(f"{settings.api_v1_str}/auth/register", json=payload)
    assert register_response.status_code == status.HTTP_201_CREATED, register_response.json()

    login_response = client.post(
        f"{settings.api_v1_str}/auth/login",
        json={"username": unique_email, "password": password},
    )
    assert login_response.status_code == status.HTTP_200_OK, login_response.json()
    token = login_response.json()
    return token, unique_email


def login_admin(client: TestClient, session: Session) -> dict[str, str]:
    email = f"admin_{uuid.uuid4().hex[:8]}@example.com"
    AuthService(session).create_admin(email, "Admin", "admin-secret")
    response = client.post(
        f"{settings.api_v1_str}/auth/login",
        json={"username": email, "password": "admin-secret"},
    )
    assert response.status_code == status.HTTP_200_OK, response.json()
    return response.json()


def auth_headers(token: dict[str, str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {token['access_token']}"}


def signed_vnpay_callback(txn_ref: str, amount: int, response_code: str = "00", secret: str | None = None) -> dict[str, str]:
    params = {
        "vnp_Amount": str(amount * 100),
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14422574",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": "Labo - Goi Chuyen nghiep (monthly)",
        "vnp_PayDate": "20261019103015",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": settings.vnpay_tmn_code,
        "vnp_TransactionNo": "14422574",
        "vnp_TransactionStatus": response_code,
        "vnp_TxnRef": txn_ref,
    }
    signed = attach_signature(params, secret or settings.vnpay_hash_secret)
    signed[SECURE_HASH_TYPE_FIELD] = "HmacSHA512"
    return signed
