# tests/conftest.py
"""
Pytest configuration and fixtures.

- In-memory SQLite (aiosqlite) on a StaticPool, schema created per test.
- httpx.AsyncClient over ASGITransport with get_db and every external
  collaborator (storage, email, PDF, Stripe) overridden by recording fakes.
- Tests are async and run on anyio's asyncio backend.
"""

from __future__ import annotations

import os

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("NOTIFIER_BACKEND", "asyncio")

from collections.abc import AsyncIterator  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Optional  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.db import get_db  # noqa: E402
from app.core.dependencies import (  # noqa: E402
    get_email_service,
    get_payment_service,
    get_pdf_generator,
    get_storage_service,
)
from app.core.exceptions import EmailDeliveryError, InvoiceGenerationError, StorageError  # noqa: E402
from app.core.security import create_access_token, get_password_hash  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models import AdminUser, Base, ModelVariant, Order, OrderStatus  # noqa: E402
from app.services.notifier import wait_for_pending  # noqa: E402
from app.services.payment_service import StripeService  # noqa: E402
from app.utils.helpers import generate_order_number  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_PASSWORD = "parola-sigura"


# ======================================================================================
# Recording fakes
# ======================================================================================
class FakeStorage:
    base_url = "https://res.cloudinary.com/demo"

    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.fetched: list[str] = []
        self.fail_upload = False
        self.fail_delete = False
        self.fail_fetch = False
        self.content = b"%PDF-1.4 stored"

    async def put(self, data: bytes, filename: str, folder: str, content_type: str) -> str:
        if self.fail_upload:
            raise StorageError("upload down", "upload_failed")
        rtype = "image" if content_type.startswith("image/") else "raw"
        url = f"{self.base_url}/{rtype}/upload/v1/print3d/{folder}/{len(self.uploads)}-{filename}"
        self.uploads.append(
            {"filename": filename, "folder": folder, "content_type": content_type, "size": len(data), "url": url}
        )
        return url

    async def delete(self, url: str) -> None:
        if self.fail_delete:
            raise StorageError("delete down", "delete_failed")
        self.deleted.append(url)

    async def fetch(self, url: str) -> bytes:
        if self.fail_fetch:
            raise StorageError("fetch down", "fetch_failed")
        self.fetched.append(url)
        return self.content


class FakePDFGenerator:
    def __init__(self) -> None:
        self.rendered: list[Any] = []
        self.fail = False

    async def render_invoice(self, doc: Any) -> bytes:
        if self.fail:
            raise InvoiceGenerationError("renderer down", "generation_failed")
        self.rendered.append(doc)
        return b"%PDF-1.4 fake"


class FakeEmailService:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def _record(self, kind: str, **data: Any) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp down", "email_failed")
        self.sent.append((kind, data))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]

    async def send_order_received(self, order: Any) -> None:
        await self._record("order_received", order_number=order.order_number)

    async def send_variants_ready(self, order: Any) -> None:
        await self._record("variants_ready", order_number=order.order_number)

    async def send_payment_confirmed(self, order: Any) -> None:
        await self._record("payment_confirmed", order_number=order.order_number)

    async def send_shipping(self, order: Any, invoice: Any = None, invoice_pdf: Optional[bytes] = None) -> None:
        await self._record(
            "shipping",
            order_number=order.order_number,
            invoice_number=getattr(invoice, "invoice_number", None),
            attached=invoice_pdf is not None,
        )

    async def send_review_request(self, order: Any) -> None:
        await self._record("review_request", order_number=order.order_number)

    async def send_status_update(self, order: Any, old_status: Any, new_status: Any) -> None:
        await self._record(
            "status_update",
            order_number=order.order_number,
            old=getattr(old_status, "value", old_status),
            new=getattr(new_status, "value", new_status),
        )

    async def send_invoice(self, order: Any, invoice: Any, invoice_pdf: bytes) -> None:
        await self._record("invoice", invoice_number=invoice.invoice_number)


class FakeStripeService(StripeService):
    """Real signature checks and status resolution; no HTTP."""

    def __init__(self) -> None:
        super().__init__(
            api_key="sk_test",
            webhook_secret=WEBHOOK_SECRET,
            base_url="https://stripe.test/v1",
            currency="ron",
            app_url="https://print3d.test",
        )
        self.created: list[dict[str, Any]] = []
        self.sessions: dict[str, dict[str, Any]] = {}

    async def create_checkout_session(self, order: Any, total: Decimal) -> dict[str, Any]:
        session_id = f"cs_test_{len(self.created) + 1}"
        session = {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}
        self.created.append({"order_id": order.id, "total": total, **session})
        self.sessions[session_id] = {"id": session_id, "status": "open", "payment_status": "unpaid"}
        return session

    async def retrieve_session(self, session_id: str) -> dict[str, Any]:
        return self.sessions[session_id]


# ======================================================================================
# Fixtures
# ======================================================================================
@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def pdf_generator() -> FakePDFGenerator:
    return FakePDFGenerator()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def payments() -> FakeStripeService:
    return FakeStripeService()


@pytest.fixture
def app(session_factory, storage, pdf_generator, email_service, payments):
    application = create_app()

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_storage_service] = lambda: storage
    application.dependency_overrides[get_pdf_generator] = lambda: pdf_generator
    application.dependency_overrides[get_email_service] = lambda: email_service
    application.dependency_overrides[get_payment_service] = lambda: payments
    return application


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await wait_for_pending(timeout=5)


@pytest.fixture
async def admin(db_session) -> AdminUser:
    user = AdminUser(
        email="Admin@Print3D.ro",
        name="Ana Pop",
        password_hash=get_password_hash(ADMIN_PASSWORD),
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def auth_headers(admin) -> dict[str, str]:
    token = create_access_token(admin.id, email=admin.email, name=admin.name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_order(db_session):
    async def _make(variants: int = 0, **overrides: Any) -> Order:
        data: dict[str, Any] = {
            "order_number": generate_order_number(),
            "status": OrderStatus.RECEIVED,
            "customer_name": "Ioana Popescu",
            "customer_email": "ioana@example.com",
            "customer_phone": "0722123456",
            "customer_city": "Cluj-Napoca",
            "source_image_url": "https://res.cloudinary.com/demo/image/upload/v1/print3d/uploads/photo.jpg",
            "subscribe_to_updates": True,
        }
        data.update(overrides)
        order = Order(**data)
        db_session.add(order)
        await db_session.flush()
        for idx in range(variants):
            db_session.add(
                ModelVariant(
                    order_id=order.id,
                    preview_image_url=f"https://res.cloudinary.com/demo/image/upload/v1/print3d/variants/v{idx}.png",
                    description=f"Varianta {idx + 1}",
                )
            )
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _make
