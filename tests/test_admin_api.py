"""Admin API tests: auth, order management, variants, emails, invoices and stats."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.models import Invoice, InvoiceStatus, ModelVariant, Order, OrderStatus, utc_now
from app.services.notifier import wait_for_pending
from conftest import ADMIN_PASSWORD

pytestmark = pytest.mark.anyio

PNG = ("preview.png", b"\x89PNG preview", "image/png")


async def _reload(db_session, order_id: str) -> Order:
    return await db_session.get(Order, order_id, populate_existing=True)


# ======================================================================================
# Auth
# ======================================================================================
class TestAuth:
    async def test_login_and_me(self, client, admin):
        r = await client.post(
            "/api/admin/auth/login", json={"email": "ADMIN@print3d.ro", "password": ADMIN_PASSWORD}
        )
        assert r.status_code == 200
        body = r.json()
        assert body["admin"] == {"id": admin.id, "email": "admin@print3d.ro", "name": "Ana Pop"}

        me = await client.get("/api/admin/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "admin@print3d.ro"

    async def test_wrong_password(self, client, admin):
        r = await client.post(
            "/api/admin/auth/login", json={"email": "admin@print3d.ro", "password": "gresita"}
        )
        assert r.status_code == 401
        assert r.json()["code"] == "invalid_credentials"
        assert r.json()["detail"] == "Email sau parolă incorectă"

    async def test_unknown_admin(self, client):
        r = await client.post(
            "/api/admin/auth/login", json={"email": "cine@print3d.ro", "password": "orice-parola"}
        )
        assert r.status_code == 401

    async def test_admin_routes_require_token(self, client):
        r = await client.get("/api/admin/orders")
        assert r.status_code == 401
        assert r.headers["www-authenticate"] == "Bearer"

        r = await client.get("/api/admin/orders", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401


# ======================================================================================
# Listing
# ======================================================================================
class TestListOrders:
    async def test_filter_search_and_paginate(self, client, auth_headers, make_order):
        await make_order(variants=2, customer_name="Maria Ionescu", status=OrderStatus.PRINTING)
        await make_order(customer_name="Andrei Pop", customer_email="andrei@example.com")
        await make_order(customer_name="Elena Pop", status=OrderStatus.PRINTING)

        r = await client.get("/api/admin/orders", params={"status": "PRINTING"}, headers=auth_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "total_pages": 1}
        counts = {o["customer_name"]: o["variants_count"] for o in body["orders"]}
        assert counts == {"Maria Ionescu": 2, "Elena Pop": 0}

        r = await client.get("/api/admin/orders", params={"search": "ANDREI@"}, headers=auth_headers)
        assert [o["customer_name"] for o in r.json()["orders"]] == ["Andrei Pop"]

        r = await client.get(
            "/api/admin/orders",
            params={"limit": 2, "page": 2, "sort_by": "order_number", "sort_order": "asc"},
            headers=auth_headers,
        )
        body = r.json()
        assert len(body["orders"]) == 1
        assert body["pagination"]["total_pages"] == 2

    async def test_search_by_order_number(self, client, auth_headers, make_order):
        order = await make_order()
        await make_order()
        r = await client.get(
            "/api/admin/orders", params={"search": order.order_number[-4:]}, headers=auth_headers
        )
        assert order.order_number in [o["order_number"] for o in r.json()["orders"]]

    async def test_limit_capped(self, client, auth_headers):
        r = await client.get("/api/admin/orders", params={"limit": 500}, headers=auth_headers)
        assert r.status_code == 422


# ======================================================================================
# PATCH
# ======================================================================================
class TestUpdateOrder:
    async def test_price_and_notes(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.MODELING)
        r = await client.patch(
            f"/api/admin/orders/{order.id}",
            json={"price": "149.90", "notes": "Culoare aurie"},
            headers=auth_headers,
        )
        assert r.status_code == 200
        body = r.json()
        assert body["price"] == "149.90"
        assert body["notes"] == "Culoare aurie"
        assert body["status"] == "MODELING"

        await wait_for_pending(timeout=5)
        assert email_service.sent == []

    async def test_status_change_notifies(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.PAID)
        r = await client.patch(
            f"/api/admin/orders/{order.id}", json={"status": "PRINTING"}, headers=auth_headers
        )
        assert r.status_code == 200
        assert r.json()["status"] == "PRINTING"

        await wait_for_pending(timeout=5)
        assert email_service.sent == [
            ("status_update", {"order_number": order.order_number, "old": "PAID", "new": "PRINTING"})
        ]

    async def test_same_status_is_silent(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.PRINTING)
        r = await client.patch(
            f"/api/admin/orders/{order.id}", json={"status": "PRINTING"}, headers=auth_headers
        )
        assert r.status_code == 200
        await wait_for_pending(timeout=5)
        assert email_service.sent == []

    async def test_unsubscribed_customer_not_notified(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.PAID, subscribe_to_updates=False)
        await client.patch(f"/api/admin/orders/{order.id}", json={"status": "PRINTING"}, headers=auth_headers)
        await wait_for_pending(timeout=5)
        assert email_service.sent == []

    async def test_terminal_status_rejected_without_changes(self, client, auth_headers, make_order, db_session):
        order = await make_order(status=OrderStatus.CANCELLED)
        r = await client.patch(
            f"/api/admin/orders/{order.id}",
            json={"status": "PRINTING", "notes": "nu trebuie salvat"},
            headers=auth_headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_status"
        fresh = await _reload(db_session, order.id)
        assert fresh.status == OrderStatus.CANCELLED
        assert fresh.notes is None

    async def test_shipping_generates_invoice(self, client, auth_headers, make_order, storage):
        order = await make_order(
            status=OrderStatus.PRINTING, price=Decimal("150"), shipping_cost=Decimal("20")
        )
        r = await client.patch(
            f"/api/admin/orders/{order.id}",
            json={"status": "SHIPPED", "tracking_number": "AWB123"},
            headers=auth_headers,
        )
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "SHIPPED"
        assert body["shipped_at"] is not None
        assert body["tracking_number"] == "AWB123"
        assert body["invoice"]["total"] == "170.00"
        assert body["invoice"]["status"] == "GENERATED"
        assert storage.uploads[0]["folder"] == "invoices"

    async def test_failed_auto_invoice_keeps_shipped(self, client, auth_headers, make_order, pdf_generator, db_session):
        order = await make_order(status=OrderStatus.PRINTING, price=Decimal("150"))
        pdf_generator.fail = True
        r = await client.patch(
            f"/api/admin/orders/{order.id}", json={"status": "SHIPPED"}, headers=auth_headers
        )
        assert r.status_code == 200
        assert r.json()["status"] == "SHIPPED"
        assert r.json()["invoice"] is None
        assert (await db_session.execute(select(func.count(Invoice.id)))).scalar_one() == 0

    async def test_shipping_without_price_skips_invoice(self, client, auth_headers, make_order):
        order = await make_order(status=OrderStatus.PRINTING)
        r = await client.patch(
            f"/api/admin/orders/{order.id}", json={"status": "SHIPPED"}, headers=auth_headers
        )
        assert r.status_code == 200
        assert r.json()["invoice"] is None

    async def test_invalid_price(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.patch(
            f"/api/admin/orders/{order.id}", json={"price": "-5"}, headers=auth_headers
        )
        assert r.status_code == 422


# ======================================================================================
# Variants
# ======================================================================================
class TestVariants:
    async def test_upload_moves_to_pending_approval(self, client, auth_headers, make_order, storage, email_service, db_session):
        order = await make_order()
        r = await client.post(
            f"/api/admin/orders/{order.id}/variants",
            files=[("images", PNG), ("images", ("b.webp", b"webp", "image/webp"))],
            data={"descriptions": ["Varianta A", "Varianta B"]},
            headers=auth_headers,
        )
        assert r.status_code == 201
        variants = r.json()["variants"]
        assert [v["description"] for v in variants] == ["Varianta A", "Varianta B"]
        assert [u["folder"] for u in storage.uploads] == ["variants", "variants"]

        assert (await _reload(db_session, order.id)).status == OrderStatus.PENDING_APPROVAL
        await wait_for_pending(timeout=5)
        assert email_service.kinds() == ["status_update"]

    async def test_second_batch_keeps_status(self, client, auth_headers, make_order, db_session):
        order = await make_order(variants=1, status=OrderStatus.APPROVED)
        r = await client.post(
            f"/api/admin/orders/{order.id}/variants", files=[("images", PNG)], headers=auth_headers
        )
        assert r.status_code == 201
        assert (await _reload(db_session, order.id)).status == OrderStatus.APPROVED

    async def test_no_images(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.post(
            f"/api/admin/orders/{order.id}/variants", data={"descriptions": ["x"]}, headers=auth_headers
        )
        assert r.status_code == 400
        assert r.json()["code"] == "no_images"

    async def test_too_many_images(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.post(
            f"/api/admin/orders/{order.id}/variants",
            files=[("images", PNG)] * 6,
            headers=auth_headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == "too_many_images"

    async def test_invalid_batch_uploads_nothing(self, client, auth_headers, make_order, storage):
        order = await make_order()
        r = await client.post(
            f"/api/admin/orders/{order.id}/variants",
            files=[("images", PNG), ("images", ("x.gif", b"GIF", "image/gif"))],
            headers=auth_headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_type"
        assert storage.uploads == []

    async def test_delete_selected_variant(self, client, auth_headers, make_order, storage, db_session):
        order = await make_order(variants=2, status=OrderStatus.APPROVED)
        victim = order.variants[0]
        order.selected_variant_id = victim.id
        await db_session.commit()

        storage.fail_delete = True
        r = await client.delete(
            f"/api/admin/orders/{order.id}/variants/{victim.id}", headers=auth_headers
        )
        assert r.status_code == 200
        assert r.json() == {"success": True, "message": "Variantă ștearsă"}

        fresh = await _reload(db_session, order.id)
        assert fresh.selected_variant_id is None
        remaining = (
            await db_session.execute(select(func.count(ModelVariant.id)).where(ModelVariant.order_id == order.id))
        ).scalar_one()
        assert remaining == 1

    async def test_delete_unknown_variant(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.delete(f"/api/admin/orders/{order.id}/variants/nope", headers=auth_headers)
        assert r.status_code == 404


# ======================================================================================
# Emails
# ======================================================================================
class TestEmails:
    async def test_approval_email(self, client, auth_headers, make_order, email_service):
        order = await make_order(variants=1, status=OrderStatus.PENDING_APPROVAL)
        r = await client.post(f"/api/admin/orders/{order.id}/send-approval-email", headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["success"] is True
        assert email_service.kinds() == ["variants_ready"]

    async def test_approval_email_without_variants(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.post(f"/api/admin/orders/{order.id}/send-approval-email", headers=auth_headers)
        assert r.status_code == 400
        assert r.json()["code"] == "no_variants"

    async def test_approval_email_failure(self, client, auth_headers, make_order, email_service):
        order = await make_order(variants=1)
        email_service.fail = True
        r = await client.post(f"/api/admin/orders/{order.id}/send-approval-email", headers=auth_headers)
        assert r.status_code == 500
        assert r.json()["code"] == "email_failed"

    async def test_shipping_email_attaches_invoice(self, client, auth_headers, make_order, email_service, db_session):
        order = await make_order(status=OrderStatus.PRINTING, price=Decimal("150"))
        await client.patch(f"/api/admin/orders/{order.id}", json={"status": "SHIPPED"}, headers=auth_headers)
        await wait_for_pending(timeout=5)
        email_service.sent.clear()

        r = await client.post(f"/api/admin/orders/{order.id}/send-shipping-email", headers=auth_headers)
        assert r.status_code == 200
        kind, data = email_service.sent[0]
        assert kind == "shipping"
        assert data["attached"] is True
        assert data["invoice_number"].startswith("FACT-")

        invoice = (
            await db_session.execute(
                select(Invoice).where(Invoice.order_id == order.id).execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert invoice.status == InvoiceStatus.SENT
        assert invoice.sent_at is not None

    async def test_shipping_email_without_invoice(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.SHIPPED)
        r = await client.post(f"/api/admin/orders/{order.id}/send-shipping-email", headers=auth_headers)
        assert r.status_code == 200
        assert email_service.sent[0][1]["attached"] is False

    async def test_shipping_email_requires_shipped(self, client, auth_headers, make_order):
        order = await make_order(status=OrderStatus.PRINTING)
        r = await client.post(f"/api/admin/orders/{order.id}/send-shipping-email", headers=auth_headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Comanda nu este în status expediat"

    async def test_review_email(self, client, auth_headers, make_order, email_service):
        order = await make_order(status=OrderStatus.DELIVERED)
        r = await client.post(f"/api/admin/orders/{order.id}/send-review-email", headers=auth_headers)
        assert r.status_code == 200
        assert email_service.kinds() == ["review_request"]

        other = await make_order(status=OrderStatus.SHIPPED)
        r = await client.post(f"/api/admin/orders/{other.id}/send-review-email", headers=auth_headers)
        assert r.status_code == 400


# ======================================================================================
# Invoices
# ======================================================================================
class TestInvoices:
    async def test_generate(self, client, auth_headers, make_order):
        order = await make_order(status=OrderStatus.PAID, price=Decimal("150"), shipping_cost=Decimal("20"))
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)
        assert r.status_code == 201
        body = r.json()
        assert body["subtotal"] == "150.00"
        assert body["shipping_cost"] == "20.00"
        assert body["total"] == "170.00"
        assert body["status"] == "GENERATED"
        assert body["pdf_url"]

        again = await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)
        assert again.status_code == 400
        assert again.json()["code"] == "invoice_exists"

    async def test_generate_without_price(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)
        assert r.status_code == 400
        assert r.json()["code"] == "no_price"

    async def test_generate_failure(self, client, auth_headers, make_order, pdf_generator):
        order = await make_order(price=Decimal("150"))
        pdf_generator.fail = True
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)
        assert r.status_code == 500
        assert r.json()["code"] == "generation_failed"

    async def test_regenerate(self, client, auth_headers, make_order):
        order = await make_order(price=Decimal("150"))
        first = (await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)).json()
        await client.patch(f"/api/admin/orders/{order.id}", json={"price": "200"}, headers=auth_headers)

        r = await client.post(f"/api/admin/orders/{order.id}/invoice/regenerate", headers=auth_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["invoice_number"] == first["invoice_number"]
        assert body["total"] == "200.00"

    async def test_regenerate_without_invoice(self, client, auth_headers, make_order):
        order = await make_order(price=Decimal("150"))
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/regenerate", headers=auth_headers)
        assert r.status_code == 404
        assert r.json()["code"] == "no_invoice"

    async def test_send(self, client, auth_headers, make_order, email_service, storage):
        order = await make_order(price=Decimal("150"))
        await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)

        r = await client.post(f"/api/admin/orders/{order.id}/invoice/send", headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["status"] == "SENT"
        assert email_service.kinds() == ["invoice"]
        assert len(storage.fetched) == 1

    async def test_send_failure(self, client, auth_headers, make_order, email_service):
        order = await make_order(price=Decimal("150"))
        await client.post(f"/api/admin/orders/{order.id}/invoice/generate", headers=auth_headers)
        email_service.fail = True
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/send", headers=auth_headers)
        assert r.status_code == 500
        assert r.json()["code"] == "email_failed"

    async def test_send_without_invoice(self, client, auth_headers, make_order):
        order = await make_order()
        r = await client.post(f"/api/admin/orders/{order.id}/invoice/send", headers=auth_headers)
        assert r.status_code == 404
        assert r.json()["code"] == "no_invoice"


# ======================================================================================
# Stats
# ======================================================================================
class TestStats:
    async def test_dashboard_stats(self, client, auth_headers, make_order):
        await make_order(status=OrderStatus.PENDING_APPROVAL)
        await make_order(status=OrderStatus.PAID, price=Decimal("150"), paid_at=utc_now())
        await make_order(status=OrderStatus.PRINTING, price=Decimal("80.50"), paid_at=utc_now())
        await make_order(status=OrderStatus.DELIVERED, price=Decimal("999"), paid_at=utc_now() - timedelta(days=40))

        r = await client.get("/api/admin/stats", headers=auth_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["orders_today"] == 4
        assert body["revenue_this_month"] == "230.50"
        assert body["pending_approval"] == 1
        assert body["in_production"] == 2
        assert {row["status"]: row["count"] for row in body["orders_by_status"]} == {
            "PENDING_APPROVAL": 1,
            "PAID": 1,
            "PRINTING": 1,
            "DELIVERED": 1,
        }

    async def test_stats_require_token(self, client):
        r = await client.get("/api/admin/stats")
        assert r.status_code == 401
