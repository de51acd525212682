from unittest.mock import patch

from fastapi import status

from marketplace.models import Order, Payment
from marketplace.services.payhere import build_notification_signature


def test_full_order_flow(client, db, test_product):
    """Register, verify, login, order, sign checkout, receive PayHere notification."""
    # 1. Register and verify
    with patch("marketplace.api.auth.send_verify_email") as mock_send:
        register_response = client.post(
            "/api/auth/register",
            json={
                "name": "Flow User",
                "email": "flowuser@example.com",
                "password": "password123",
                "role": "user",
            },
        )
    assert register_response.status_code == status.HTTP_201_CREATED
    user_id = register_response.json()["id"]
    verify_response = client.post("/api/auth/verify-email", json={"token": mock_send.call_args.args[2]})
    assert verify_response.status_code == status.HTTP_200_OK

    # 2. Login
    login_response = client.post(
        "/api/auth/login",
        json={"email": "flowuser@example.com", "password": "password123"},
    )
    assert login_response.status_code == status.HTTP_200_OK
    headers = {"Authorization": f"Bearer {login_response.json()['access_token']}"}

    # 3. Browse catalog
    products = client.get("/api/products").json()["products"]
    assert [p["id"] for p in products] == [test_product.id]

    # 4. Place order
    order_response = client.post(
        "/api/orders",
        json={
            "products": [{"product_id": test_product.id, "quantity": 3}],
            "shipping_address": "12 Temple Road, Kandy",
        },
        headers={**headers, "Idempotency-Key": "flow-1"},
    )
    assert order_response.status_code == status.HTTP_201_CREATED
    order_data = order_response.json()["order"]
    order_id = order_data["id"]
    assert order_data["user_id"] == user_id
    assert client.get(f"/api/products/{test_product.id}").json()["stock"] == 2

    # 5. Sign the checkout form
    hash_response = client.post(
        "/api/payments/payhere-hash",
        json={"order_id": order_id, "amount": order_data["total_amount"], "currency": "LKR"},
    )
    assert hash_response.status_code == status.HTTP_200_OK
    merchant_id = hash_response.json()["merchant_id"]

    # 6. PayHere notifies, twice
    notification = {
        "merchant_id": merchant_id,
        "order_id": str(order_id),
        "payment_id": "320025071234",
        "payhere_amount": order_data["total_amount"],
        "payhere_currency": "LKR",
        "status_code": "2",
        "custom_1": str(order_id),
        "custom_2": str(user_id),
    }
    notification["md5sig"] = build_notification_signature(
        merchant_id,
        str(order_id),
        order_data["total_amount"],
        "LKR",
        "2",
        "test-payhere-secret",
    )
    for _ in range(2):
        webhook_response = client.post("/webhooks/payhere", data=notification)
        assert webhook_response.status_code == status.HTTP_200_OK

    # 7. Order is confirmed with exactly one paid payment
    order_view = client.get(f"/api/orders/{order_id}", headers=headers).json()
    assert order_view["status"] == "confirmed"
    assert order_view["payment_reference"] == "320025071234"
    history = client.get("/api/payments/history", headers=headers).json()
    assert len(history) == 1
    assert history[0]["status"] == "paid"
    assert history[0]["transaction_id"] == "320025071234"
    assert db.query(Payment).count() == 1
    assert db.query(Order).count() == 1

    # 8. Buyer cancels after confirmation, stock goes back
    cancel_response = client.patch(f"/api/orders/{order_id}/cancel", headers=headers)
    assert cancel_response.status_code == status.HTTP_200_OK
    assert client.get(f"/api/products/{test_product.id}").json()["stock"] == 5


def test_guest_checkout_flow(client, db, test_product, admin_headers):
    """Guest order is paid through PayHere and then shipped by an admin."""
    order_response = client.post(
        "/api/orders",
        json={
            "products": [{"product_id": test_product.id, "quantity": 1}],
            "shipping_address": "4 Lake Drive, Colombo",
            "customer_name": "Guest Buyer",
            "customer_email": "guest@example.com",
            "customer_phone": "+94771234567",
        },
    )
    assert order_response.status_code == status.HTTP_201_CREATED
    order_id = order_response.json()["order"]["id"]

    signature = build_notification_signature("1211149", str(order_id), "1500.00", "LKR", "2", "test-payhere-secret")
    webhook_response = client.post(
        "/webhooks/payhere",
        json={
            "merchant_id": "1211149",
            "order_id": order_id,
            "payment_id": "guest-pay-1",
            "payhere_amount": "1500.00",
            "payhere_currency": "LKR",
            "status_code": 2,
            "md5sig": signature,
        },
    )
    assert webhook_response.status_code == status.HTTP_200_OK

    ship_response = client.patch(
        f"/api/orders/{order_id}/status",
        json={"status": "shipped", "tracking_info": {"provider": "Lanka Post", "tracking_number": "LP9"}},
        headers=admin_headers,
    )
    assert ship_response.status_code == status.HTTP_200_OK
    assert ship_response.json()["order"]["status"] == "shipped"
    assert ship_response.json()["order"]["payment_reference"] == "guest-pay-1"
