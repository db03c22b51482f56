import base64
import io
import os

# must be set before gatsishub.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from gatsishub import config
from gatsishub.db.session import reset_db
from gatsishub.main import app
from gatsishub.realtime.feed import feed

CUSTOMER = "cust-1"


def png_bytes(size=(64, 32), color=(255, 255, 255), ink=True) -> bytes:
    img = Image.new("RGB", size, color)
    if ink:
        ImageDraw.Draw(img).line([(4, 4), (size[0] - 4, size[1] - 4)], fill=(0, 0, 0), width=3)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def data_url(content: bytes, mime="image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode()}"


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    reset_db()
    feed.clear()
    yield
    feed.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def signature():
    return data_url(png_bytes())


@pytest.fixture
def blank_signature():
    return data_url(png_bytes(ink=False))


@pytest.fixture
def catalog(client):
    product = client.post("/products", json={"name": "Classic Hanger", "weight": 500}).json()["product"]
    steel = client.post("/materials", json={"name": "Steel", "price_per_kg": 50}).json()["material"]
    return {"product": product, "materials": [steel]}


@pytest.fixture
def order_payload():
    def build(**overrides):
        payload = {
            "customer_id": CUSTOMER,
            "company_name": "Acme Apparel",
            "contact_person": "Juan Dela Cruz",
            "contact_phone": "+63 912 345 6789",
            "hanger_type": "Classic Hanger",
            "quantity": 100,
            "materials": {"Steel": 100},
            "delivery_address": "123 Rizal Ave, Manila",
            "delivery_country": "PH",
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def make_order(client, catalog, order_payload, signature):
    """Create an order and walk it forward to ``status``."""
    def make(status="For Evaluation", **overrides):
        order = client.post("/orders", json=order_payload(**overrides)).json()["order"]
        if status == "For Evaluation":
            return order
        oid = order["id"]
        client.patch(f"/orders/{oid}/price", json={"total_price": 5000})
        order = client.patch(f"/orders/{oid}/status", json={"status": "Contract Signing"}).json()["order"]
        if status == "Contract Signing":
            return order
        order = client.patch(f"/orders/{oid}/sign-contract", json={"signature": signature, "agreed": True}).json()["order"]
        if status == "Waiting for Payment":
            return order
        raise ValueError(f"make_order does not reach {status!r}")
    return make


@pytest.fixture
def submit_payment(client):
    def submit(order_id, content=None, content_type="image/png", filename="receipt.png", **fields):
        data = {"order_id": order_id, "payment_method": "GCash", "customer_id": CUSTOMER}
        data.update(fields)
        files = {"proof_of_payment": (filename, content if content is not None else png_bytes(), content_type)}
        return client.post("/payments/submit", data=data, files=files)
    return submit
