from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from marketpulse.api.deps import get_db, get_trend_cache
from marketpulse.main import app
from marketpulse.models.listing import ListingRecord
from marketpulse.services.trend_cache import InMemoryTrendCache
from marketpulse.workers import jobs

ANCHOR = date(2024, 6, 30)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    cache = InMemoryTrendCache()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_trend_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def gt3_sales(session_factory):
    offsets = [0, 5, 10, 15, 20, 86, 88, 90, 92, 94]
    prices = [150000, 160000, 175000, 190000, 200000, 140000, 150000, 160000, 170000, 180000]
    with session_factory() as db:
        for index, (offset, price) in enumerate(zip(offsets, prices)):
            db.add(
                ListingRecord(
                    source="bringatrailer",
                    source_url=f"https://bringatrailer.com/listing/gt3-{index}/",
                    title="Porsche 911 GT3",
                    model_id="911",
                    trim_id="911:gt3",
                    price=price,
                    sold_date=ANCHOR - timedelta(days=offset),
                    status="sold",
                )
            )
        db.commit()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_get_listing(client, session_factory):
    with session_factory() as db:
        record = ListingRecord(
            source="bringatrailer",
            source_url="https://bringatrailer.com/listing/one/",
            title="2019 Porsche 911 GT3 RS",
            model_id="911",
            trim_id="911:gt3-rs",
            option_ids=["pccb"],
            price=255000,
        )
        db.add(record)
        db.commit()
        listing_id = record.id

    response = client.get(f"/v1/listings/{listing_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["trim_id"] == "911:gt3-rs"
    assert body["option_ids"] == ["pccb"]
    assert body["status"] == "active"

    assert client.get("/v1/listings/999").status_code == 404


def test_trend_report(client, gt3_sales):
    response = client.get("/v1/trends", params={"model": "911", "trim": "GT3", "as_of": ANCHOR.isoformat()})
    assert response.status_code == 200
    body = response.json()
    assert body["identity"]["trim_id"] == "911:gt3"
    assert body["anchor_date"] == ANCHOR.isoformat()
    assert body["trends"]["3"]["status"] == "ok"
    assert body["trends"]["3"]["current_median"] == 175000
    assert body["trends"]["6"]["status"] == "insufficient_data"
    assert body["trends"]["6"]["percent_change"] is None


def test_single_horizon(client, gt3_sales):
    response = client.get("/v1/trends/3", params={"model": "911", "trim": "911:gt3", "as_of": ANCHOR.isoformat()})
    assert response.status_code == 200
    assert response.json()["percent_change"] == pytest.approx(0.09375)


def test_as_of_defaults_to_latest_sale(client, gt3_sales):
    params = {"model": "911", "trim": "GT3"}
    pinned = client.get("/v1/trends/3", params={**params, "as_of": ANCHOR.isoformat()}).json()
    defaulted = client.get("/v1/trends/3", params=params).json()
    assert defaulted["percent_change"] == pytest.approx(pinned["percent_change"])
    assert defaulted["confidence"] == pinned["confidence"]

    report = client.get("/v1/trends", params=params).json()
    assert report["as_of"] == ANCHOR.isoformat()
    assert report["anchor_date"] == ANCHOR.isoformat()


@pytest.mark.parametrize(
    "params",
    [
        {"model": "Cayenne"},
        {"model": "911", "trim": "GT4 RS"},
        {"model": "911", "generation": "982"},
        {"model": "911", "generation": "992.1", "year": 2019},
    ],
)
def test_unknown_identity_is_unprocessable(client, params):
    assert client.get("/v1/trends", params=params).status_code == 422


def test_internal_ingest_enqueues_job(client, monkeypatch):
    calls = []

    def fake_enqueue(source_name, feed_path):
        calls.append((source_name, feed_path))
        return "job-42"

    monkeypatch.setattr(jobs, "enqueue_ingestion", fake_enqueue)
    response = client.post("/internal/ingest/bringatrailer", json={"feed_path": "/data/bat.jsonl"})

    assert response.status_code == 200
    assert response.json() == {"enqueued": True, "job_id": "job-42"}
    assert calls == [("bringatrailer", "/data/bat.jsonl")]
