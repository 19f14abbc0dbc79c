from datetime import datetime, timedelta

import pytest

from galerium.models import Asset

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def seed_assets(session):
    def _seed(n, **overrides):
        rows = []
        for i in range(n):
            fields = {
                "id": f"asset-{i:03d}",
                "title": f"Asset {i}",
                "description": "Generated artwork",
                "category": "backgrounds",
                "tags": ["ai", "art"],
                "thumbnail_url": f"https://cdn.test/thumbs/{i}.png",
                "file_url": f"https://cdn.test/files/{i}.zip",
                "created_at": BASE_TIME + timedelta(minutes=i),
            }
            fields.update(overrides)
            rows.append(Asset(**fields))
        session.add_all(rows)
        session.commit()
        return rows

    return _seed


def test_pagination_reports_ceil_pages(client, seed_assets):
    seed_assets(45)
    resp = client.get("/api/assets", params={"limit": 20})
    assert resp.status_code == 200
    assert resp.json()["pagination"] == {"page": 1, "limit": 20, "total": 45, "pages": 3}


def test_page_returns_offset_slice_newest_first(client, seed_assets):
    seed_assets(45)
    page2 = client.get("/api/assets", params={"page": 2, "limit": 20}).json()
    ids = [a["id"] for a in page2["assets"]]
    # newest is asset-044; page 2 starts at offset 20
    assert ids == [f"asset-{i:03d}" for i in range(24, 4, -1)]

    page3 = client.get("/api/assets", params={"page": 3, "limit": 20}).json()
    assert [a["id"] for a in page3["assets"]] == [f"asset-{i:03d}" for i in range(4, -1, -1)]


def test_page_past_the_end_is_empty(client, seed_assets):
    seed_assets(3)
    body = client.get("/api/assets", params={"page": 5}).json()
    assert body["assets"] == []
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["pages"] == 1


def test_empty_catalog(client):
    body = client.get("/api/assets").json()
    assert body == {"assets": [], "pagination": {"page": 1, "limit": 20, "total": 0, "pages": 0}}


def test_listing_omits_heavy_fields(client, seed_assets):
    seed_assets(1)
    [asset] = client.get("/api/assets").json()["assets"]
    assert "file_url" not in asset
    assert asset["tags"] == ["ai", "art"]
    assert asset["thumbnail_url"] == "https://cdn.test/thumbs/0.png"
    assert asset["is_premium"] is False
    assert asset["downloads"] == 0


def test_category_filter(client, session, seed_assets):
    seed_assets(3)
    session.add(Asset(id="icon-1", title="Icon", category="icons", created_at=BASE_TIME))
    session.commit()

    body = client.get("/api/assets", params={"category": "icons"}).json()
    assert [a["id"] for a in body["assets"]] == ["icon-1"]
    assert body["pagination"]["total"] == 1


def test_search_is_case_insensitive_over_title_and_description(client, session):
    session.add_all([
        Asset(id="a", title="Sunset Over Rio", description="warm tones", created_at=BASE_TIME),
        Asset(id="b", title="Portrait", description="A SUNSET backdrop", created_at=BASE_TIME + timedelta(minutes=1)),
        Asset(id="c", title="Forest", description="green", created_at=BASE_TIME + timedelta(minutes=2)),
    ])
    session.commit()

    body = client.get("/api/assets", params={"search": "sunset"}).json()
    assert sorted(a["id"] for a in body["assets"]) == ["a", "b"]
    assert body["pagination"]["total"] == 2


def test_search_treats_wildcards_literally(client, session):
    session.add_all([
        Asset(id="pct", title="100% free", created_at=BASE_TIME),
        Asset(id="plain", title="100 free", created_at=BASE_TIME),
    ])
    session.commit()

    body = client.get("/api/assets", params={"search": "100%"}).json()
    assert [a["id"] for a in body["assets"]] == ["pct"]


def test_invalid_paging_params(client):
    assert client.get("/api/assets", params={"page": 0}).status_code == 400
    assert client.get("/api/assets", params={"limit": 0}).status_code == 400
    assert client.get("/api/assets", params={"limit": "abc"}).status_code == 400


def test_get_asset_returns_full_record(client, seed_assets):
    seed_assets(1)
    resp = client.get("/api/assets/asset-000")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "asset-000"
    assert body["file_url"] == "https://cdn.test/files/0.zip"


def test_get_unknown_asset(client):
    resp = client.get("/api/assets/missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Asset not found"}
