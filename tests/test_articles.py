"""
Article endpoint tests: CRUD, category association, soft delete and
recovery, hard delete, and the bulk endpoints.

Each test creates the users, categories and articles it needs through
the API, so test order does not matter.
"""
import uuid

import pytest
from httpx import AsyncClient


async def _category(client: AsyncClient, admin_headers: dict, value: str) -> dict:
    resp = await client.post("/api/v1/categories", headers=admin_headers, json={
        "value": value, "label": value.title(),
    })
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _article(client: AsyncClient, headers: dict, title: str = "Post", categories=()) -> dict:
    resp = await client.post("/api/v1/articles", headers=headers, json={
        "title": title, "content": "Some content", "categories": list(categories),
    })
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


# ---------------------------------------------------------------------------
# List / pagination
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    body = resp.json()
    assert body["data"] == []
    assert body["meta"]["total"] == 0


@pytest.mark.asyncio
async def test_list_articles_default_page_size_is_five(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    for i in range(7):
        await _article(async_client, headers, f"Post {i}")

    resp = await async_client.get("/api/v1/articles")
    body = resp.json()
    assert len(body["data"]) == 5
    assert body["meta"]["limit"] == 5
    assert body["meta"]["pages"] == 2
    assert body["meta"]["hasMore"] is True

    resp = await async_client.get("/api/v1/articles", params={"page": 2})
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["meta"]["nextPage"] is None
    assert body["meta"]["prevPage"] == 1

    resp = await async_client.get("/api/v1/articles", params={"page": "abc", "limit": "0"})
    assert len(resp.json()["data"]) == 7


@pytest.mark.asyncio
async def test_list_hides_deleted_from_regular_callers(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    keep = await _article(async_client, headers, "Keep")
    gone = await _article(async_client, headers, "Gone")
    await async_client.delete(f"/api/v1/articles/{gone['id']}", headers=headers)

    resp = await async_client.get("/api/v1/articles")
    assert [a["id"] for a in resp.json()["data"]] == [keep["id"]]

    resp = await async_client.get("/api/v1/articles", headers=admin_headers)
    assert resp.json()["meta"]["total"] == 2


# ---------------------------------------------------------------------------
# Create + get
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_get_article(async_client: AsyncClient, make_user, admin_headers):
    user, headers = await make_user()
    py = await _category(async_client, admin_headers, "python")
    db = await _category(async_client, admin_headers, "databases")

    article = await _article(async_client, headers, "Hello", [py["id"], db["id"]])
    assert article["user_id"] == user["id"]
    assert article["author"]["name"] == user["name"]
    assert [c["value"] for c in article["categories"]] == ["databases", "python"]

    resp = await async_client.get(f"/api/v1/articles/{article['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"]["title"] == "Hello"


@pytest.mark.asyncio
async def test_create_article_requires_principal(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/articles", json={"title": "t", "content": "c"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_article_unknown_category(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    resp = await async_client.post("/api/v1/articles", headers=headers, json={
        "title": "t", "content": "c", "categories": [str(uuid.uuid4())],
    })
    assert resp.status_code == 400
    assert len(resp.json()["error"]["details"]["unknownIds"]) == 1


@pytest.mark.asyncio
async def test_create_article_blank_title(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    resp = await async_client.post("/api/v1/articles", headers=headers, json={
        "title": "   ", "content": "c",
    })
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_article_not_found(async_client: AsyncClient):
    resp = await async_client.get(f"/api/v1/articles/{uuid.uuid4()}")
    assert resp.status_code == 404
    resp = await async_client.get("/api/v1/articles/12345")
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article_reconciles_categories(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    a = await _category(async_client, admin_headers, "alpha")
    b = await _category(async_client, admin_headers, "beta")
    c = await _category(async_client, admin_headers, "gamma")
    article = await _article(async_client, headers, "Post", [a["id"], b["id"]])

    resp = await async_client.patch(f"/api/v1/articles/{article['id']}", headers=headers, json={
        "categories": [b["id"], c["id"]],
    })
    assert resp.status_code == 200
    assert {x["value"] for x in resp.json()["data"]["categories"]} == {"beta", "gamma"}

    resp = await async_client.get(f"/api/v1/articles/{article['id']}/categories")
    assert {x["value"] for x in resp.json()["data"]} == {"beta", "gamma"}

    resp = await async_client.patch(f"/api/v1/articles/{article['id']}", headers=headers, json={
        "title": "Renamed",
    })
    data = resp.json()["data"]
    assert data["title"] == "Renamed"
    assert len(data["categories"]) == 2


@pytest.mark.asyncio
async def test_update_article_by_non_owner_forbidden(async_client: AsyncClient, make_user, admin_headers):
    _, owner_headers = await make_user()
    _, other_headers = await make_user()
    article = await _article(async_client, owner_headers)

    url = f"/api/v1/articles/{article['id']}"
    assert (await async_client.patch(url, headers=other_headers, json={"title": "x"})).status_code == 403
    assert (await async_client.patch(url, headers=admin_headers, json={"title": "x"})).status_code == 200


@pytest.mark.asyncio
async def test_update_article_empty_patch(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    article = await _article(async_client, headers)
    resp = await async_client.patch(f"/api/v1/articles/{article['id']}", headers=headers, json={})
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Soft delete / recover / purge
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_soft_delete_and_recover(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    article = await _article(async_client, headers)
    url = f"/api/v1/articles/{article['id']}"

    resp = await async_client.delete(url, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted_at"] is not None
    assert (await async_client.delete(url, headers=headers)).status_code == 404
    assert (await async_client.get(url)).status_code == 404

    assert (await async_client.post(f"{url}/recover", headers=headers)).status_code == 403
    resp = await async_client.post(f"{url}/recover", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted_at"] is None
    assert (await async_client.post(f"{url}/recover", headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_purge_article(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    py = await _category(async_client, admin_headers, "python")
    article = await _article(async_client, headers, categories=[py["id"]])
    url = f"/api/v1/articles/{article['id']}"

    assert (await async_client.delete(f"{url}/purge", headers=headers)).status_code == 403
    resp = await async_client.delete(f"{url}/purge", headers=admin_headers)
    assert resp.status_code == 200
    assert (await async_client.get(url, headers=admin_headers)).status_code == 404

    # The category itself survives.
    assert (await async_client.get(f"/api/v1/categories/{py['id']}")).status_code == 200


# ---------------------------------------------------------------------------
# Bulk endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_bulk_delete_scoped_to_owned_articles(async_client: AsyncClient, make_user):
    _, mine = await make_user()
    _, theirs = await make_user()
    m1 = await _article(async_client, mine, "m1")
    m2 = await _article(async_client, mine, "m2")
    t1 = await _article(async_client, theirs, "t1")

    resp = await async_client.post("/api/v1/articles/bulk-delete", headers=mine, json={
        "ids": [m1["id"], m2["id"], t1["id"], "nope"],
    })
    assert resp.status_code == 200
    body = resp.json()
    assert {a["id"] for a in body["data"]} == {m1["id"], m2["id"]}
    meta = body["meta"]
    assert meta["totalRequested"] == 4
    assert meta["totalTransitioned"] == 2
    assert meta["invalidIds"] == ["nope"]
    assert meta["notOwnedOrMissingIds"] == [t1["id"]]
    assert meta["notFoundIds"] == [t1["id"]]

    assert (await async_client.get(f"/api/v1/articles/{t1['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_bulk_delete_paginates_transitioned_rows(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    ids = [(await _article(async_client, headers, f"p{i}"))["id"] for i in range(4)]

    resp = await async_client.post(
        "/api/v1/articles/bulk-delete", headers=admin_headers, params={"limit": 3}, json={"ids": ids},
    )
    body = resp.json()
    assert len(body["data"]) == 3
    assert body["meta"]["total"] == 4
    assert body["meta"]["pages"] == 2
    assert body["meta"]["totalTransitioned"] == 4


@pytest.mark.asyncio
async def test_bulk_delete_all_invalid_ids(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    resp = await async_client.post("/api/v1/articles/bulk-delete", headers=headers, json={
        "ids": ["x", "y"],
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_bulk_delete_empty_list(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    resp = await async_client.post("/api/v1/articles/bulk-delete", headers=headers, json={"ids": []})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_bulk_recover_and_purge(async_client: AsyncClient, make_user, admin_headers):
    _, headers = await make_user()
    a1 = await _article(async_client, headers, "a1")
    a2 = await _article(async_client, headers, "a2")
    await async_client.delete(f"/api/v1/articles/{a1['id']}", headers=headers)

    resp = await async_client.post("/api/v1/articles/bulk-recover", headers=admin_headers, json={
        "ids": [a1["id"], a2["id"]],
    })
    meta = resp.json()["meta"]
    assert meta["totalTransitioned"] == 1
    assert meta["notFoundIds"] == [a2["id"]]

    missing = str(uuid.uuid4())
    resp = await async_client.post("/api/v1/articles/bulk-purge", headers=admin_headers, json={
        "ids": [a1["id"], a2["id"], missing],
    })
    body = resp.json()
    assert {a["id"] for a in body["data"]} == {a1["id"], a2["id"]}
    assert body["meta"]["notFoundIds"] == [missing]

    resp = await async_client.get("/api/v1/articles", headers=admin_headers)
    assert resp.json()["meta"]["total"] == 0


@pytest.mark.asyncio
async def test_lookup_articles_by_ids(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    a1 = await _article(async_client, headers, "a1")
    missing = str(uuid.uuid4())

    resp = await async_client.post("/api/v1/articles/lookup", json={"ids": [a1["id"], missing, "bad"]})
    assert resp.status_code == 200
    body = resp.json()
    assert [a["id"] for a in body["data"]] == [a1["id"]]
    assert body["meta"]["totalFound"] == 1
    assert body["meta"]["notFoundIds"] == [missing]
    assert body["meta"]["invalidIds"] == ["bad"]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_articles(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    await _article(async_client, headers, "Async SQLAlchemy tips")
    await _article(async_client, headers, "Gardening")

    resp = await async_client.get("/api/v1/articles/search", params={"q": "sqlalchemy"})
    assert [a["title"] for a in resp.json()["data"]] == ["Async SQLAlchemy tips"]
