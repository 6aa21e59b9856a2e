import uuid

import pytest

from nearcast.domain.posts import store

OWNER = "33333333-3333-3333-3333-333333333333"
OTHER = "44444444-4444-4444-4444-444444444444"


def _headers(user_id=OWNER):
	return {"X-User-Id": user_id}


@pytest.mark.asyncio
async def test_create_get_delete_round(api_client):
	response = await api_client.post(
		"/posts",
		json={"content": "  coffee here  ", "lat": 45.5, "lng": -73.57},
		headers=_headers(),
	)
	assert response.status_code == 201
	created = response.json()
	assert set(created) == {"id", "created_at", "expires_at"}

	fetched = await api_client.get(f"/posts/{created['id']}", headers=_headers(OTHER))
	assert fetched.status_code == 200
	body = fetched.json()
	assert body["content"] == "coffee here"
	assert body["owner_id"] == OWNER
	assert body["image_url"] is None

	denied = await api_client.delete(f"/posts/{created['id']}", headers=_headers(OTHER))
	assert denied.status_code == 403
	assert denied.json()["detail"] == "not_owner"
	assert denied.json()["request_id"]

	deleted = await api_client.delete(f"/posts/{created['id']}", headers=_headers())
	assert deleted.status_code == 204

	gone = await api_client.get(f"/posts/{created['id']}", headers=_headers())
	assert gone.status_code == 404
	assert gone.json()["detail"] == "not_found"


@pytest.mark.asyncio
async def test_expiry_is_not_a_request_field(api_client):
	response = await api_client.post(
		"/posts",
		json={"content": "forever?", "lat": 1.0, "lng": 1.0, "expires_at": "2999-01-01T00:00:00Z"},
		headers=_headers(),
	)
	assert response.status_code == 201
	post = await store.get_post(response.json()["id"])
	assert post.expires_at_ms - post.created_at_ms == 86_400_000


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"payload",
	[
		{"content": "", "lat": 0, "lng": 0},
		{"content": "   ", "lat": 0, "lng": 0},
		{"content": "x" * 501, "lat": 0, "lng": 0},
		{"content": "ok", "lat": 91, "lng": 0},
		{"content": "ok", "lat": 0, "lng": -181},
	],
)
async def test_create_rejects_invalid_payload(api_client, payload):
	response = await api_client.post("/posts", json=payload, headers=_headers())
	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_requires_identity(api_client):
	response = await api_client.post("/posts", json={"content": "hi", "lat": 0, "lng": 0})
	assert response.status_code == 401


@pytest.mark.asyncio
async def test_delete_unknown_post_is_not_found(api_client):
	response = await api_client.delete(f"/posts/{uuid.uuid4()}", headers=_headers())
	assert response.status_code == 404


@pytest.mark.asyncio
async def test_image_url_is_carried(api_client):
	response = await api_client.post(
		"/posts",
		json={"content": "look", "lat": 0, "lng": 0, "image_url": "https://cdn.example/p.jpg"},
		headers=_headers(),
	)
	fetched = await api_client.get(f"/posts/{response.json()['id']}", headers=_headers())
	assert fetched.json()["image_url"] == "https://cdn.example/p.jpg"
