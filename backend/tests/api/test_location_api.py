import pytest

USER = "77777777-7777-7777-7777-777777777777"


@pytest.mark.asyncio
async def test_location_update_is_monotonic(api_client):
	headers = {"X-User-Id": USER}
	first = await api_client.post(
		"/location",
		json={"lat": 48.85, "lng": 2.35, "captured_at": 2_000, "device_id": "phone", "accuracy_m": 8},
		headers=headers,
	)
	assert first.status_code == 200
	assert first.json() == {"applied": True, "captured_at": 2_000}

	stale = await api_client.post(
		"/location",
		json={"lat": 10.0, "lng": 10.0, "captured_at": 1_000, "device_id": "phone"},
		headers=headers,
	)
	assert stale.json() == {"applied": False, "captured_at": 2_000}

	current = await api_client.get("/location/self", headers=headers)
	assert current.status_code == 200
	body = current.json()
	assert (body["lat"], body["lng"]) == (48.85, 2.35)
	assert body["accuracy_m"] == 8


@pytest.mark.asyncio
async def test_own_location_missing(api_client):
	response = await api_client.get("/location/self", headers={"X-User-Id": USER})
	assert response.status_code == 404
	assert response.json()["detail"] == "location_not_found"


@pytest.mark.asyncio
async def test_location_validation(api_client):
	response = await api_client.post(
		"/location",
		json={"lat": 100.0, "lng": 2.35, "captured_at": 1, "device_id": "phone"},
		headers={"X-User-Id": USER},
	)
	assert response.status_code == 422
