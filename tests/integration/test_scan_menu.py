import json

import httpx

SPRING_ROLLS = json.dumps({
    "restaurant_name": "Golden Dragon",
    "menu_type": "Dinner",
    "categories": [
        {"name": "Appetizers", "items": [
            {"name": "Spring Rolls", "description": "Crispy vegetable rolls", "price": "$8.99",
             "attributes": ["vegetarian"], "allergens": ["gluten"],
             "flavor_profile": "savory", "texture": "crispy"},
        ]},
    ],
})


def _upload(png_bytes, field="image", content_type="image/png"):
    return {field: ("menu.png", png_bytes, content_type)}


def test_scan_menu_returns_structured_menu(client, fake_api, png_bytes):
    fake_api.queue("/chat/completions", fake_api.chat(SPRING_ROLLS))

    response = client.post("/scan-menu", files=_upload(png_bytes), data={"language": "English"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"]
    body = response.json()
    assert body["success"] is True
    menu = body["data"]
    assert menu["restaurantName"] == "Golden Dragon"
    assert menu["menuType"] == "Dinner"
    item = menu["categories"][0]["items"][0]
    assert menu["categories"][0]["name"] == "Appetizers"
    assert item["id"] == "item-1-1"
    assert item["name"] == "Spring Rolls"
    assert item["price"] == "$8.99"
    assert item["flavorProfile"] == "savory"

    sent = fake_api.bodies("/chat/completions")[0]
    image_part = sent["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
    assert "English" in sent["messages"][0]["content"]


def test_scan_menu_is_repeatable(client, fake_api, png_bytes):
    fake_api.default("/chat/completions", lambda request: fake_api.chat(SPRING_ROLLS))

    first = client.post("/scan-menu", files=_upload(png_bytes)).json()
    second = client.post("/scan-menu", files=_upload(png_bytes)).json()

    assert first["data"] == second["data"]


def test_alternate_field_name_and_default_language(client, fake_api, png_bytes):
    fake_api.queue("/chat/completions", fake_api.chat(SPRING_ROLLS))

    response = client.post("/scan-menu", files=_upload(png_bytes, field="menuImage"))

    assert response.status_code == 200
    assert "English" in fake_api.bodies("/chat/completions")[0]["messages"][0]["content"]


def test_repairable_output_still_succeeds(client, fake_api, png_bytes):
    broken = '```json\n{"categories": [{"name": "Mains", "items": [{"name": "Pad Thai", "price": "$12",},]\n```'
    fake_api.queue("/chat/completions", fake_api.chat(broken))

    response = client.post("/scan-menu", files=_upload(png_bytes))

    assert response.status_code == 200
    assert response.json()["data"]["categories"][0]["items"][0]["name"] == "Pad Thai"


def test_unreadable_output_fails_cleanly(client, fake_api, png_bytes):
    fake_api.queue("/chat/completions", fake_api.chat("I could not find a menu in this picture."))

    response = client.post("/scan-menu", files=_upload(png_bytes))

    assert response.status_code == 422
    body = response.json()
    assert body == {
        "success": False,
        "message": "Could not read menu from the image",
        "errorCode": "MENU_UNREADABLE",
        "requestId": response.headers["X-Request-ID"],
        "details": {"raw_length": len("I could not find a menu in this picture.")},
    }


def test_refusal_with_braces_is_unreadable(client, fake_api, png_bytes):
    fake_api.queue("/chat/completions", fake_api.chat("Sorry, I {cannot} read this menu."))

    response = client.post("/scan-menu", files=_upload(png_bytes))

    assert response.status_code == 422
    assert response.json()["errorCode"] == "MENU_UNREADABLE"


def test_missing_image_is_rejected_before_upstream(client, fake_api):
    response = client.post("/scan-menu", data={"language": "English"})

    assert response.status_code == 400
    assert response.json()["errorCode"] == "EMPTY_IMAGE"
    assert fake_api.requests == []


def test_non_image_upload_is_rejected(client, fake_api):
    response = client.post(
        "/scan-menu",
        files={"image": ("menu.pdf", b"%PDF-1.4 fake", "application/pdf")},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["errorCode"] == "UNSUPPORTED_IMAGE_TYPE"
    assert body["message"] == "Unsupported image type 'application/pdf'. Please upload only images."
    assert fake_api.requests == []


def test_oversized_upload_is_rejected(client, settings, fake_api):
    settings.intake.max_image_bytes = 1024

    response = client.post("/scan-menu", files={"image": ("menu.png", b"\x89PNG" + b"0" * 4096, "image/png")})

    assert response.status_code == 413
    assert response.json()["errorCode"] == "IMAGE_TOO_LARGE"
    assert fake_api.requests == []


def test_unsupported_language_is_rejected(client, fake_api, png_bytes):
    response = client.post("/scan-menu", files=_upload(png_bytes), data={"language": "Klingon"})

    assert response.status_code == 400
    assert response.json()["errorCode"] == "UNSUPPORTED_LANGUAGE"
    assert fake_api.requests == []


def test_upstream_outage_is_retried_then_reported(client, fake_api, sleeper, png_bytes):
    fake_api.default("/chat/completions", lambda request: httpx.Response(503))

    response = client.post("/scan-menu", files=_upload(png_bytes))

    assert response.status_code == 503
    body = response.json()
    assert body["errorCode"] == "SERVICE_UNAVAILABLE"
    assert body["details"]["attempts"] == 3
    assert len(fake_api.calls("/chat/completions")) == 3
    assert sleeper.delays == [0.5, 1.0]


def test_upstream_rejection_is_not_retried(client, fake_api, png_bytes):
    fake_api.default("/chat/completions", lambda request: httpx.Response(401, json={"error": "bad key"}))

    response = client.post("/scan-menu", files=_upload(png_bytes))

    assert response.status_code == 502
    assert response.json()["errorCode"] == "UPSTREAM_REJECTED"
    assert len(fake_api.calls("/chat/completions")) == 1


def test_incoming_request_id_is_echoed(client, fake_api, png_bytes):
    response = client.post(
        "/scan-menu",
        files=_upload(png_bytes),
        data={"language": "Klingon"},
        headers={"X-Request-ID": "req-123"},
    )

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["requestId"] == "req-123"
