"""
Media, category, journal and system endpoint tests.
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from memorybox.api import create_app
from memorybox.config import DEFAULT_CATEGORIES
from memorybox.vision import VisionError

from .mocks import MockVisionManager, make_noise_image


def _create(client, data, user_id="alice", media_type="image", mime="image/png", **kw):
    return client.post(
        "/api/media",
        data={"userId": user_id, "type": media_type, **kw},
        files={"file": ("photo.png", data, mime)},
    )


class TestCreateMedia:
    """POST /api/media"""

    def test_create_image(self, client, vocabulary, test_image):
        response = _create(
            client, test_image, description="Sunny", categories="Beach,Family"
        )

        assert response.status_code == 201
        item = response.json()
        assert item["ownerId"] == "alice"
        assert item["type"] == "image"
        assert item["description"] == "Sunny"
        assert item["categories"] == ["Beach", "Family"]
        assert item["journal"] == ""
        assert len(item["phash"]) == 16
        assert item["fileSize"] == len(test_image)
        assert "createdAt" in item

    def test_phash_matches_upload_pipeline(self, client, test_image, storage_manager):
        item = _create(client, test_image).json()
        duplicate = storage_manager.find_duplicate("alice", "image", item["phash"])
        assert str(duplicate.id) == item["id"]

    def test_unknown_category_rejected(self, client, vocabulary, test_image):
        response = _create(client, test_image, categories="Mars")
        assert response.status_code == 400
        assert "Mars" in response.json()["message"]

    def test_corrupt_image_stored_without_phash(self, client):
        response = _create(client, b"\x89PNG\r\n\x1a\nbroken")
        assert response.status_code == 201
        assert response.json()["phash"] is None

    def test_video_has_no_phash(self, client):
        response = _create(
            client, b"\x00\x00\x00\x18ftypmp42", media_type="video", mime="video/mp4"
        )
        assert response.status_code == 201
        assert response.json()["phash"] is None

    def test_mime_must_match_type(self, client, test_image):
        response = _create(client, test_image, media_type="video", mime="image/png")
        assert response.status_code == 400
        assert "Invalid file type" in response.json()["message"]

    def test_size_limit(self, test_settings, storage_manager, mock_vision, test_image):
        settings = test_settings.model_copy(update={"max_image_size": 10})
        client = TestClient(
            create_app(settings, storage=storage_manager, vision=mock_vision)
        )

        response = _create(client, test_image)

        assert response.status_code == 400
        assert "too large" in response.json()["message"]

    def test_missing_owner(self, client, test_image):
        response = client.post(
            "/api/media",
            data={"type": "image"},
            files={"file": ("photo.png", test_image, "image/png")},
        )
        assert response.status_code == 400
        assert response.json() == {"message": "Missing required fields"}


class TestReadMedia:
    """GET /api/media, /api/media/{id} and /api/media/file/{id}"""

    def test_list_and_get(self, client, vocabulary):
        first = _create(client, make_noise_image(seed=1), categories="Beach").json()
        second = _create(client, make_noise_image(seed=2)).json()

        listing = client.get("/api/media", params={"userId": "alice"}).json()
        assert listing["totalCount"] == 2
        assert [item["id"] for item in listing["items"]] == [second["id"], first["id"]]

        beach = client.get(
            "/api/media", params={"userId": "alice", "category": "Beach"}
        ).json()
        assert [item["id"] for item in beach["items"]] == [first["id"]]

        fetched = client.get(f"/api/media/{first['id']}", params={"userId": "alice"})
        assert fetched.status_code == 200
        assert fetched.json() == first

    def test_other_owner_cannot_read(self, client, test_image):
        item = _create(client, test_image).json()
        bob = {"userId": "bob"}

        assert client.get(f"/api/media/{item['id']}", params=bob).status_code == 404
        assert client.get("/api/media", params=bob).json()["totalCount"] == 0
        file_response = client.get(f"/api/media/file/{item['id']}", params=bob)
        assert file_response.status_code == 404

    def test_download_file(self, client, test_image):
        item = _create(client, test_image).json()

        response = client.get(
            f"/api/media/file/{item['id']}", params={"userId": "alice"}
        )

        assert response.status_code == 200
        assert response.content == test_image
        assert response.headers["content-type"] == "image/png"

    def test_download_non_ascii_filename(self, client, test_image):
        item = client.post(
            "/api/media",
            data={"userId": "alice", "type": "image"},
            files={"file": ("夏の海.png", test_image, "image/png")},
        ).json()

        response = client.get(
            f"/api/media/file/{item['id']}", params={"userId": "alice"}
        )

        assert response.status_code == 200
        assert response.content == test_image
        disposition = response.headers["content-disposition"]
        assert disposition.startswith("inline;")
        assert "filename*=utf-8''" in disposition

    def test_list_requires_owner(self, client):
        response = client.get("/api/media")
        assert response.status_code == 400

    def test_invalid_id(self, client):
        response = client.get("/api/media/not-a-uuid", params={"userId": "alice"})
        assert response.status_code == 400
        assert "message" in response.json()


class TestUpdateMedia:
    """PATCH /api/media/{id}"""

    def test_update_journal(self, client, test_image):
        item = _create(client, test_image).json()

        response = client.patch(
            f"/api/media/{item['id']}",
            params={"userId": "alice"},
            json={"journal": "We built a sandcastle."},
        )

        assert response.status_code == 200
        updated = response.json()
        assert updated["journal"] == "We built a sandcastle."
        assert updated["phash"] == item["phash"]
        assert updated["createdAt"] == item["createdAt"]

    def test_update_categories_validated(self, client, vocabulary, test_image):
        item = _create(client, test_image).json()

        ok = client.patch(
            f"/api/media/{item['id']}",
            params={"userId": "alice"},
            json={"categories": ["Family", " Family ", ""]},
        )
        assert ok.json()["categories"] == ["Family"]

        bad = client.patch(
            f"/api/media/{item['id']}",
            params={"userId": "alice"},
            json={"categories": ["Mars"]},
        )
        assert bad.status_code == 400

    def test_update_missing(self, client):
        response = client.patch(
            f"/api/media/{uuid4()}", params={"userId": "alice"}, json={"journal": "x"}
        )
        assert response.status_code == 404
        assert response.json() == {"message": "Media not found"}


class TestJournalSuggestions:
    """POST /api/media/suggest"""

    def _client(self, test_settings, storage_manager, vision):
        return TestClient(
            create_app(test_settings, storage=storage_manager, vision=vision)
        )

    def test_suggestion_returned(self, test_settings, storage_manager, test_image):
        vision = MockVisionManager(content="  What a joyful afternoon.  ")
        client = self._client(test_settings, storage_manager, vision)
        item = _create(client, test_image).json()

        response = client.post(
            "/api/media/suggest",
            json={"mediaId": item["id"], "suggestionType": "mood", "userId": "alice"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "suggestion": "What a joyful afternoon.",
            "journal": None,
        }
        media, mime_type, instruction = vision.calls[0]
        assert media == test_image
        assert mime_type == "image/png"
        assert "mood" in instruction

    def test_append_to_journal(self, test_settings, storage_manager, test_image):
        vision = MockVisionManager(content="A poem.")
        client = self._client(test_settings, storage_manager, vision)
        item = _create(client, test_image, journal="First line.").json()

        response = client.post(
            "/api/media/suggest",
            json={
                "mediaId": item["id"],
                "suggestionType": "poetic",
                "userId": "alice",
                "append": True,
            },
        )

        assert response.json()["journal"] == "First line.\n\nA poem."
        stored = client.get(f"/api/media/{item['id']}", params={"userId": "alice"})
        assert stored.json()["journal"] == "First line.\n\nA poem."

    def test_vision_failure_is_bad_gateway(
        self, test_settings, storage_manager, test_image
    ):
        vision = MockVisionManager(error=VisionError("down"))
        client = self._client(test_settings, storage_manager, vision)
        item = _create(client, test_image).json()

        response = client.post(
            "/api/media/suggest",
            json={
                "mediaId": item["id"],
                "suggestionType": "special-day",
                "userId": "alice",
            },
        )

        assert response.status_code == 502
        assert response.json()["message"] == "Failed to get AI suggestion"

    @pytest.mark.parametrize("suggestion_type,status", [("mood", 404), ("haiku", 400)])
    def test_rejected_requests(self, client, suggestion_type, status):
        response = client.post(
            "/api/media/suggest",
            json={
                "mediaId": str(uuid4()),
                "suggestionType": suggestion_type,
                "userId": "alice",
            },
        )
        assert response.status_code == status


class TestCategories:
    """Category vocabulary endpoints."""

    def test_create_list_delete(self, client):
        alice = {"userId": "alice"}
        created = client.post(
            "/api/categories", json={"userId": "alice", "name": " Beach "}
        )
        assert created.status_code == 201
        category = created.json()
        assert category["name"] == "Beach"
        assert category["ownerId"] == "alice"

        listing = client.get("/api/categories", params=alice).json()
        assert [c["name"] for c in listing["categories"]] == ["Beach"]

        path = f"/api/categories/{category['id']}"
        assert client.delete(path, params={"userId": "bob"}).status_code == 404
        assert client.delete(path, params=alice).status_code == 200
        assert client.get("/api/categories", params=alice).json() == {
            "categories": []
        }

    def test_blank_name_rejected(self, client):
        response = client.post(
            "/api/categories", json={"userId": "alice", "name": "  "}
        )
        assert response.status_code == 400

    def test_seed_defaults(self, client):
        response = client.post("/api/categories/defaults", params={"userId": "alice"})
        assert [c["name"] for c in response.json()["categories"]] == DEFAULT_CATEGORIES

    def test_new_vocabulary_used_for_suggestions(self, client, mock_vision, test_image):
        client.post("/api/categories", json={"userId": "alice", "name": "Beach"})

        response = client.post(
            "/api/upload",
            data={"userId": "alice", "type": "image"},
            files={"file": ("photo.png", test_image, "image/png")},
        )

        assert response.json()["suggestions"]["categories"] == ["Beach"]
        assert '["Beach"]' in mock_vision.calls[0][2]


class TestSystem:
    """Vision provider and health endpoints."""

    def test_providers(self, client):
        body = client.get("/api/vision/providers").json()
        assert body["current_provider"] == "gemini"
        assert {p["name"] for p in body["providers"]} == {"gemini", "openai", "local"}
        assert not any(p["available"] for p in body["providers"])

    @pytest.mark.parametrize("provider", ["openai", "nonsense"])
    def test_switch_rejected(self, client, provider):
        response = client.post("/api/vision/switch", json={"provider": provider})
        assert response.status_code == 400

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["components"]["storage"]["connected"] is True
        assert body["components"]["storage"]["total_media_items"] == 0
