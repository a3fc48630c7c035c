"""Tests for the app shell: health, error envelope and uploads."""

from cloudinary.exceptions import Error as CloudinaryError

import config
import storage


class TestShell:

    def test_root(self, client):
        assert client.get("/").json() == {"message": "Samjubaa Creation API running"}

    def test_health_without_database(self, client):
        data = client.get("/health").json()

        assert data["ok"] is True
        assert data["service"] == "samjubaa-api"
        assert data["database"] == "not configured"

    def test_unknown_route_message(self, client):
        res = client.get("/api/nothing-here")

        assert res.status_code == 404
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Route GET /api/nothing-here not found"
        assert body["timestamp"]

    def test_malformed_object_id(self, client):
        res = client.get("/api/products/not-an-id")

        assert res.status_code == 400
        assert res.json()["message"] == "Invalid ID"

    def test_missing_body(self, client, customer_headers):
        res = client.post("/api/cart/add", headers=customer_headers)

        assert res.status_code == 400
        assert res.json()["message"] == "Validation failed"


class TestUpload:
    """/api/upload"""

    def test_admin_only(self, client, customer_headers):
        res = client.post("/api/upload/image", headers=customer_headers,
                          files={"image": ("a.png", b"\x89PNG", "image/png")})

        assert res.status_code == 403

    def test_no_file(self, client, admin_headers):
        res = client.post("/api/upload/image", headers=admin_headers)

        assert res.status_code == 400
        assert res.json()["message"] == "No file uploaded"

    def test_rejects_non_images(self, client, admin_headers):
        res = client.post("/api/upload/image", headers=admin_headers,
                          files={"image": ("notes.txt", b"hello", "text/plain")})

        assert res.status_code == 400
        assert res.json()["message"] == "Only image files are allowed"

    def test_storage_not_configured(self, client, admin_headers):
        res = client.post("/api/upload/image", headers=admin_headers,
                          files={"image": ("a.png", b"\x89PNG", "image/png")})

        assert res.status_code == 500
        assert res.json()["message"] == "Image storage is not configured"

    def test_multiple_images_upload_through_sdk(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(config, "CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setattr(config, "CLOUDINARY_API_KEY", "key")
        monkeypatch.setattr(config, "CLOUDINARY_API_SECRET", "secret")
        calls = []

        def fake_upload(file, **options):
            calls.append(options)
            return {"secure_url": "https://res.cloudinary.com/demo/a.png",
                    "public_id": "samjubaa/a", "width": 10, "height": 10}

        monkeypatch.setattr(storage.cloudinary.uploader, "upload", fake_upload)

        res = client.post("/api/upload/images", headers=admin_headers,
                          files=[("images", ("a.png", b"\x89PNG", "image/png")),
                                 ("images", ("b.png", b"\x89PNG", "image/png"))])

        assert res.status_code == 200
        assert res.json()["data"]["urls"] == ["https://res.cloudinary.com/demo/a.png"] * 2
        assert len(calls) == 2
        assert calls[0]["folder"] == "samjubaa"
        assert calls[0]["cloud_name"] == "demo"
        assert calls[0]["api_key"] == "key"
        assert calls[0]["api_secret"] == "secret"

    def test_category_image_folder(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(config, "CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setattr(config, "CLOUDINARY_API_KEY", "key")
        monkeypatch.setattr(config, "CLOUDINARY_API_SECRET", "secret")
        folders = []
        monkeypatch.setattr(storage.cloudinary.uploader, "upload",
                            lambda file, **options: folders.append(options["folder"]) or {"secure_url": "u"})

        res = client.post("/api/upload/category-image", headers=admin_headers,
                          files={"image": ("a.png", b"\x89PNG", "image/png")})

        assert res.status_code == 200
        assert folders == ["samjubaa/categories"]

    def test_provider_failure(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(config, "CLOUDINARY_CLOUD_NAME", "demo")
        monkeypatch.setattr(config, "CLOUDINARY_API_KEY", "key")
        monkeypatch.setattr(config, "CLOUDINARY_API_SECRET", "secret")

        def rejected(file, **options):
            raise CloudinaryError("Invalid image file")

        monkeypatch.setattr(storage.cloudinary.uploader, "upload", rejected)

        res = client.post("/api/upload/image", headers=admin_headers,
                          files={"image": ("a.png", b"\x89PNG", "image/png")})

        assert res.status_code == 502
        assert res.json()["message"] == "Image upload failed"
