"""Tests for the HTTP API"""

from fakes import AUTH


class TestStatus:
    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["read_only"] is True
        assert data["cache"]["backend"] == "memory"

    def test_status_writable(self, writable_client):
        assert writable_client.get("/status").json()["read_only"] is False


class TestImages:
    def test_list_images(self, client):
        response = client.get("/images")
        assert response.status_code == 200
        images = response.json()["images"]
        assert [image["name"] for image in images] == ["vanilla"]

    def test_get_image(self, client):
        response = client.get("/images/vanilla")
        assert response.status_code == 200
        image = response.json()["image"]
        assert [r["digest"] for r in image["releases"]] == ["r1", "r2"]

    def test_get_image_missing(self, client):
        response = client.get("/images/missing")
        assert response.status_code == 404
        assert response.json()["status"] == 404
        assert "missing" in response.json()["detail"]


class TestReleases:
    def test_get_release(self, client):
        response = client.get("/images/vanilla/r1")
        assert response.status_code == 200
        release = response.json()["release"]
        assert release["digest"] == "r1"
        assert release["packages"][0] == {"name": "a", "version": "1.0"}

    def test_get_release_missing(self, client):
        assert client.get("/images/vanilla/r9").status_code == 404

    def test_latest_release(self, client):
        response = client.get("/images/vanilla/latest")
        assert response.status_code == 200
        assert response.json()["release"]["digest"] == "r2"


class TestDiff:
    def test_diff(self, client):
        response = client.get(
            "/images/vanilla/diff", params={"old_digest": "r1", "new_digest": "r2"}
        )
        assert response.status_code == 200
        assert response.json() == {
            "_old_digest": "r1",
            "_new_digest": "r2",
            "added": [{"name": "d", "new_version": "1.0"}],
            "upgraded": [{"name": "b", "old_version": "2.0", "new_version": "3.0"}],
            "downgraded": [],
            "removed": [{"name": "c", "old_version": "3.0"}],
        }

    def test_diff_cached(self, client, app):
        params = {"old_digest": "r1", "new_digest": "r2"}
        first = client.get("/images/vanilla/diff", params=params).json()
        second = client.get("/images/vanilla/diff", params=params).json()

        assert first == second
        stats = app.state.diff_service.stats()
        assert stats["hits"] == 1
        assert stats["computations"] == 1

    def test_diff_reverse(self, client):
        response = client.get(
            "/images/vanilla/diff", params={"old_digest": "r2", "new_digest": "r1"}
        )
        data = response.json()
        assert data["added"] == [{"name": "c", "new_version": "3.0"}]
        assert data["downgraded"] == [
            {"name": "b", "old_version": "3.0", "new_version": "2.0"}
        ]

    def test_diff_post(self, client):
        response = client.post(
            "/images/vanilla/diff", json={"old_digest": "r1", "new_digest": "r2"}
        )
        assert response.status_code == 200
        assert response.json()["_new_digest"] == "r2"

    def test_diff_missing_params(self, client):
        assert client.get("/images/vanilla/diff").status_code == 422

    def test_diff_unknown_release(self, client):
        response = client.get(
            "/images/vanilla/diff", params={"old_digest": "r1", "new_digest": "nope"}
        )
        assert response.status_code == 404

    def test_diff_unknown_image(self, client):
        response = client.get(
            "/images/missing/diff", params={"old_digest": "r1", "new_digest": "r2"}
        )
        assert response.status_code == 404


class TestReadOnly:
    def test_write_endpoints_not_registered(self, client):
        assert client.post("/images/new", json={"name": "x"}).status_code in (404, 405)
        response = client.post(
            "/images/vanilla/new", json={"digest": "r3", "packages": []}
        )
        assert response.status_code in (404, 405)


class TestWrite:
    def test_requires_auth(self, writable_client):
        response = writable_client.post("/images/new", json={"name": "x"})
        assert response.status_code == 401

    def test_rejects_wrong_password(self, writable_client):
        response = writable_client.post(
            "/images/new", json={"name": "x"}, auth=("admin", "wrong")
        )
        assert response.status_code == 401

    def test_add_image_and_release(self, writable_client):
        response = writable_client.post("/images/new", json={"name": "desktop"}, auth=AUTH)
        assert response.status_code == 200
        assert response.json()["image"]["name"] == "desktop"

        response = writable_client.post(
            "/images/desktop/new",
            json={
                "digest": "sha256:1",
                "date": "2023-05-01T00:00:00Z",
                "packages": [{"name": "bash", "version": "5.1"}],
            },
            auth=AUTH,
        )
        assert response.status_code == 200
        assert response.json()["release"]["digest"] == "sha256:1"

        writable_client.post(
            "/images/desktop/new",
            json={"digest": "sha256:2", "packages": [{"name": "bash", "version": "5.10"}]},
            auth=AUTH,
        )
        response = writable_client.get(
            "/images/desktop/diff",
            params={"old_digest": "sha256:1", "new_digest": "sha256:2"},
        )
        assert response.json()["upgraded"] == [
            {"name": "bash", "old_version": "5.1", "new_version": "5.10"}
        ]
        assert writable_client.get("/images/desktop/latest").json()["release"][
            "digest"
        ] == "sha256:2"

    def test_add_image_duplicate(self, writable_client):
        writable_client.post("/images/new", json={"name": "desktop"}, auth=AUTH)
        response = writable_client.post("/images/new", json={"name": "desktop"}, auth=AUTH)
        assert response.status_code == 400

    def test_add_release_unknown_image(self, writable_client):
        response = writable_client.post(
            "/images/missing/new", json={"digest": "r1", "packages": []}, auth=AUTH
        )
        assert response.status_code == 404

    def test_add_release_duplicate_package(self, writable_client):
        writable_client.post("/images/new", json={"name": "desktop"}, auth=AUTH)
        response = writable_client.post(
            "/images/desktop/new",
            json={
                "digest": "r1",
                "packages": [
                    {"name": "bash", "version": "5.1"},
                    {"name": "bash", "version": "5.2"},
                ],
            },
            auth=AUTH,
        )
        assert response.status_code == 400

    def test_add_release_requires_packages(self, writable_client):
        writable_client.post("/images/new", json={"name": "desktop"}, auth=AUTH)
        response = writable_client.post(
            "/images/desktop/new", json={"digest": "r1"}, auth=AUTH
        )
        assert response.status_code == 422
