"""
Integration tests for the StemVault HTTP API
Drives the FastAPI app in-process through httpx
"""
import io
import json
import os
import uuid
import zipfile

import httpx
import pytest

from stemvault.api.dependencies import get_blob_store, get_db_session
from stemvault.main import app
from stemvault.services.dedup_index import compute_content_hash

KICK = b"kick drum take"
BASS = b"bass line take"


@pytest.fixture
async def client(db_manager, blob_store):
    """HTTP client bound to the app with test database and blob store"""

    async def override_session():
        async with db_manager.get_session() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://stemvault.test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def headers(actor_id):
    return {"X-Actor-Id": str(actor_id)}


@pytest.fixture
async def api_repository(client, headers):
    response = await client.post(
        "/api/repositories",
        json={"projectId": str(uuid.uuid4()), "projectName": "Night Drive"},
        headers=headers
    )
    assert response.status_code == 201
    return response.json()


async def post_commit(client, headers, repository, branch_id, message, stems, files=None):
    return await client.post(
        "/api/commits",
        data={
            "repositoryId": repository["id"],
            "branchId": branch_id,
            "message": message,
            "stemsData": json.dumps(stems),
        },
        files=files or {},
        headers=headers
    )


@pytest.mark.integration
class TestRepositoryEndpoints:
    """Test repository setup and listing"""

    async def test_requires_actor_header(self, client):
        response = await client.post(
            "/api/repositories",
            json={"projectId": str(uuid.uuid4()), "projectName": "Anon"}
        )
        assert response.status_code == 401

    async def test_initialize_repository(self, client, headers, api_repository):
        assert api_repository["default_branch"] == "main"
        assert api_repository["branches"][0]["name"] == "main"
        assert api_repository["branches"][0]["head_commit_id"] is None

        response = await client.get(f"/api/repositories/{api_repository['id']}/branches", headers=headers)
        assert response.status_code == 200
        assert [b["name"] for b in response.json()] == ["main"]

    async def test_duplicate_project_conflicts(self, client, headers):
        body = {"projectId": str(uuid.uuid4()), "projectName": "Twice"}
        assert (await client.post("/api/repositories", json=body, headers=headers)).status_code == 201

        response = await client.post("/api/repositories", json=body, headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "Conflict"

    async def test_unknown_repository(self, client, headers):
        response = await client.get(f"/api/repositories/{uuid.uuid4()}/branches", headers=headers)
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "NotFound",
            "detail": response.json()["detail"],
        }


@pytest.mark.integration
class TestCommitEndpoints:
    """Test multipart commit creation and commit views"""

    async def test_create_commit_with_audio(self, client, headers, api_repository, blob_store):
        branch_id = api_repository["branches"][0]["id"]

        response = await post_commit(
            client, headers, api_repository, branch_id, "Initial groove",
            [{"trackName": "Kick", "trackIndex": 0, "stemType": "audio", "fxSettings": {"eq": {"low": 2.0}}}],
            files={"stem_0_audio": ("kick.wav", KICK, "audio/wav")}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["commit"]["parent_commit_id"] is None
        assert body["stems"][0]["fx_settings"]["eq"]["low"] == 2.0
        assert body["failures"] == []
        assert blob_store.put_count == 1

    async def test_duplicate_audio_across_commits(self, client, headers, api_repository, blob_store):
        branch_id = api_repository["branches"][0]["id"]
        stems = [{"trackName": "Kick", "trackIndex": 0}]

        first = await post_commit(
            client, headers, api_repository, branch_id, "A", stems,
            files={"stem_0_audio": ("kick.wav", KICK, "audio/wav")}
        )
        second = await post_commit(
            client, headers, api_repository, branch_id, "B", stems,
            files={"stem_0_audio": ("kick-again.wav", KICK, "audio/wav")}
        )
        assert second.json()["commit"]["parent_commit_id"] == first.json()["commit"]["id"]

        detail = await client.get(f"/api/commits/{second.json()['commit']['id']}", headers=headers)
        assert detail.status_code == 200
        audio_file = detail.json()["stems"][0]["audio_file"]
        assert audio_file["content_hash"] == compute_content_hash(KICK)
        assert audio_file["reference_count"] == 2
        assert blob_store.put_count == 1

    async def test_partial_failure_returns_207(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]

        response = await post_commit(
            client, headers, api_repository, branch_id, "Missing bass file",
            [
                {"trackName": "Kick", "trackIndex": 0},
                {"trackName": "Bass", "trackIndex": 1, "stemType": "audio"},
            ],
            files={"stem_0_audio": ("kick.wav", KICK, "audio/wav")}
        )

        assert response.status_code == 207
        body = response.json()
        assert body["error"] == "PartialStemFailure"
        assert len(body["stems"]) == 1
        assert body["failures"][0]["stem_index"] == 1
        assert body["failures"][0]["track_name"] == "Bass"

        history = await client.get(f"/api/branches/{branch_id}/commits", headers=headers)
        assert history.json()["branch"]["head_commit_id"] == body["commit"]["id"]

    async def test_invalid_stems_data(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]

        response = await client.post(
            "/api/commits",
            data={
                "repositoryId": api_repository["id"],
                "branchId": branch_id,
                "message": "Broken",
                "stemsData": "{not json",
            },
            headers=headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"

    async def test_branch_from_other_repository(self, client, headers, api_repository):
        other = await client.post(
            "/api/repositories",
            json={"projectId": str(uuid.uuid4()), "projectName": "Other"},
            headers=headers
        )

        response = await post_commit(
            client, headers, api_repository, other.json()["branches"][0]["id"], "Wrong branch", []
        )
        assert response.status_code == 404

    async def test_lineage_and_history(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]
        ids = []
        for n in range(3):
            response = await post_commit(
                client, headers, api_repository, branch_id, f"Take {n}",
                [{"trackName": "Lead", "trackIndex": 0, "stemType": "midi", "midiData": {"notes": [n]}}]
            )
            ids.append(response.json()["commit"]["id"])

        lineage = await client.get(f"/api/commits/{ids[-1]}/lineage", headers=headers)
        assert [c["id"] for c in lineage.json()] == list(reversed(ids))

        history = await client.get(
            f"/api/repositories/{api_repository['id']}/commits",
            params={"branchId": branch_id},
            headers=headers
        )
        assert [c["id"] for c in history.json()] == list(reversed(ids))


@pytest.mark.integration
class TestBranchEndpoints:
    """Test branch creation over HTTP"""

    async def test_create_branch_and_conflict(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]
        commit = await post_commit(client, headers, api_repository, branch_id, "Base", [])
        commit_id = commit.json()["commit"]["id"]

        body = {"repositoryId": api_repository["id"], "name": "remix", "sourceCommitId": commit_id}
        created = await client.post("/api/branches", json=body, headers=headers)
        assert created.status_code == 201
        assert created.json()["head_commit_id"] == commit_id

        duplicate = await client.post("/api/branches", json=body, headers=headers)
        assert duplicate.status_code == 409

    async def test_invalid_branch_body(self, client, headers, api_repository):
        response = await client.post(
            "/api/branches",
            json={"repositoryId": api_repository["id"], "name": ""},
            headers=headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"


@pytest.mark.integration
class TestCloneEndpoint:
    """Test archive download"""

    async def test_clone_streams_zip(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]
        stems = [{"trackName": "Kick", "trackIndex": 0}, {"trackName": "Bass", "trackIndex": 1}]
        files = {
            "stem_0_audio": ("kick.wav", KICK, "audio/wav"),
            "stem_1_audio": ("bass.flac", BASS, "audio/flac"),
        }
        await post_commit(client, headers, api_repository, branch_id, "A", stems, files=files)
        await post_commit(client, headers, api_repository, branch_id, "B", stems, files=files)

        response = await client.post(f"/api/repositories/{api_repository['id']}/clone", headers=headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert 'filename="Night_Drive_main.zip"' in response.headers["content-disposition"]
        assert response.headers["x-archive-status"] == "complete"

        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            names = sorted(zf.namelist())
            manifest = json.loads(zf.read("project.json"))

        assert names == sorted([
            "project.json",
            f"stems/{compute_content_hash(KICK)}.wav",
            f"stems/{compute_content_hash(BASS)}.flac",
        ])
        assert [c["message"] for c in manifest["commits"]] == ["A", "B"]

    async def test_clone_is_not_gzipped_again(self, client, headers, api_repository):
        branch_id = api_repository["branches"][0]["id"]
        room = os.urandom(16 * 1024)
        await post_commit(
            client, headers, api_repository, branch_id, "Room tone",
            [{"trackName": "Room", "trackIndex": 0}],
            files={"stem_0_audio": ("room.wav", room, "audio/wav")}
        )

        response = await client.post(
            f"/api/repositories/{api_repository['id']}/clone",
            headers={**headers, "Accept-Encoding": "gzip"}
        )

        assert response.status_code == 200
        assert "content-encoding" not in response.headers
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert zf.read(f"stems/{compute_content_hash(room)}.wav") == room

    async def test_clone_unknown_branch(self, client, headers, api_repository):
        response = await client.post(
            f"/api/repositories/{api_repository['id']}/clone",
            params={"branchId": str(uuid.uuid4())},
            headers=headers
        )
        assert response.status_code == 404


@pytest.mark.integration
async def test_health_reports_database(client, db_manager, monkeypatch):
    monkeypatch.setattr("stemvault.main.database_manager", db_manager)

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["services"]["database"] == "healthy"
