"""Integration tests for the HTTP API.

Runs the app in-process through httpx's ASGITransport. Services are wired
onto app.state by start_services against a per-test SQLite database.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fortyfive.api.errors import error_response_for
from fortyfive.app import app, start_services, stop_services
from fortyfive.core.config import Settings
from fortyfive.models.generation import GenerationStatus
from fortyfive.models.template import Template
from fortyfive.models.user import User
from fortyfive.services.exceptions import (
    InsufficientCreditsError,
    NoImagesProduced,
    QueueFullError,
    SafetyError,
    ServiceError,
    TemplateNotFound,
)
from fortyfive.services.image_generation.provider import MOCK_IMAGE_URLS
from fortyfive.workers.job_queue import Job, new_job_id

IMAGE = b"\x89PNG fake image bytes"


@pytest_asyncio.fixture
async def services(tmp_path):
    """Start queue, workers and database the way the lifespan does."""
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        app_env="test",
        image_provider="mock",
        queue_capacity=2,
        worker_count=1,
        max_image_bytes=1024,
        shutdown_timeout_seconds=5,
    )
    await start_services(app, settings)
    yield app.state
    await stop_services(app)


@pytest_asyncio.fixture
async def test_client(services):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def seeded(services):
    """A user with 50 credits and two templates (one inactive)."""
    async with await services.uow_factory() as uow:
        user = await uow.users.add(User(wechat_openid="openid-api", nickname="Api", credits=50))
        template = await uow.templates.add(Template(name="Ghibli", credit_cost=20))
        await uow.templates.add(Template(name="Retired", credit_cost=5, is_active=False))
    return {"user": user, "template": template, "headers": {"X-User-Id": str(user.id)}}


def upload(template_id: int, image: bytes = IMAGE):
    return {
        "data": {"template_id": str(template_id)},
        "files": {"image": ("face.png", image, "image/png")},
    }


async def poll_status(client, job_id: str, headers: dict, timeout: float = 5.0) -> dict:
    async def poll():
        while True:
            response = await client.get(f"/api/v1/generate/{job_id}/status", headers=headers)
            assert response.status_code == 200
            body = response.json()
            if body["status"] in ("completed", "failed"):
                return body
            await asyncio.sleep(0.02)

    return await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
class TestGenerationEndpoints:
    async def test_submit_then_poll_to_completion(self, test_client, services, seeded):
        headers = seeded["headers"]

        response = await test_client.post(
            "/api/v1/generate", headers=headers, **upload(seeded["template"].id)
        )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "pending"
        assert len(data["job_id"]) == 32

        status_body = await poll_status(test_client, data["job_id"], headers)
        assert status_body["status"] == "completed"
        assert status_body["progress"] == 100
        assert status_body["image_url"] == MOCK_IMAGE_URLS[0]

        result = await test_client.get(f"/api/v1/generate/{data['job_id']}", headers=headers)
        assert result.status_code == 200
        assert result.json() == {
            "job_id": data["job_id"],
            "image_url": MOCK_IMAGE_URLS[0],
            "status": "completed",
        }

        # Shutdown waits for the worker to finish charging for the job
        await services.worker_pool.shutdown(timeout=5)
        me = await test_client.get("/api/v1/me", headers=headers)
        assert me.json()["credits"] == 30

    async def test_submit_requires_identity(self, test_client, seeded):
        response = await test_client.post("/api/v1/generate", **upload(seeded["template"].id))
        assert response.status_code == 401

    async def test_submit_empty_image(self, test_client, seeded):
        response = await test_client.post(
            "/api/v1/generate", headers=seeded["headers"], **upload(seeded["template"].id, b"")
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_submit_when_queue_full(self, test_client, services, seeded):
        # With the worker stopped nothing drains the buffer
        await services.worker_pool.shutdown(timeout=5)
        for _ in range(2):
            services.job_queue.submit(
                Job(job_id=new_job_id(), user_id=1, template_id=1, image_data=b"x")
            )

        response = await test_client.post(
            "/api/v1/generate", headers=seeded["headers"], **upload(seeded["template"].id)
        )

        assert response.status_code == 503
        assert response.json()["error"] == "QUEUE_FULL"

    async def test_status_unknown_job(self, test_client, seeded):
        response = await test_client.get(
            f"/api/v1/generate/{'0' * 32}/status", headers=seeded["headers"]
        )
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_result_not_completed(self, test_client, services, seeded):
        # No worker may pick the job up
        await services.worker_pool.shutdown(timeout=5)
        job_id = await services.generation_service.submit_job(
            seeded["user"].id, seeded["template"].id, IMAGE
        )
        async with await services.uow_factory() as uow:
            generation = await uow.generations.get_by_job_id(job_id)
            assert generation is not None
            await uow.generations.update_status(job_id, GenerationStatus.PROCESSING, 50)

        response = await test_client.get(f"/api/v1/generate/{job_id}", headers=seeded["headers"])
        assert response.status_code == 409
        assert response.json()["error"] == "NOT_COMPLETED"

    async def test_sync_generation(self, test_client, seeded):
        response = await test_client.post(
            "/api/v1/generate/sync", headers=seeded["headers"], **upload(seeded["template"].id)
        )

        assert response.status_code == 200
        assert response.json() == {"images": list(MOCK_IMAGE_URLS), "credits_used": 20}

    async def test_sync_insufficient_credits(self, test_client, services, seeded):
        async with await services.uow_factory() as uow:
            await uow.users.adjust_credits(seeded["user"].id, -40)

        response = await test_client.post(
            "/api/v1/generate/sync", headers=seeded["headers"], **upload(seeded["template"].id)
        )
        assert response.status_code == 402
        assert response.json()["error"] == "INSUFFICIENT_CREDITS"

    async def test_sync_unknown_template(self, test_client, seeded):
        response = await test_client.post(
            "/api/v1/generate/sync", headers=seeded["headers"], **upload(999)
        )
        assert response.status_code == 404

    async def test_history_newest_first(self, test_client, services, seeded):
        ids = [
            await services.generation_service.submit_job(
                seeded["user"].id, seeded["template"].id, IMAGE
            )
            for _ in range(2)
        ]

        response = await test_client.get(
            "/api/v1/generate/history", headers=seeded["headers"], params={"limit": 10}
        )

        assert response.status_code == 200
        assert [g["job_id"] for g in response.json()["generations"]] == ids[::-1]


@pytest.mark.asyncio
class TestTemplateEndpoints:
    async def test_list_active_only(self, test_client, seeded):
        response = await test_client.get("/api/v1/templates")

        assert response.status_code == 200
        assert [t["name"] for t in response.json()] == ["Ghibli"]

    async def test_get_template(self, test_client, seeded):
        response = await test_client.get(f"/api/v1/templates/{seeded['template'].id}")
        assert response.status_code == 200
        assert response.json()["credit_cost"] == 20

    async def test_get_unknown_template(self, test_client, seeded):
        response = await test_client.get("/api/v1/templates/999")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestAccountEndpoints:
    async def test_profile(self, test_client, seeded):
        response = await test_client.get("/api/v1/me", headers=seeded["headers"])

        assert response.status_code == 200
        assert response.json()["credits"] == 50
        assert response.json()["nickname"] == "Api"

    async def test_profile_unknown_user(self, test_client, seeded):
        response = await test_client.get("/api/v1/me", headers={"X-User-Id": "9999"})
        assert response.status_code == 404

    async def test_invalid_identity_header(self, test_client, seeded):
        response = await test_client.get("/api/v1/me", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

    async def test_wechat_purchase(self, test_client, seeded):
        response = await test_client.post(
            "/api/v1/billing/purchase",
            headers=seeded["headers"],
            json={"payment_method": "wechat", "amount": 5},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["credits_added"] == 50
        assert data["new_balance"] == 100
        assert data["external_payment_id"].startswith(f"MOCK_{seeded['user'].id}_")

    @pytest.mark.parametrize(
        ("product_id", "expected"),
        [("com.45ai.credits.120", 120), ("com.45ai.credits.unknown", 100)],
    )
    async def test_apple_purchase(self, test_client, seeded, product_id, expected):
        response = await test_client.post(
            "/api/v1/billing/purchase",
            headers=seeded["headers"],
            json={"payment_method": "apple", "product_id": product_id},
        )

        assert response.status_code == 200
        assert response.json()["credits_added"] == expected

    async def test_wechat_purchase_requires_amount(self, test_client, seeded):
        response = await test_client.post(
            "/api/v1/billing/purchase",
            headers=seeded["headers"],
            json={"payment_method": "wechat"},
        )
        assert response.status_code == 422

    async def test_transactions_after_purchase(self, test_client, seeded):
        headers = seeded["headers"]
        await test_client.post(
            "/api/v1/billing/purchase",
            headers=headers,
            json={"payment_method": "wechat", "amount": 1},
        )
        await test_client.post(
            "/api/v1/generate/sync", headers=headers, **upload(seeded["template"].id)
        )

        response = await test_client.get(
            "/api/v1/me/transactions", headers=headers, params={"limit": 0}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["limit"] == 10
        assert [t["type"] for t in data["transactions"]] == ["generation", "purchase"]
        assert [t["amount"] for t in data["transactions"]] == [-20, 10]


@pytest.mark.asyncio
async def test_health_check(test_client):
    response = await test_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (SafetyError("flagged"), (422, "UNSAFE_CONTENT")),
        (InsufficientCreditsError(1, 5, 20), (402, "INSUFFICIENT_CREDITS")),
        (TemplateNotFound(9), (404, "NOT_FOUND")),
        (NoImagesProduced(), (502, "GENERATION_FAILED")),
        (QueueFullError(2), (503, "QUEUE_FULL")),
        (ServiceError("other"), (500, "INTERNAL_ERROR")),
    ],
)
def test_error_response_mapping(error, expected):
    assert error_response_for(error) == expected
