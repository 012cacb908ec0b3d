"""Integration tests for the generation endpoint.

Tests for POST /api/v1/generate - evidence validation, tier authorization
and background job creation, over HTTP against the ASGI app.

Run with:
    pytest tests/integration/test_api_generate.py -v
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from app.auth.session_token import SESSION_COOKIE, create_session_token
from app.database import Database
from app.main import create_app, install_services
from app.services.gate import LOGIN_REQUIRED, PAYMENT_REQUIRED
from app.services.jobs import JobStatus
from tests.utils.fakes import VALID_EVIDENCE, evidence, paid, unpaid

GENERATE_URL = "/api/v1/generate"


@pytest.mark.integration
class TestStandardGeneration:
    """Requests without premium control fields."""

    async def test_anonymous_standard_run(self, test_client, jobs, pipeline):
        response = await test_client.post(GENERATE_URL, json=VALID_EVIDENCE)

        assert response.status_code == 202
        data = response.json()
        assert data["premium"] is False
        assert "credits_remaining" not in data

        job = jobs.get_job(data["job_id"])
        assert job.kind == "generate"
        assert job.status == JobStatus.DONE
        assert pipeline.calls == [(VALID_EVIDENCE, False)]

    async def test_logged_in_standard_run_keeps_credits(
        self, test_client, ledger, auth_headers
    ):
        await ledger.award("bob", "cs_b")
        response = await test_client.post(
            GENERATE_URL, json=VALID_EVIDENCE, headers=auth_headers("bob")
        )

        assert response.status_code == 202
        assert response.json()["premium"] is False
        assert await ledger.get_balance("bob") == 5

    async def test_invalid_token_is_anonymous(self, test_client):
        response = await test_client.post(
            GENERATE_URL,
            json=VALID_EVIDENCE,
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 202

    async def test_non_boolean_premium_flag_is_standard(self, test_client, ledger, auth_headers):
        await ledger.award("bob", "cs_b")
        response = await test_client.post(
            GENERATE_URL, json=evidence(_premium="true"), headers=auth_headers("bob")
        )

        assert response.status_code == 202
        assert response.json()["premium"] is False
        assert await ledger.get_balance("bob") == 5


@pytest.mark.integration
class TestInvalidEvidence:
    """Malformed bodies are 400 and never touch credits."""

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"timeframe": {"start_date": "2025-01-01"}, "contributions": []},
            {"timeframe": {"start_date": "2025-12-31", "end_date": "2025-01-01"}, "contributions": []},
            {"timeframe": {"start_date": "2025-01-01", "end_date": "2025-12-31"}},
        ],
    )
    async def test_invalid_evidence(self, test_client, body):
        response = await test_client.post(GENERATE_URL, json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid evidence"
        assert data["detail"]

    async def test_not_json(self, test_client):
        response = await test_client.post(
            GENERATE_URL, content=b"{nope", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid evidence"

    async def test_not_utf8(self, test_client):
        """Undecodable bytes are a malformed body, not a server error."""
        response = await test_client.post(
            GENERATE_URL,
            content=b'{"timeframe": "\xff\xfe"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid evidence"
        assert data["detail"].startswith("Body is not valid JSON")

    async def test_json_array(self, test_client):
        response = await test_client.post(GENERATE_URL, json=[VALID_EVIDENCE])
        assert response.status_code == 400

    async def test_invalid_premium_request_keeps_credit(
        self, test_client, ledger, verifier, jobs, auth_headers
    ):
        """Validation runs before the gate, so a bad body costs nothing."""
        await ledger.award("bob", "cs_b")
        verifier.responses["cs_alice"] = paid("alice")

        bob = await test_client.post(
            GENERATE_URL, json={"_premium": True}, headers=auth_headers("bob")
        )
        alice = await test_client.post(
            GENERATE_URL, json={"_payment_session_id": "cs_alice"}, headers=auth_headers("alice")
        )

        assert bob.status_code == 400
        assert alice.status_code == 400
        assert await ledger.get_balance("bob") == 5
        assert verifier.calls == []
        assert await ledger.has_event("cs_alice") is False
        assert len(jobs) == 0


@pytest.mark.integration
class TestPremiumGeneration:
    """Premium requests through the HTTP boundary."""

    async def test_anonymous_premium_is_401(self, test_client, jobs, verifier):
        verifier.responses["cs_1"] = paid("alice")
        for control in ({"_premium": True}, {"_payment_session_id": "cs_1"}):
            response = await test_client.post(GENERATE_URL, json=evidence(**control))

            assert response.status_code == 401
            assert response.json()["error"] == LOGIN_REQUIRED
            assert response.headers["WWW-Authenticate"] == "Bearer"
        assert verifier.calls == []
        assert len(jobs) == 0

    async def test_first_premium_run_with_paid_session(
        self, test_client, ledger, verifier, jobs, pipeline, auth_headers
    ):
        verifier.responses["cs_alice"] = paid("alice")
        response = await test_client.post(
            GENERATE_URL,
            json=evidence(_payment_session_id="cs_alice"),
            headers=auth_headers("alice"),
        )

        assert response.status_code == 202
        data = response.json()
        assert data["premium"] is True
        assert data["credits_remaining"] == 4
        assert jobs.get_job(data["job_id"]).kind == "generate-premium"
        assert pipeline.calls == [(VALID_EVIDENCE, True)]

    async def test_session_cookie_authenticates(self, test_client, ledger, settings):
        await ledger.award("bob", "cs_b")
        test_client.cookies.set(SESSION_COOKIE, create_session_token("bob", settings))
        response = await test_client.post(GENERATE_URL, json=evidence(_premium=True))

        assert response.status_code == 202
        assert response.json()["credits_remaining"] == 4

    async def test_credits_run_out(self, test_client, ledger, auth_headers):
        await ledger.award("bob", "cs_b")
        remaining = []
        for _ in range(5):
            response = await test_client.post(
                GENERATE_URL, json=evidence(_premium=True), headers=auth_headers("bob")
            )
            assert response.status_code == 202
            remaining.append(response.json()["credits_remaining"])

        response = await test_client.post(
            GENERATE_URL, json=evidence(_premium=True), headers=auth_headers("bob")
        )

        assert remaining == [4, 3, 2, 1, 0]
        assert response.status_code == 402
        assert response.json() == {"error": PAYMENT_REQUIRED, "detail": None}

    @pytest.mark.parametrize(
        "owner_response",
        [paid("eve"), unpaid("dave"), RuntimeError("provider down")],
    )
    async def test_payment_denials_are_indistinguishable(
        self, test_client, ledger, verifier, jobs, auth_headers, owner_response
    ):
        verifier.responses["cs_x"] = owner_response
        response = await test_client.post(
            GENERATE_URL,
            json=evidence(_payment_session_id="cs_x"),
            headers=auth_headers("dave"),
        )

        assert response.status_code == 402
        assert response.json() == {"error": PAYMENT_REQUIRED, "detail": None}
        assert await ledger.has_event("cs_x") is False
        assert len(jobs) == 0

    async def test_concurrent_requests_for_last_credit(
        self, test_client, ledger, jobs, auth_headers
    ):
        """Five simultaneous premium requests on one credit: one 202, four 402."""
        await ledger.award("carol", "cs_c", count=1)
        headers = auth_headers("carol")

        responses = await asyncio.gather(
            *(
                test_client.post(GENERATE_URL, json=evidence(_premium=True), headers=headers)
                for _ in range(5)
            )
        )

        codes = sorted(r.status_code for r in responses)
        assert codes == [202, 402, 402, 402, 402]
        assert await ledger.get_balance("carol") == 0
        assert len(jobs) == 1

    async def test_control_fields_never_reach_pipeline(
        self, test_client, ledger, verifier, pipeline, auth_headers
    ):
        verifier.responses["cs_alice"] = paid("alice")
        body = evidence(
            _payment_session_id="cs_alice",
            _premium=True,
            _stripe_session_id="cs_other",
            user={"login": "alice"},
        )
        response = await test_client.post(GENERATE_URL, json=body, headers=auth_headers("alice"))

        assert response.status_code == 202
        sent, premium = pipeline.calls[0]
        assert premium is True
        assert sent == {**VALID_EVIDENCE, "user": {"login": "alice"}}


@pytest.mark.integration
class TestLedgerOutage:
    """An unreachable ledger is a 500, and never a free premium run."""

    @pytest.fixture
    async def broken_client(self, tmp_path, settings, verifier, pipeline, jobs):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'gone' / 'credits.db'}")
        database.open()
        application = create_app(settings)
        install_services(
            application,
            settings=settings,
            db=database,
            verifier=verifier,
            pipeline=pipeline,
            jobs=jobs,
        )
        async with AsyncClient(
            transport=ASGITransport(app=application),
            base_url="http://test",
        ) as ac:
            yield ac
        await database.close()

    async def test_premium_request_is_500(self, broken_client, jobs, pipeline, auth_headers):
        response = await broken_client.post(
            GENERATE_URL, json=evidence(_premium=True), headers=auth_headers("bob")
        )

        assert response.status_code == 500
        assert response.json()["error"] == "Credit ledger unavailable"
        assert len(jobs) == 0
        assert pipeline.calls == []

    async def test_standard_request_still_served(self, broken_client):
        response = await broken_client.post(GENERATE_URL, json=VALID_EVIDENCE)
        assert response.status_code == 202
