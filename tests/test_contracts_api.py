import io
from datetime import datetime, timedelta

from docx import Document

from armour.auth import create_access_token
from armour.models import BrandDeal, ContractReadyToken, ContractSignature, Profile
from armour.services.contract_docx import DOCX_CONTENT_TYPE

from fakes import CREATOR, OTHER_USER

DEAL_ID = "deal-contract"


def complete_deal(**overrides):
    values = dict(
        id=DEAL_ID,
        creator_id=CREATOR.id,
        brand_name="Acme Foods Pvt Ltd",
        brand_address="12 MG Road, Bangalore, Karnataka 560001",
        brand_email="legal@acmefoods.test",
        deal_amount=50000,
        deliverables=["2 Instagram Reels", "3 Stories"],
        platform="Instagram",
    )
    values.update(overrides)
    return BrandDeal(**values)


def creator_profile():
    return Profile(
        id=CREATOR.id,
        first_name="Asha",
        last_name="Rao",
        email=CREATOR.email,
        location="Koramangala, Bangalore, Karnataka",
        role="creator",
    )


def docx_text(content: bytes) -> str:
    return "\n".join(p.text for p in Document(io.BytesIO(content)).paragraphs)


def signed(role, name):
    return ContractSignature(
        deal_id=DEAL_ID,
        signer_role=role,
        signed=True,
        signer_name=name,
        signed_at=datetime(2026, 3, 1, 10, 30),
        otp_verified_at=datetime(2026, 3, 1, 10, 29),
    )


class TestContractFromScratch:
    async def test_requires_deal_id(self, client):
        response = await client.post("/protection/generate-contract-from-scratch", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "dealId is required"

    async def test_incomplete_deal_lists_missing_fields(self, client, db):
        db.add(complete_deal(brand_address=None, brand_email="not specified"))
        await db.commit()

        response = await client.post("/protection/generate-contract-from-scratch", json={"dealId": DEAL_ID})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing required contract fields"
        assert "Brand registered address (full address required)" in body["missingFields"]
        assert "Brand email" in body["missingFields"]
        # No profile: the creator has neither a name nor an address
        assert "Creator full name" in body["missingFields"]
        assert body["message"].startswith("Please provide the following information")

    async def test_foreign_deal_is_denied(self, client, db):
        db.add(complete_deal(creator_id=OTHER_USER.id))
        await db.commit()

        response = await client.post("/protection/generate-contract-from-scratch", json={"dealId": DEAL_ID})
        assert response.status_code == 403

    async def test_uploads_and_updates_deal(self, client, db, storage):
        db.add(complete_deal())
        db.add(creator_profile())
        await db.commit()

        response = await client.post("/protection/generate-contract-from-scratch", json={"dealId": DEAL_ID})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["databaseUpdated"] is True
        assert body["contractVersion"] == "v3"
        assert body["contentType"] == DOCX_CONTENT_TYPE
        assert body["metadata"]["jurisdiction"] == "Bangalore"
        assert body["fileName"].startswith(f"CREATOR_BRAND_COLLABORATION_AGREEMENT_{DEAL_ID}_")

        path = storage.path_from_url(body["contractDocxUrl"])
        assert path.startswith(f"contracts/{DEAL_ID}/")
        text = docx_text(storage.read(path))
        assert "Acme Foods Pvt Ltd" in text
        assert "Courts of Bangalore, India" in text

        deal = await db.get(BrandDeal, DEAL_ID, populate_existing=True)
        assert deal.contract_file_url == body["contractDocxUrl"]
        assert deal.contract_version == "v3"
        assert deal.contract_metadata["jurisdiction"] == "Bangalore"


class TestContractDocx:
    async def test_streams_docx(self, client, db):
        db.add(complete_deal())
        db.add(creator_profile())
        db.add(signed("creator", "Asha Rao"))
        await db.commit()

        response = await client.post("/protection/generate-contract-docx", json={"dealId": DEAL_ID})

        assert response.status_code == 200
        assert response.headers["content-type"] == DOCX_CONTENT_TYPE
        assert "attachment" in response.headers["content-disposition"]
        assert response.content.startswith(b"PK")
        text = docx_text(response.content)
        assert "OTP Verified: 01 March 2026 10:29:00" in text
        assert "Status: Pending signature" in text


class TestPublicContractLinks:
    async def test_view_requires_token_or_login(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified", contract_html="<h1>Agreement</h1>"))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/view")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    async def test_view_with_contract_ready_token(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified", contract_html="<h1>Agreement</h1>"))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID, expires_at=datetime.utcnow() + timedelta(days=1)))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/view", params={"token": "token-1"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.text == "<h1>Agreement</h1>"

    async def test_revoked_token_is_rejected(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified", contract_html="<h1>Agreement</h1>"))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID, revoked_at=datetime.utcnow()))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/view", params={"token": "token-1"})
        assert response.status_code == 401

    async def test_view_before_acceptance(self, client, db):
        db.add(complete_deal(brand_response_status="pending", contract_html="<h1>Agreement</h1>"))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/view", params={"token": "token-1"})
        assert response.status_code == 403
        assert response.json()["error"] == "Contract is not yet available for viewing"

    async def test_unknown_deal(self, client):
        response = await client.get("/contracts/missing-deal/download-docx")
        assert response.status_code == 404
        assert response.json() == {"error": "Deal not found"}

    async def test_download_signed_contract_with_bearer_token(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified"))
        db.add(creator_profile())
        db.add(signed("brand", "Ravi Menon"))
        db.add(signed("creator", "Asha Rao"))
        await db.commit()

        response = await client.get(
            f"/contracts/{DEAL_ID}/download-docx",
            headers={"Authorization": f"Bearer {create_access_token(CREATOR.id)}"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == DOCX_CONTENT_TYPE
        text = docx_text(response.content)
        assert "Status: Pending signature" not in text
        assert "Executed At: 01 March 2026 10:30:00" in text

    async def test_other_users_bearer_token_is_rejected(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified"))
        await db.commit()

        response = await client.get(
            f"/contracts/{DEAL_ID}/download-docx",
            headers={"Authorization": f"Bearer {create_access_token(OTHER_USER.id)}"},
        )
        assert response.status_code == 401

    async def test_unsigned_legacy_contract_redirects(self, client, db):
        legacy_url = "https://files.creatorarmour.test/storage/v1/object/public/contracts/deal-contract/legacy.docx"
        db.add(complete_deal(brand_response_status="accepted_verified", contract_file_url=legacy_url))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/download-docx", params={"token": "token-1"})

        assert response.status_code == 302
        assert response.headers["location"] == legacy_url

    async def test_unsigned_without_file(self, client, db):
        db.add(complete_deal(brand_response_status="accepted_verified"))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/download-docx", params={"token": "token-1"})

        assert response.status_code == 404
        body = response.json()
        assert body["bothSigned"] is False
        assert body["contractFileUrl"] is None

    async def test_pending_deal_cannot_be_downloaded(self, client, db):
        db.add(complete_deal(brand_response_status="pending"))
        db.add(ContractReadyToken(id="token-1", deal_id=DEAL_ID))
        await db.commit()

        response = await client.get(f"/contracts/{DEAL_ID}/download-docx", params={"token": "token-1"})
        assert response.status_code == 403


class TestStorageRoutes:
    async def test_signed_download(self, client, storage):
        storage.upload("protection-reports/user-creator/report.pdf", b"%PDF-1.4 test", "application/pdf")
        url = storage.signed_url("protection-reports/user-creator/report.pdf")

        response = await client.get(url)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 test"

    async def test_bad_signature(self, client, storage):
        storage.upload("protection-reports/user-creator/report.pdf", b"%PDF", "application/pdf")
        response = await client.get(
            "/storage/object/protection-reports/user-creator/report.pdf",
            params={"expires": 9999999999, "signature": "forged"},
        )
        assert response.status_code == 403

    async def test_missing_public_object(self, client):
        response = await client.get("/storage/v1/object/public/contracts/none.pdf")
        assert response.status_code == 404
