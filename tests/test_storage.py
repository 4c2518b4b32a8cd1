import time

import httpx
import pytest

from armour.errors import BadRequest, ExternalServiceError, PayloadTooLarge
from armour.services.contract_fetcher import ContractFetcher, is_allowed_contract_url, is_private_ip

PUBLIC_URL = "https://files.creatorarmour.test/storage/v1/object/public/contracts/user-creator/deal.pdf"


class TestStorageService:
    def test_upload_returns_public_url(self, storage):
        url = storage.upload("contracts/user-creator/deal.pdf", b"%PDF", "application/pdf")

        assert url == PUBLIC_URL
        assert storage.path_from_url(url) == "contracts/user-creator/deal.pdf"
        assert storage.read("contracts/user-creator/deal.pdf") == b"%PDF"

    def test_path_from_url_variants(self, storage):
        assert storage.path_from_url("contracts/a%20b.pdf") == "contracts/a b.pdf"
        assert storage.path_from_url("https://files.creatorarmour.test/storage/object/reports/r.pdf?expires=1") == "reports/r.pdf"
        assert storage.path_from_url("https://cdn.example.com/bucket/folder/file.pdf") == "folder/file.pdf"
        assert storage.path_from_url("") is None

    def test_paths_cannot_escape_root(self, storage):
        with pytest.raises(ValueError):
            storage.upload("../outside.txt", b"x")
        with pytest.raises(ValueError):
            storage.read("../../etc/passwd")

    def test_signed_urls(self, storage):
        url = storage.signed_url("reports/r.pdf", expires_in=60)
        query = dict(part.split("=") for part in url.split("?", 1)[1].split("&"))

        assert storage.verify_signature("reports/r.pdf", int(query["expires"]), query["signature"])
        assert not storage.verify_signature("reports/other.pdf", int(query["expires"]), query["signature"])
        assert not storage.verify_signature("reports/r.pdf", int(time.time()) - 1, query["signature"])


class TestContractUrlPolicy:
    def test_storage_object_urls_only(self):
        assert is_allowed_contract_url(PUBLIC_URL)
        assert not is_allowed_contract_url("https://files.creatorarmour.test/uploads/deal.pdf")
        assert not is_allowed_contract_url("https://evil.test/storage/v1/object/public/deal.pdf")
        assert not is_allowed_contract_url("http://files.creatorarmour.test/storage/v1/object/public/deal.pdf")
        assert not is_allowed_contract_url("not a url")

    def test_private_hosts(self):
        assert is_private_ip("127.0.0.1")
        assert is_private_ip("10.0.0.8")
        assert not is_private_ip("8.8.8.8")
        assert not is_private_ip("files.creatorarmour.test")


class TestContractFetcher:
    async def test_downloads_contract(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"})
        )
        assert await ContractFetcher(transport=transport).fetch(PUBLIC_URL) == b"%PDF-1.4"

    async def test_streamed_body_over_limit(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"x" * 64, headers={"content-type": "application/pdf"})
        )
        with pytest.raises(PayloadTooLarge):
            await ContractFetcher(max_bytes=32, transport=transport).fetch(PUBLIC_URL)

    async def test_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with pytest.raises(ExternalServiceError) as exc_info:
            await ContractFetcher(transport=transport).fetch(PUBLIC_URL)
        assert exc_info.value.status_code == 404

    async def test_connection_failure(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalServiceError, match="Failed to download contract file"):
            await ContractFetcher(transport=httpx.MockTransport(refuse)).fetch(PUBLIC_URL)

    async def test_rejects_foreign_url_before_downloading(self):
        calls = []
        transport = httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(200))
        with pytest.raises(BadRequest):
            await ContractFetcher(transport=transport).fetch("https://evil.test/storage/v1/object/public/x.pdf")
        assert calls == []
