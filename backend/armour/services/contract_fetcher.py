"""Download uploaded contracts from our own storage origin, with size and type limits."""

import ipaddress
import logging
from typing import List, Optional
from urllib.parse import urlparse

import httpx

from armour.config import settings
from armour.errors import BadRequest, PayloadTooLarge, ExternalServiceError

logger = logging.getLogger(__name__)

ALLOWED_CONTRACT_MIME = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

TOO_LARGE_MESSAGE = "Contract file is too large. Max size is 15MB."


def is_private_ip(host: str) -> bool:
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


def allowed_storage_origins() -> List[str]:
    origins = settings.allowed_storage_origins or [settings.public_base_url]
    return [o.rstrip("/") for o in origins if o]


def is_allowed_contract_url(url: str) -> bool:
    """Only storage object URLs on an allowed origin, over https (http in development)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    schemes = {"https", "http"} if settings.is_development else {"https"}
    if parsed.scheme not in schemes or not parsed.hostname:
        return False
    if is_private_ip(parsed.hostname):
        return False
    origin = f"{parsed.scheme}://{parsed.netloc}"
    if origin not in allowed_storage_origins():
        return False
    return "/storage/v1/object" in parsed.path


class ContractFetcher:
    """Downloads a contract file into memory."""

    def __init__(
        self,
        max_bytes: int = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_bytes = max_bytes or settings.max_contract_bytes
        self.timeout = timeout or settings.contract_download_timeout
        self.transport = transport

    async def fetch(self, url: str) -> bytes:
        if not is_allowed_contract_url(url):
            raise BadRequest("Invalid contract URL. Please upload via Creator Armour and try again.")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise ExternalServiceError("Failed to download contract file", status_code=response.status_code)

                    length = response.headers.get("content-length")
                    if length and length.isdigit() and int(length) > self.max_bytes:
                        raise PayloadTooLarge(TOO_LARGE_MESSAGE)

                    content_type = response.headers.get("content-type", "")
                    mime = content_type.split(";")[0].strip()
                    if mime and mime not in ALLOWED_CONTRACT_MIME:
                        raise BadRequest("Unsupported contract file type. Use PDF or DOCX.")

                    chunks = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_bytes:
                            raise PayloadTooLarge(TOO_LARGE_MESSAGE)
                        chunks.append(chunk)
            except httpx.HTTPError as e:
                logger.error(f"[Protection] Contract download failed: {e}")
                raise ExternalServiceError(f"Failed to download contract file: {e}") from e

        data = b"".join(chunks)
        logger.info(f"[Protection] Downloaded contract ({len(data)} bytes)")
        return data


def get_contract_fetcher() -> ContractFetcher:
    return ContractFetcher()
