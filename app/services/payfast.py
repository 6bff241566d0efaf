"""PayFast adapters: payout submission and ITN origin checks.

The production adapter posts signed form data with ``httpx``; the sandbox adapter
simulates a successful transfer. Both expose the same ``submit`` coroutine so the
payout worker never branches on mode.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import socket
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

import httpx

from app.config import PAYFAST_VALID_HOSTS, Settings
from app.models import FreelancerBankAccount
from app.services.signature import sign_payload
from app.utils.errors import TransientError
from app.utils.money import format_amount
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

PAYOUT_PATH = "/eng/process/payout"


@dataclass(frozen=True)
class PayoutResult:
    success: bool
    provider_ref: str | None = None
    message: str | None = None


class PayoutClient(Protocol):
    async def submit(self, payload: dict[str, str]) -> PayoutResult: ...


def payout_reference(job_reference: str, item_id: int) -> str:
    return f"TW-{job_reference}-{item_id}"


def build_payout_payload(
    settings: Settings,
    *,
    amount: Decimal,
    bank_account: FreelancerBankAccount,
    reference: str,
    timestamp: datetime | None = None,
) -> dict[str, str]:
    """Signed form fields for one payout request."""

    fields = {
        "merchant_id": settings.PAYFAST_MERCHANT_ID,
        "merchant_key": settings.PAYFAST_MERCHANT_KEY,
        "timestamp": (timestamp or utcnow()).isoformat(),
        "amount": format_amount(amount),
        "bank_name": bank_account.bank_name,
        "account_number": bank_account.account_number,
        "branch_code": bank_account.branch_code,
        "account_holder": bank_account.account_holder_name,
        "reference": reference,
    }
    return sign_payload(fields, settings.PAYFAST_PASSPHRASE)


class PayFastPayoutClient:
    """Submits payouts to the live (or sandbox host) PayFast API."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = settings.payfast_base_url
        self.timeout = settings.PAYOUT_HTTP_TIMEOUT_SECONDS
        self._transport = transport

    async def submit(self, payload: dict[str, str]) -> PayoutResult:
        url = f"{self.base_url}{PAYOUT_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, data=payload)
        except httpx.TransportError as exc:
            logger.warning("Payout transport error", extra={"reference": payload.get("reference"), "error": str(exc)})
            raise TransientError(f"Provider unreachable: {exc.__class__.__name__}") from exc

        if response.status_code >= 500:
            raise TransientError(f"Provider returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success and body.get("status") == "success":
            ref = body.get("transaction_id") or body.get("reference")
            if ref:
                return PayoutResult(success=True, provider_ref=str(ref))
            return PayoutResult(success=False, message="provider reported success without a reference")
        message = body.get("message") or f"HTTP {response.status_code}"
        return PayoutResult(success=False, message=str(message))


class SandboxPayoutClient:
    """Simulated provider: answers success with an ``SB-`` reference after a short delay."""

    def __init__(self, settings: Settings) -> None:
        self.delay = settings.SANDBOX_PAYOUT_DELAY_SECONDS

    async def submit(self, payload: dict[str, str]) -> PayoutResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        ref = f"SB-{time.time_ns() // 1_000_000}-{secrets.token_hex(5)[:9]}"
        logger.info("Sandbox payout simulated", extra={"reference": payload.get("reference"), "provider_ref": ref})
        return PayoutResult(success=True, provider_ref=ref)


def payout_client_for(settings: Settings) -> PayoutClient:
    if settings.is_production:
        return PayFastPayoutClient(settings)
    return SandboxPayoutClient(settings)


async def resolve_provider_addresses(hosts: tuple[str, ...] = PAYFAST_VALID_HOSTS) -> set[str]:
    loop = asyncio.get_running_loop()
    addresses: set[str] = set()
    for host in hosts:
        try:
            infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        except socket.gaierror:
            logger.warning("Could not resolve provider host", extra={"host": host})
            continue
        addresses.update(info[4][0] for info in infos)
    return addresses


async def is_valid_origin(address: str | None, hosts: tuple[str, ...] = PAYFAST_VALID_HOSTS) -> bool:
    """True when ``address`` is one of the IPs the provider's host names resolve to."""

    if not address:
        return False
    return address in await resolve_provider_addresses(hosts)


__all__ = [
    "PAYOUT_PATH",
    "PayoutResult",
    "PayoutClient",
    "payout_reference",
    "build_payout_payload",
    "PayFastPayoutClient",
    "SandboxPayoutClient",
    "payout_client_for",
    "resolve_provider_addresses",
    "is_valid_origin",
]
