from dataclasses import dataclass
from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("payment_service")

SUCCESS_STATUSES = {"successful", "success", "paid", "completed", "captured"}


class PaymentError(Exception):
    """Payment gateway could not be reached or answered unexpectedly."""


@dataclass(frozen=True)
class PaymentAttempt:
    attempt_id: str
    status: str
    amount: Optional[str] = None
    currency: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status.strip().lower() in SUCCESS_STATUSES


class PaymentService:
    """Read-only client for payment attempt status."""

    def __init__(self, api_url: str, api_key: str = "", timeout_seconds: float = 10.0):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    async def lookup_attempt(self, attempt_id: str) -> Optional[PaymentAttempt]:
        """Return the attempt, or None when the gateway does not know it."""
        if not self.api_url:
            raise PaymentError("Payment API URL is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(f"{self.api_url}/attempts/{attempt_id}", headers=headers)
        except httpx.HTTPError as exc:
            raise PaymentError(f"Payment gateway unreachable: {exc}") from exc

        if response.status_code == 404:
            logger.info(f"Payment attempt not found: {attempt_id}")
            return None
        if response.status_code != 200:
            raise PaymentError(f"Payment gateway error: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise PaymentError(f"Malformed payment response: {exc}") from exc

        status = data.get("status")
        if not isinstance(status, str) or not status:
            raise PaymentError(f"Payment response has no status: {data}")

        amount = data.get("amount")
        return PaymentAttempt(
            attempt_id=str(data.get("id") or attempt_id),
            status=status,
            amount=str(amount) if amount is not None else None,
            currency=data.get("currency"),
        )
