"""Payment provider adapter.

The pipeline never talks to a real gateway. ``DummyPaymentProvider`` mints
funding intents and client secrets the way a card processor would, and checks
the HMAC signature the provider puts on its webhook calls. Funding itself
arrives later through the webhook (see EscrowService.handle_provider_event).
"""

from __future__ import annotations

import hashlib
import hmac
import uuid

from livestock_escrow.logging_config import get_logger

logger = get_logger(__name__)


class DummyPaymentProvider:
    """Stand-in payment processor."""

    name = "dummy"

    def __init__(self, webhook_secret: str = "") -> None:
        """Initialize the provider.

        Args:
            webhook_secret: Shared secret for webhook signatures. Empty disables
                verification.
        """
        self._webhook_secret = webhook_secret

    def create_intent(self, amount: object, currency: str) -> str:
        """Mint a new funding intent id."""
        intent_id = f"pi_{uuid.uuid4().hex}"
        logger.info(
            "payment.intent_created",
            intent_id=intent_id,
            amount=str(amount),
            currency=currency,
            simulated=True,
        )
        return intent_id

    @staticmethod
    def client_secret(intent_id: str) -> str:
        return f"secret_{intent_id}"

    @property
    def verifies_signatures(self) -> bool:
        return bool(self._webhook_secret)

    def sign(self, body: bytes) -> str:
        """Hex HMAC-SHA256 of a webhook body, as the provider would send it."""
        return hmac.new(self._webhook_secret.encode(), body, hashlib.sha256).hexdigest()

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Check a webhook signature. Always true when no secret is configured."""
        if not self.verifies_signatures:
            return True
        if not signature:
            return False
        return hmac.compare_digest(self.sign(body), signature.strip().lower())
