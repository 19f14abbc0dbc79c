"""
Payment gateway protocol and the Mercado Pago implementation.

Handlers only see `PaymentGateway`; the SDK is confined to this module.
"""
from typing import Any, Dict, Optional, Protocol, Union

import mercadopago

from .logging import get_logger

logger = get_logger("gateway")


class GatewayError(Exception):
    """The gateway rejected a request or could not be reached."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class PaymentGateway(Protocol):
    def create_preference(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a hosted checkout preference; returns the gateway's preference object."""
        ...

    def create_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a direct payment (PIX); returns the gateway's payment object."""
        ...

    def get_payment(self, payment_id: Union[str, int]) -> Dict[str, Any]:
        """Fetch the current state of a payment."""
        ...


class MercadoPagoGateway:
    """PaymentGateway backed by the official `mercadopago` SDK."""

    def __init__(self, access_token: str, sdk: Optional[Any] = None):
        if not access_token:
            raise GatewayError("MP_ACCESS_TOKEN not configured")
        self.sdk = sdk or mercadopago.SDK(access_token)

    @staticmethod
    def _unwrap(result: Dict[str, Any], action: str) -> Dict[str, Any]:
        # the SDK returns {"status": <http status>, "response": <body>} instead of raising
        status = result.get("status")
        body = result.get("response")
        if not isinstance(status, int) or status >= 400 or not isinstance(body, dict):
            logger.error("gateway.request_failed", extra={"action": action, "status": status})
            raise GatewayError(f"Mercado Pago {action} failed", status=status, body=body)
        return body

    def create_preference(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.sdk.preference().create(data)
        except Exception as e:
            raise GatewayError(f"Mercado Pago create_preference failed: {e}") from e
        return self._unwrap(result, "create_preference")

    def create_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.sdk.payment().create(data)
        except Exception as e:
            raise GatewayError(f"Mercado Pago create_payment failed: {e}") from e
        return self._unwrap(result, "create_payment")

    def get_payment(self, payment_id: Union[str, int]) -> Dict[str, Any]:
        try:
            result = self.sdk.payment().get(payment_id)
        except Exception as e:
            raise GatewayError(f"Mercado Pago get_payment failed: {e}") from e
        return self._unwrap(result, "get_payment")
