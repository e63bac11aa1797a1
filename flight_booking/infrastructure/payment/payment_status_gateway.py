# flight_booking/infrastructure/payment/payment_status_gateway.py

import logging
import os

import httpx

from flight_booking.domain.exceptions import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.sandbox.midtrans.com"


class PaymentStatusGateway:
    """
    Read-only passthrough to the payment provider's transaction status API.

    GET {base_url}/v2/{order_id}/status, basic auth with the server key
    as user name and an empty password.
    """

    def __init__(
        self,
        server_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.server_key = server_key if server_key is not None else os.getenv("MIDTRANS_SERVER_KEY")
        self.base_url = (base_url or os.getenv("MIDTRANS_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout if timeout is not None else float(
            os.getenv("MIDTRANS_TIMEOUT_SECONDS", "10")
        )
        self._client = client

    def _http_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(timeout=self.timeout)

    def get_transaction_status(self, order_id: str) -> dict:
        if not self.server_key:
            raise UpstreamError(
                "Payment gateway server key not configured. Set MIDTRANS_SERVER_KEY."
            )

        url = f"{self.base_url}/v2/{order_id}/status"
        client = self._http_client()
        try:
            response = client.get(
                url,
                auth=(self.server_key, ""),
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Payment provider returned an error. order_id=%s status=%s",
                order_id,
                exc.response.status_code,
            )
            raise UpstreamError(
                f"Payment provider responded with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Payment provider unreachable. order_id=%s error=%s",
                order_id,
                exc,
            )
            raise UpstreamError(f"Payment provider request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError("Payment provider returned a non-JSON body") from exc
        finally:
            if client is not self._client:
                client.close()
