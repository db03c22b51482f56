"""Python client for the GatsisHub REST API.

The signed-in user is held on the client instance and nowhere else;
``logout()`` clears it and closes the HTTP session in one step.
"""
import logging
from typing import Any, Dict, Optional

import requests

from gatsishub.services.lifecycle import Action, available_actions
from gatsishub.utils.images import is_blank_signature

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Unable to reach the server. Please check your connection."


class ClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class GatsisHubClient:
    def __init__(self, base_url: str, user: Optional[Dict[str, Any]] = None, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.timeout = timeout
        self.session = session or requests.Session()

    # session

    def login(self, user: Dict[str, Any]) -> None:
        self.user = user

    def logout(self) -> None:
        self.user = None
        self.session.close()
        self.session = requests.Session()

    def _require_user(self) -> Dict[str, Any]:
        if not self.user or not self.user.get("id"):
            raise ClientError("You must be signed in to do this.")
        return self.user

    @property
    def customer_id(self) -> str:
        return str(self._require_user()["id"])

    # transport

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise ClientError(NETWORK_ERROR)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not resp.ok:
            message = body.get("error") if isinstance(body, dict) else None
            raise ClientError(
                message or f"Request failed with status {resp.status_code}",
                status_code=resp.status_code,
                details=body.get("details") if isinstance(body, dict) else None,
            )
        return body

    # orders

    def list_orders(self, page: int = 1, limit: int = 10, full: bool = False) -> Dict[str, Any]:
        suffix = "/full" if full else ""
        return self._request(
            "GET", f"/orders/user/{self.customer_id}{suffix}", params={"page": page, "limit": limit}
        )

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/orders/{order_id}")["order"]

    def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        self._require_user()
        order = self.get_order(order_id)
        if Action.CANCEL not in available_actions(order):
            raise ClientError("Order cannot be cancelled at this stage")
        return self._request("DELETE", f"/orders/{order_id}", json={"reason": reason})

    def sign_contract(self, order: Dict[str, Any], signature: Optional[str], agreed: bool) -> Dict[str, Any]:
        if is_blank_signature(signature):
            raise ClientError("Please provide your signature")
        if not agreed:
            raise ClientError("Please check the agreement box to proceed")
        return self._request(
            "PATCH", f"/orders/{order['id']}/sign-contract", json={"signature": signature, "agreed": True}
        )

    # payments

    def submit_payment(
        self,
        order_id: str,
        payment_method: str,
        proof: bytes,
        filename: str = "proof.png",
        content_type: str = "image/png",
        **fields,
    ) -> Dict[str, Any]:
        data = {"order_id": order_id, "payment_method": payment_method, "customer_id": self.customer_id}
        data.update({k: v for k, v in fields.items() if v is not None})
        files = {"proof_of_payment": (filename, proof, content_type)}
        return self._request("POST", "/payments/submit", data=data, files=files)

    # feedback

    def submit_feedback(self, order_id: str, rating: int, message: str) -> Dict[str, Any]:
        if not 1 <= int(rating) <= 5:
            raise ClientError("Rating must be between 1 and 5")
        return self._request(
            "POST",
            "/feedbacks",
            json={"customer_id": self.customer_id, "order_id": order_id, "rating": rating, "message": message},
        )
