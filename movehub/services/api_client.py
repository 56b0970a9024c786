"""
MoveHub API Client
Request function used by automation and other services to drive the
workflow over HTTP.
"""
from typing import Any, Dict, Optional

import httpx
import structlog

from ..config import settings
from .normalization import OrderSnapshot, normalize_order, normalize_report_form

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    """Non-2xx answer (or no answer at all, status 0) from the API."""

    def __init__(self, message: str, status: int, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data


class MoveHubClient:
    """Client for the MoveHub HTTP surface"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.auth_token = auth_token or settings.api_token
        self.timeout = timeout or settings.api_timeout_seconds
        self.transport = transport

    def _headers(self, auth_token: Optional[str]) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = auth_token or self.auth_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Any] = None,
        auth_token: Optional[str] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Returns None when the caller is unauthenticated (401), and when a
        report endpoint answers 404 (no report filed yet).

        Raises:
            ApiError: any other non-2xx status, or a network failure (status 0)
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method.upper(), url, json=body, headers=self._headers(auth_token))
        except httpx.HTTPError as exc:
            logger.warning("api_request_failed", method=method, path=path, error=str(exc))
            raise ApiError(f"Request to {path} failed: {exc}", 0) from exc

        if response.status_code == 401:
            logger.info("api_unauthenticated", method=method, path=path)
            return None
        if response.status_code == 404 and "/report" in path:
            return None
        data = self._decode(response)
        if response.is_error:
            message = data.get("detail") if isinstance(data, dict) else None
            raise ApiError(message or f"HTTP {response.status_code}", response.status_code, data)
        return data

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    # Orders

    def get_order(self, order_id: int, auth_token: Optional[str] = None) -> Optional[OrderSnapshot]:
        payload = self.request(f"/orders/{order_id}", auth_token=auth_token)
        return normalize_order(payload) if payload is not None else None

    def create_order(self, order: Dict, auth_token: Optional[str] = None) -> Any:
        return self.request("/orders", "POST", order, auth_token)

    def assign_company(self, order_id: int, order_service_id: int, company_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(
            f"/orders/{order_id}/orderServices/{order_service_id}/assign",
            "POST",
            {"companyId": company_id},
            auth_token,
        )

    def complete_service(self, order_id: int, order_service_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/orders/{order_id}/orderServices/{order_service_id}/complete", "PATCH", None, auth_token)

    # Offers

    def send_offer(self, order_id: int, order_service_id: int, terms: Dict, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/orders/{order_id}/orderServices/{order_service_id}/offers", "POST", terms, auth_token)

    def modify_offer(self, order_id: int, order_service_id: int, terms: Dict, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/orders/{order_id}/orderServices/{order_service_id}/offers", "PUT", terms, auth_token)

    def accept_offer(self, offer_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/offers/{offer_id}/accept", "PATCH", None, auth_token)

    def reject_offer(self, offer_id: int, reason: Optional[str] = None, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/offers/{offer_id}/reject", "PATCH", {"reason": reason}, auth_token)

    # Staffing

    def list_assignments(self, offer_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/offers/{offer_id}/assignments", auth_token=auth_token)

    def assign_employee(self, offer_id: int, employee_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/offers/{offer_id}/assignments", "POST", {"employee_id": employee_id}, auth_token)

    def make_leader(self, offer_id: int, employee_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/offers/{offer_id}/employees/{employee_id}/make-leader", "PATCH", None, auth_token)

    # Reports

    def get_report(self, order_id: int, order_service_id: int, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/orders/{order_id}/orderServices/{order_service_id}/report", auth_token=auth_token)

    def submit_report(self, order_id: int, order_service_id: int, report: Dict, auth_token: Optional[str] = None) -> Any:
        return self.request(f"/orders/{order_id}/orderServices/{order_service_id}/report", "POST", report, auth_token)

    def submit_report_form(
        self, order_id: int, order_service_id: int, form: Dict, auth_token: Optional[str] = None
    ) -> Any:
        """Submit a report captured in the legacy form shape (workerHours, clientPaid, ...)."""
        report = normalize_report_form(form).model_dump(by_alias=True, mode="json")
        return self.submit_report(order_id, order_service_id, report, auth_token)
