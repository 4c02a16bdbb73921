"""Small synchronous client for the Ubuntu Network API.

Used by tooling and tests; mobile apps speak the same HTTP contract.
"""
from typing import Any, Dict, Optional

import httpx


class ApiClientError(Exception):
    def __init__(self, status_code: Optional[int], code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


class UbuntuClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        http: Optional[httpx.Client] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        if http is None:
            if not base_url:
                raise ValueError("base_url or http client required")
            http = httpx.Client(base_url=base_url, timeout=timeout)
        self.http = http
        self.token = token

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiClientError(None, "network_error", str(exc)) from exc
        if resp.status_code >= 400:
            raise self._error_from(resp)
        return resp.json()

    @staticmethod
    def _error_from(resp: httpx.Response) -> ApiClientError:
        try:
            body = resp.json()
        except ValueError:
            return ApiClientError(resp.status_code, "http_error", resp.text or resp.reason_phrase)
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict):
            return ApiClientError(resp.status_code, str(err.get("code") or "http_error"), str(err.get("message") or ""))
        return ApiClientError(resp.status_code, "http_error", resp.text)

    def request_otp(self, phone: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/request-otp", json={"phone": phone})

    def verify_otp(self, phone: str, otp: str, device_id: str) -> Dict[str, Any]:
        data = self._request("POST", "/auth/verify-otp", json={"phone": phone, "otp": otp, "deviceId": device_id})
        self.token = data["access_token"]
        return data

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/users/me")

    def update_profile(self, display_name: str) -> Dict[str, Any]:
        return self._request("PATCH", "/users/me", json={"display_name": display_name})
