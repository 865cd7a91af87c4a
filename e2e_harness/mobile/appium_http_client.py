from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .errors import CapabilityError, SessionConnectionError, SessionNotReadyError, StaleElementError

LOG = logging.getLogger(__name__)

W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"

# W3C error codes the server uses to reject a capability set.
_CAPABILITY_ERROR_CODES = {"session not created", "invalid argument"}


class AppiumHTTPError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        response_json: Optional[dict[str, Any]] = None,
        response_text: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.error = error
        self.response_json = response_json
        self.response_text = response_text


@dataclass(frozen=True)
class WebDriverElementRef:
    element_id: str


def _extract_webdriver_value(payload: dict[str, Any]) -> Any:
    # W3C WebDriver wraps in {"value": ...}
    if "value" in payload:
        return payload["value"]
    return payload


def _extract_element_id(element_obj: Any) -> str:
    if not isinstance(element_obj, dict):
        raise ValueError(f"Unexpected element payload type: {type(element_obj)}")

    if W3C_ELEMENT_KEY in element_obj and element_obj[W3C_ELEMENT_KEY]:
        return str(element_obj[W3C_ELEMENT_KEY])

    # Legacy JSONWire key
    if "ELEMENT" in element_obj and element_obj["ELEMENT"]:
        return str(element_obj["ELEMENT"])

    raise ValueError(f"Could not extract element id from payload keys: {list(element_obj.keys())}")


def _require_rect(value: Any, *, what: str, method: str, url: str, response: dict[str, Any]) -> dict[str, int]:
    if not isinstance(value, dict):
        raise AppiumHTTPError(
            message=f"Unexpected {what} response shape (expected object)",
            method=method,
            url=url,
            response_json=response,
        )
    required = {"x", "y", "width", "height"}
    if not required.issubset(set(value.keys())):
        raise AppiumHTTPError(
            message=f"{what} missing keys (expected {sorted(required)})",
            method=method,
            url=url,
            response_json=response,
        )
    return {k: int(value[k]) for k in required}


class AppiumHTTPClient:
    """
    Small Appium client speaking the WebDriver HTTP endpoints directly.

    Only the commands the harness needs are implemented: session lifecycle,
    element lookup and state, element interaction, W3C pointer actions and
    `mobile:` execute commands.
    """

    def __init__(self, server_url: str, *, timeout_s: float = 30.0) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session_id: Optional[str] = None
        self._session = requests.Session()

    def _request(self, method: str, path: str, *, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        LOG.debug("%s %s", method, path)
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout_s)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SessionConnectionError(f"Failed to reach Appium server at {url}: {e}") from e

        response_text = None
        response_json: Optional[dict[str, Any]] = None
        try:
            response_json = response.json()
        except ValueError:
            response_text = response.text

        if response.status_code >= 400:
            error = None
            details = None
            if response_json is not None:
                value = _extract_webdriver_value(response_json)
                if isinstance(value, dict):
                    error = value.get("error")
                    details = value.get("message") or error
            raise AppiumHTTPError(
                message=f"Appium HTTP {response.status_code} for {method} {path}"
                + (f": {details}" if details else ""),
                method=method,
                url=url,
                status_code=response.status_code,
                error=error,
                response_json=response_json,
                response_text=response_text,
            )

        if response_json is None:
            raise AppiumHTTPError(
                message=f"Appium returned non-JSON response for {method} {path}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response_text,
            )

        return response_json

    def _element_request(
        self,
        method: str,
        element: WebDriverElementRef,
        suffix: str,
        *,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        self._require_session()
        try:
            return self._request(
                method,
                f"/session/{self.session_id}/element/{element.element_id}{suffix}",
                json=json,
            )
        except AppiumHTTPError as e:
            if e.error == "stale element reference":
                raise StaleElementError(f"Element {element.element_id} is no longer attached to the UI") from e
            raise

    def create_session(self, session_payload: dict[str, Any]) -> str:
        """
        Create an Appium session.

        `session_payload` must be a valid WebDriver session creation payload:
          {"capabilities": {"alwaysMatch": {...}, "firstMatch": [{}]}}

        A single attempt is made. Capability rejections surface as CapabilityError.
        """
        if not isinstance(session_payload, dict) or not session_payload:
            raise ValueError("session_payload must be a non-empty dict")

        try:
            response = self._request("POST", "/session", json=session_payload)
        except AppiumHTTPError as e:
            if e.error in _CAPABILITY_ERROR_CODES:
                raise CapabilityError(str(e)) from e
            raise

        # Common shapes:
        # - {"value": {"sessionId": "...", "capabilities": {...}}}
        # - {"sessionId": "...", "value": {...}}
        value = _extract_webdriver_value(response)
        session_id = None
        if isinstance(value, dict):
            session_id = value.get("sessionId")
        session_id = session_id or response.get("sessionId")

        if not session_id:
            raise AppiumHTTPError(
                message="Appium did not return a sessionId in the create_session response",
                method="POST",
                url=f"{self.server_url}/session",
                response_json=response,
            )

        self.session_id = str(session_id)
        return self.session_id

    def delete_session(self) -> None:
        if not self.session_id:
            return
        session_id = self.session_id
        try:
            self._request("DELETE", f"/session/{session_id}")
        finally:
            self.session_id = None

    def close(self) -> None:
        """Release pooled HTTP connections. The remote session is not touched."""
        self._session.close()

    def get_page_source(self) -> str:
        self._require_session()
        response = self._request("GET", f"/session/{self.session_id}/source")
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise AppiumHTTPError(
                message="Unexpected /source response shape (expected string)",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/source",
                response_json=response,
            )
        return value

    def get_screenshot_png_bytes(self) -> bytes:
        self._require_session()
        response = self._request("GET", f"/session/{self.session_id}/screenshot")
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise AppiumHTTPError(
                message="Unexpected /screenshot response shape (expected base64 string)",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/screenshot",
                response_json=response,
            )
        try:
            return base64.b64decode(value)
        except ValueError as e:
            raise AppiumHTTPError(
                message=f"Failed to decode screenshot base64: {e}",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/screenshot",
                response_json=response,
            ) from e

    def get_window_rect(self) -> dict[str, int]:
        self._require_session()
        url = f"{self.server_url}/session/{self.session_id}/window/rect"
        response = self._request("GET", f"/session/{self.session_id}/window/rect")
        return _require_rect(
            _extract_webdriver_value(response),
            what="/window/rect",
            method="GET",
            url=url,
            response=response,
        )

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        self._require_session()
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find elements")
        response = self._request(
            "POST",
            f"/session/{self.session_id}/elements",
            json={"using": using, "value": value},
        )
        payload = _extract_webdriver_value(response)
        if not isinstance(payload, list):
            raise AppiumHTTPError(
                message="Unexpected /elements response shape (expected list)",
                method="POST",
                url=f"{self.server_url}/session/{self.session_id}/elements",
                response_json=response,
            )
        return [WebDriverElementRef(element_id=_extract_element_id(item)) for item in payload]

    def get_element_text(self, element: WebDriverElementRef) -> str:
        response = self._element_request("GET", element, "/text")
        value = _extract_webdriver_value(response)
        if not isinstance(value, str):
            raise AppiumHTTPError(
                message="Unexpected element /text response shape (expected string)",
                method="GET",
                url=f"{self.server_url}/session/{self.session_id}/element/{element.element_id}/text",
                response_json=response,
            )
        return value

    def get_element_rect(self, element: WebDriverElementRef) -> dict[str, int]:
        response = self._element_request("GET", element, "/rect")
        return _require_rect(
            _extract_webdriver_value(response),
            what="element /rect",
            method="GET",
            url=f"{self.server_url}/session/{self.session_id}/element/{element.element_id}/rect",
            response=response,
        )

    def is_element_displayed(self, element: WebDriverElementRef) -> bool:
        response = self._element_request("GET", element, "/displayed")
        return bool(_extract_webdriver_value(response))

    def click(self, element: WebDriverElementRef) -> None:
        self._element_request("POST", element, "/click", json={})

    def clear(self, element: WebDriverElementRef) -> None:
        self._element_request("POST", element, "/clear", json={})

    def send_keys(self, element: WebDriverElementRef, *, text: str) -> None:
        if text is None:
            raise ValueError("text must not be None")
        # W3C WebDriver accepts both `text` and `value`; many servers expect `value` as an array of chars.
        self._element_request("POST", element, "/value", json={"text": text, "value": list(text)})

    def perform_actions(self, actions: list[dict[str, Any]]) -> None:
        self._require_session()
        if not actions:
            raise ValueError("actions must be a non-empty list of input sources")
        self._request("POST", f"/session/{self.session_id}/actions", json={"actions": actions})

    def release_actions(self) -> None:
        self._require_session()
        self._request("DELETE", f"/session/{self.session_id}/actions")

    def execute_mobile(self, command: str, args: Optional[dict[str, Any]] = None) -> Any:
        """Run an Appium `mobile: <command>` extension through /execute/sync."""
        self._require_session()
        script = command if command.startswith("mobile:") else f"mobile: {command}"
        response = self._request(
            "POST",
            f"/session/{self.session_id}/execute/sync",
            json={"script": script, "args": [args or {}]},
        )
        return _extract_webdriver_value(response)

    def _require_session(self) -> None:
        if not self.session_id:
            raise SessionNotReadyError("No active Appium session. Call create_session() first.")
