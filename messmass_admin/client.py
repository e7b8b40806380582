from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import ApplicationError, TransportError
from .settings import Settings

logger = logging.getLogger(__name__)


class AdminApiClient:
    """Blocking client for the admin REST API.

    Every call returns the decoded body of a ``success: true`` response or
    raises ``TransportError`` / ``ApplicationError``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminApiClient":
        return cls(settings.api_base_url, timeout=settings.api_timeout_seconds)

    def request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"Request to {path} failed") from exc

        try:
            body: Any = response.json()
        except ValueError:
            logger.warning("%s %s returned non-JSON body (status %s)", method, url, response.status_code)
            raise TransportError(f"Invalid response from {path}", response.status_code) from None

        if not isinstance(body, dict):
            raise TransportError(f"Invalid response from {path}", response.status_code)
        if not body.get("success"):
            message = str(body.get("error") or f"Request to {path} failed")
            raise ApplicationError(message, response.status_code)
        return body

    # Projects

    def list_projects(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("GET", "/projects", params=params)

    def create_project(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/projects", payload=payload)["project"]

    def update_project(self, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/projects/{project_id}", payload=payload)["project"]

    def delete_project(self, project_id: str) -> None:
        self.request("DELETE", f"/projects/{project_id}")

    # Hashtag categories

    def list_categories(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("GET", "/hashtag-categories", params=params)

    def create_category(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/hashtag-categories", payload=payload)["category"]

    def update_category(self, category_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/hashtag-categories/{category_id}", payload=payload)["category"]

    def delete_category(self, category_id: str) -> None:
        self.request("DELETE", f"/hashtag-categories/{category_id}")

    # Variables

    def list_variables(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/variables-config")["variables"]

    def create_variable(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/variables-config", payload=payload)["variable"]

    def update_variable(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/variables-config/{name}", payload=payload)["variable"]

    def delete_variable(self, name: str) -> None:
        self.request("DELETE", f"/variables-config/{name}")

    # Chart configurations

    def list_charts(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/chart-config")["configurations"]

    def create_chart(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/chart-config", payload=payload)["configuration"]

    def update_chart(self, chart_pk: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/chart-config/{chart_pk}", payload=payload)["configuration"]

    def delete_chart(self, chart_pk: str) -> None:
        self.request("DELETE", f"/chart-config/{chart_pk}")

    # Page styles

    def list_styles(self) -> Dict[str, Any]:
        return self.request("GET", "/page-styles")

    def create_style(self, style: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/page-styles", payload=style)["style"]

    def update_style(self, style_id: str, style: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/page-styles/{style_id}", payload=style)["style"]

    def delete_style(self, style_id: str) -> None:
        self.request("DELETE", f"/page-styles/{style_id}")

    def set_global_style(self, style_id: str) -> Dict[str, Any]:
        return self.request("PUT", "/page-styles/global", payload={"styleId": style_id})

    def set_admin_style(self, style_id: Optional[str]) -> Dict[str, Any]:
        return self.request("PUT", "/page-styles/admin", payload={"styleId": style_id})

    def resolve_style(self, admin: bool = True, project_id: str | None = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"admin": "1" if admin else "0"}
        if project_id:
            params["projectId"] = project_id
        return self.request("GET", "/page-styles/resolve", params=params)["style"]

    def list_hashtag_styles(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/page-styles/hashtag")["bindings"]

    def set_hashtag_style(self, hashtag: str, style_id: Optional[str]) -> List[Dict[str, Any]]:
        return self.request("PUT", "/page-styles/hashtag", payload={"hashtag": hashtag, "styleId": style_id})["bindings"]

    # Users

    def list_users(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("GET", "/users", params=params)

    def create_user(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/users", payload=payload)

    def regenerate_password(self, user_id: str) -> Dict[str, Any]:
        return self.request("POST", f"/users/{user_id}/regenerate-password")

    def delete_user(self, user_id: str) -> None:
        self.request("DELETE", f"/users/{user_id}")
