"""Controller hook client for pushbuilder."""

from typing import Any, Dict

import requests

from pushbuilder.constants import AUTH_HEADER, BUILD_HOOK_PATH, CONFIG_HOOK_PATH
from pushbuilder.errors import ConfigFetchError, ReleaseError
from pushbuilder.errors_catalog import actionable_error
from pushbuilder.models import ProcessTypeMap, PushEvent, ReleaseRecord


def build_release_payload(
    event: PushEvent,
    process_types: ProcessTypeMap,
    using_dockerfile: bool,
) -> Dict[str, Any]:
    return {
        "receive_user": event.user,
        "receive_repo": event.app_name,
        "image": event.app_name,
        "sha": event.short_sha,
        "procfile": dict(process_types),
        "dockerfile": using_dockerfile,
    }


class ControllerClient:
    """Talks to the controller's builder hooks with the shared builder key."""

    def __init__(self, settings, logger, requests_module=requests):
        self.base_url = settings.controller_url
        self.builder_key = settings.builder_key
        self.timeout = settings.request_timeout
        self.logger = logger
        self.requests = requests_module

    def _post(self, path: str, payload: Dict[str, Any]):
        url = f"{self.base_url}{path}"
        self.logger.debug("POST %s", url)
        return self.requests.post(
            url,
            json=payload,
            headers={AUTH_HEADER: self.builder_key},
            timeout=self.timeout,
        )

    def fetch_config(self, user: str, app: str) -> Dict[str, str]:
        """Returns the application's build-time environment values."""
        try:
            response = self._post(CONFIG_HOOK_PATH, {"receive_user": user, "receive_repo": app})
        except self.requests.RequestException as exc:
            raise ConfigFetchError(
                actionable_error("config_fetch_failed", app=app, detail=str(exc))
            ) from exc

        if not response.ok:
            detail = f"HTTP {response.status_code} {response.text.strip()}".strip()
            raise ConfigFetchError(actionable_error("config_fetch_failed", app=app, detail=detail))

        try:
            data = response.json()
        except ValueError as exc:
            raise ConfigFetchError(
                actionable_error("config_fetch_failed", app=app, detail="response is not JSON")
            ) from exc

        values = data.get("values") if isinstance(data, dict) else None
        if values is None:
            return {}
        if not isinstance(values, dict):
            raise ConfigFetchError(
                actionable_error("config_fetch_failed", app=app, detail="`values` is not a mapping")
            )
        return {str(key): str(value) for key, value in values.items()}

    def publish_release(self, payload: Dict[str, Any]) -> ReleaseRecord:
        app = payload.get("receive_repo", "")
        try:
            response = self._post(BUILD_HOOK_PATH, payload)
        except self.requests.RequestException as exc:
            raise ReleaseError(actionable_error("release_failed", app=app), body=str(exc)) from exc

        if not response.ok:
            raise ReleaseError(actionable_error("release_failed", app=app), body=response.text)

        try:
            data = response.json()
            version = int(data["release"]["version"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ReleaseError(
                actionable_error("release_failed", app=app), body=response.text
            ) from exc

        domains = data.get("domains") or []
        domain = str(domains[0]) if isinstance(domains, list) and domains else None
        return ReleaseRecord(version=version, domain=domain)
