"""Invocation capability.

The executor never runs step code itself: it hands the payload to an invoker
that calls the external compute action identified by the step's target.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import requests

from workflow_orchestrator.orchestrator.workflow.errors import InvocationError
from workflow_orchestrator.orchestrator.workflow.steps import InvocationMode

logger = logging.getLogger(__name__)

StepHandler = Callable[[Any, Mapping[str, str]], Any]

INVOCATION_TYPE_HEADER = "X-Invocation-Type"
_INVOCATION_TYPES = {
    InvocationMode.REQUEST_RESPONSE: "RequestResponse",
    InvocationMode.EVENT: "Event",
}


class Invoker(Protocol):
    def invoke(
        self,
        target: str,
        payload: Any,
        environment: Mapping[str, str],
        mode: InvocationMode,
    ) -> Any: ...


class LocalInvoker:
    """Invoke Python callables registered by target name.

    Handlers receive `(payload, environment)` and return the new payload.
    """

    def __init__(self, handlers: Mapping[str, StepHandler] | None = None) -> None:
        self._handlers: dict[str, StepHandler] = dict(handlers or {})

    def register(self, target: str, handler: StepHandler) -> None:
        self._handlers[target] = handler

    def invoke(
        self,
        target: str,
        payload: Any,
        environment: Mapping[str, str],
        mode: InvocationMode,
    ) -> Any:
        handler = self._handlers.get(target)
        if handler is None:
            raise InvocationError(f"No handler registered for target {target!r}")
        return handler(payload, environment)


class HttpInvoker:
    """Invoke remote actions over HTTP.

    `POST {base_url}/{target}` with `{"payload": ..., "environment": {...}}`. The
    invocation mode is passed in the `X-Invocation-Type` header; in event mode
    the response body is ignored.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def close(self) -> None:
        self._session.close()

    def _url(self, target: str) -> str:
        if target.startswith(("http://", "https://")):
            return target
        return f"{self._base_url}/{target.lstrip('/')}"

    def invoke(
        self,
        target: str,
        payload: Any,
        environment: Mapping[str, str],
        mode: InvocationMode,
    ) -> Any:
        url = self._url(target)
        logger.debug("Invoking target", extra={"target": target, "url": url, "mode": mode.value})
        try:
            resp = self._session.post(
                url,
                json={"payload": payload, "environment": dict(environment)},
                headers={INVOCATION_TYPE_HEADER: _INVOCATION_TYPES[mode]},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise InvocationError(f"Invocation of {target!r} failed: {e}") from e

        if resp.status_code >= 400:
            raise InvocationError(
                f"Invocation of {target!r} failed with HTTP {resp.status_code}: {resp.text[:200]}"
            )
        if mode is InvocationMode.EVENT or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise InvocationError(f"Invocation of {target!r} returned invalid JSON") from e
