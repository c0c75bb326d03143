"""
Polling client for the RAG API: submit a question, poll /status until the job settles, fetch /result.
Works with a requests.Session or anything with the same get/post surface (FastAPI's TestClient in tests).
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from hopper.core.exceptions import ClientTimeout, HopperError, NotFound, RequestFailed, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 300
DEFAULT_INTERVAL_SECONDS = 1.0


def _error_message(resp) -> str:
    try:
        return resp.json().get("error") or resp.text
    except ValueError:
        return resp.text


class HopperClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.sleep = sleep
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _raise_for(self, resp) -> None:
        if resp.status_code == 400:
            raise ValidationError(_error_message(resp))
        if resp.status_code == 404:
            raise NotFound(_error_message(resp))
        if resp.status_code >= 400:
            err = HopperError(_error_message(resp))
            err.status_code = resp.status_code
            raise err

    def ask(self, question: str, context: str, weak_concepts: Optional[List[str]] = None) -> str:
        """Submit a question and return the requestId to poll."""
        payload = {"question": question, "context": context, "weakConcepts": weak_concepts or []}
        resp = self.session.post(self._url("/ask"), json=payload, timeout=self.timeout)
        self._raise_for(resp)
        request_id = resp.json()["requestId"]
        logger.info("submitted request %s", request_id)
        return request_id

    def status(self, request_id: str) -> Dict[str, Any]:
        resp = self.session.get(self._url(f"/status/{request_id}"), timeout=self.timeout)
        self._raise_for(resp)
        return resp.json()

    def result(self, request_id: str) -> Optional[Dict[str, Any]]:
        """The completed result, or None while the job has not completed (HTTP 202)."""
        resp = self.session.get(self._url(f"/result/{request_id}"), timeout=self.timeout)
        if resp.status_code == 202:
            return None
        self._raise_for(resp)
        return resp.json()

    def wait_for_result(
        self,
        request_id: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Dict[str, Any]:
        """Poll status up to max_attempts times, interval seconds apart, and return the result once completed.
        Raises RequestFailed when the server reports the job failed and ClientTimeout when the attempts run out."""
        for attempt in range(1, max_attempts + 1):
            status = self.status(request_id)
            if on_progress is not None:
                on_progress(status)

            state = status.get("status")
            if state == "completed":
                result = self.result(request_id)
                if result is not None:
                    return result
            elif state == "failed":
                raise RequestFailed(status.get("error") or "Processing failed")

            logger.debug("request %s %s (%s%%), attempt %d/%d", request_id, state, status.get("progress"), attempt, max_attempts)
            if attempt < max_attempts:
                self.sleep(interval)

        raise ClientTimeout(f"Request {request_id} did not finish after {max_attempts} status checks")

    def ask_and_wait(
        self,
        question: str,
        context: str,
        weak_concepts: Optional[List[str]] = None,
        **wait_kwargs: Any,
    ) -> Dict[str, Any]:
        request_id = self.ask(question, context, weak_concepts)
        return self.wait_for_result(request_id, **wait_kwargs)
