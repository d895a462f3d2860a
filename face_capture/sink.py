from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from .errors import SubmissionError


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing Z."""
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RemoteSink:
    """Posts encoded captures to the ingestion endpoint as JSON."""

    def __init__(self, url: str, timeout_s: Optional[float] = 10.0, session: Optional[requests.Session] = None,
                 logger=None):
        self.url = url
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.log = logger

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None, logger=None) -> "RemoteSink":
        timeout = config.get('sink', 'timeout_s')
        return cls(
            url=config.get('sink', 'url'),
            timeout_s=None if timeout is None else float(timeout),
            session=session,
            logger=logger,
        )

    def submit(self, payload: str, captured_at: Optional[datetime] = None) -> Dict[str, Any]:
        body = {"image": payload, "timestamp": iso_timestamp(captured_at)}
        try:
            resp = self.session.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            result = resp.json()
        except requests.RequestException as e:
            raise SubmissionError(f"submit to {self.url} failed: {e}") from e
        except ValueError as e:
            raise SubmissionError(f"non-JSON response from {self.url}: {e}") from e
        if self.log:
            self.log.info(f"sink response: {result}")
        return result

    def close(self) -> None:
        self.session.close()
