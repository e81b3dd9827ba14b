"""HTTP delivery of changesets to the receiving application."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import requests

from purchase_watcher.errors import DeliveryError
from purchase_watcher.model import PurchaseRecord
from purchase_watcher.snapshot import records_to_json

_default_logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json; charset=utf-8"}


class HttpSender:
    """POST records as a JSON array to a fixed URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or _default_logger

    def send(self, records: Iterable[PurchaseRecord]) -> int:
        """Deliver ``records``; returns the response status code.

        Raises :class:`DeliveryError` on transport failures and non-2xx replies.
        """

        body = records_to_json(records).encode("utf-8")
        try:
            response = self.session.post(
                self.url, data=body, headers=JSON_HEADERS, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise DeliveryError(f"error while sending update: {exc}") from exc

        self.logger.info(
            "update is sent; response status: %s",
            response.status_code,
            extra={"url": self.url, "bytes": len(body)},
        )
        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"receiver rejected update with status {response.status_code}"
            )
        return response.status_code

    __call__ = send

    def close(self) -> None:
        self.session.close()


__all__ = ["HttpSender", "JSON_HEADERS"]
