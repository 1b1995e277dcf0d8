"""
HTTP client for the tax calculation service.

POSTs the invoice request as JSON to <base_url>/taxes/calculate and hands the
decoded body (or an error message) to the caller's callback from the Qt event
loop. The service reports failures as {"error": "..."}; that text is passed
through unchanged.
"""
from __future__ import annotations

import json
import logging

from PySide6.QtCore import QByteArray, QObject, QUrl
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from ...config import TIMEOUT_MS
from ...constants import TAX_CALCULATE_PATH
from .tax_adapter import TaxCallback

_log = logging.getLogger(__name__)


def _error_text(body: str) -> str | None:
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None


class HttpTaxService(QObject):
    def __init__(self, base_url: str, *, timeout_ms: int = TIMEOUT_MS, parent: QObject | None = None):
        super().__init__(parent)
        self._url = QUrl(base_url.rstrip("/") + TAX_CALCULATE_PATH)
        self._timeout_ms = timeout_ms
        self._nam = QNetworkAccessManager(self)

    @property
    def url(self) -> str:
        return self._url.toString()

    def calculate(self, request: dict, on_finished: TaxCallback) -> None:
        req = QNetworkRequest(self._url)
        req.setHeader(QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json")
        req.setTransferTimeout(self._timeout_ms)
        body = QByteArray(json.dumps(request).encode("utf-8"))
        reply = self._nam.post(req, body)
        reply.finished.connect(lambda: self._on_reply(reply, on_finished))

    def _on_reply(self, reply: QNetworkReply, on_finished: TaxCallback) -> None:
        try:
            body = bytes(reply.readAll().data()).decode("utf-8", errors="replace")
            if reply.error() != QNetworkReply.NetworkError.NoError:
                message = _error_text(body) or reply.errorString()
                _log.debug("Tax service error (%s): %s", reply.error(), message)
                on_finished(None, message)
                return
            try:
                data = json.loads(body)
            except ValueError as e:
                on_finished(None, f"Invalid JSON from tax service: {e}")
                return
            on_finished(data, None)
        finally:
            reply.deleteLater()
