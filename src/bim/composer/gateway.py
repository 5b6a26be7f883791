from __future__ import annotations

import logging
import sqlite3
from typing import Optional, Protocol

import requests

from bim.api.schemas import DocumentOut, DocumentWriteRequest
from bim.domain.errors import (
    AppError,
    InsufficientStockError,
    NotFoundError,
    TransientFailure,
    ValidationError,
)
from bim.domain.models import DocumentHeader, DocumentKind, DocumentRequest

log = logging.getLogger("bim.documents")

_ERRORS_BY_NAME: dict[str, type[AppError]] = {
    "ValidationError": ValidationError,
    "RequestValidationError": ValidationError,
    "NotFoundError": NotFoundError,
    "InsufficientStockError": InsufficientStockError,
    "TransientFailure": TransientFailure,
}

_ERRORS_BY_STATUS: dict[int, type[AppError]] = {
    400: ValidationError,
    404: NotFoundError,
    409: InsufficientStockError,
    422: ValidationError,
}


class DocumentGateway(Protocol):
    def create_document(self, request: DocumentRequest) -> DocumentHeader: ...
    def update_document(self, document_id: int, request: DocumentRequest) -> DocumentHeader: ...


class LocalDocumentGateway:
    """In-process gateway straight onto the document service."""

    def __init__(self, documents):
        self.documents = documents

    def create_document(self, request: DocumentRequest) -> DocumentHeader:
        try:
            return self.documents.create_document(request)
        except sqlite3.OperationalError as e:
            raise TransientFailure(f"Store unavailable: {e}") from e

    def update_document(self, document_id: int, request: DocumentRequest) -> DocumentHeader:
        try:
            return self.documents.update_document(document_id, request)
        except sqlite3.OperationalError as e:
            raise TransientFailure(f"Store unavailable: {e}") from e


class HttpDocumentGateway:
    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, kind: DocumentKind, document_id: Optional[int] = None) -> str:
        url = f"{self.base_url}/api/{kind.slug}"
        if document_id is not None:
            url += f"/{int(document_id)}"
        return url

    def create_document(self, request: DocumentRequest) -> DocumentHeader:
        headers = {}
        if request.idempotency_key:
            headers["Idempotency-Key"] = request.idempotency_key
        data = self._send("post", self._url(request.kind), request, headers)
        return DocumentOut.model_validate(data).to_domain()

    def update_document(self, document_id: int, request: DocumentRequest) -> DocumentHeader:
        data = self._send("put", self._url(request.kind, document_id), request, {})
        return DocumentOut.model_validate(data).to_domain()

    def _send(self, method: str, url: str, request: DocumentRequest, headers: dict) -> dict:
        payload = DocumentWriteRequest.from_domain(request).model_dump(mode="json", by_alias=True)
        try:
            r = self.session.request(method.upper(), url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("document_request_failed url=%s error=%s", url, e)
            raise TransientFailure(f"Network error: {e}") from e

        if r.status_code >= 500:
            log.warning("document_request_failed url=%s status=%s", url, r.status_code)
            raise TransientFailure(f"Server error ({r.status_code}). Please retry.")
        if r.status_code >= 400:
            raise self._client_error(r)

        try:
            return r.json()
        except ValueError as e:
            raise TransientFailure("Invalid response from server.") from e

    def _client_error(self, r: requests.Response) -> AppError:
        try:
            body = r.json()
        except ValueError:
            body = {}
        detail = body.get("detail") if isinstance(body, dict) else None
        if isinstance(detail, list):
            # FastAPI request-validation payload
            detail = "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
        error_cls = _ERRORS_BY_NAME.get(str(body.get("error_type", "")) if isinstance(body, dict) else "")
        if error_cls is None:
            error_cls = _ERRORS_BY_STATUS.get(r.status_code, ValidationError)
        return error_cls(detail or f"Request rejected ({r.status_code}).")
