"""
Remote Backend Client

Thin async HTTP client for the clinical records backend. Every failure mode
(transport error, timeout, non-2xx status, unparsable body) is reported as
RemoteUnavailableError so the gateway can fall back to the offline store.

Endpoints:
    GET  /patients
    GET  /patients/{id}
    POST /patients
    POST /diagnosis
    GET  /diagnosis/{patientId}
    GET  /progress/{patientId}
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from skinalyze.config import settings
from skinalyze.core.storage import DiagnosisRecord, PatientDetail, PatientRecord, ProgressEntry
from skinalyze.utils import get_logger, RemoteUnavailableError
from .schemas import (
    DiagnosisHistoryResponse,
    DiagnosisSavedResponse,
    PatientCreatedResponse,
    PatientDetailResponse,
    PatientListResponse,
    ProgressResponse,
)
from .session import SessionContext

logger = get_logger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class RemoteClient:
    """
    Backend client over a shared ``httpx.AsyncClient``.

    Args:
        base_url: Backend root; defaults to ``settings.backend_url``
        timeout: Per-request timeout in seconds
        session: Supplies the bearer token; a 401 clears it
        transport: Custom httpx transport (ASGI app or MockTransport in tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[SessionContext] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.session = session
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    async def list_patients(self) -> List[PatientRecord]:
        body = await self._request("GET", "/patients", "list_patients", PatientListResponse)
        return [p.to_record() for p in body.patients]

    async def get_patient(self, patient_id: int) -> Optional[PatientDetail]:
        """Patient detail, or None when the backend answers 404."""
        body = await self._request(
            "GET", f"/patients/{patient_id}", "get_patient", PatientDetailResponse,
            not_found_ok=True,
        )
        return body.to_detail() if body is not None else None

    async def create_patient(self, name: str, skin_type_category: str) -> PatientRecord:
        body = await self._request(
            "POST", "/patients", "create_patient", PatientCreatedResponse,
            json={"name": name, "fitzpatrickType": skin_type_category},
        )
        return body.patient.to_record()

    # ------------------------------------------------------------------
    # Diagnoses / progress
    # ------------------------------------------------------------------
    async def save_diagnosis(self, payload: Dict[str, Any], patient_id: int) -> Optional[DiagnosisRecord]:
        """
        Submit a diagnosis. Returns the echoed record, or None when the
        backend acknowledges without a body.
        """
        body = await self._request(
            "POST", "/diagnosis", "save_diagnosis", DiagnosisSavedResponse, json=payload,
        )
        if body.diagnosis is None:
            return None
        return self._convert("save_diagnosis", lambda: body.diagnosis.to_record(patient_id))

    async def get_diagnosis_history(self, patient_id: int) -> List[DiagnosisRecord]:
        body = await self._request(
            "GET", f"/diagnosis/{patient_id}", "get_diagnosis_history", DiagnosisHistoryResponse,
        )
        return self._convert(
            "get_diagnosis_history",
            lambda: [d.to_record(patient_id) for d in body.diagnoses],
        )

    async def get_progress(self, patient_id: int) -> List[ProgressEntry]:
        body = await self._request(
            "GET", f"/progress/{patient_id}", "get_progress", ProgressResponse,
        )
        return [p.to_entry(patient_id) for p in body.progress]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        schema: Type[ResponseModel],
        not_found_ok: bool = False,
        **kwargs: Any,
    ) -> Optional[ResponseModel]:
        headers = self.session.authorization_header() if self.session else {}
        logger.debug(f"Remote {method} {path}")
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(
                f"Backend timed out after {self.timeout}s", operation=operation,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(
                f"Backend unreachable: {e}", operation=operation,
            ) from e

        if response.status_code == 401 and self.session is not None:
            await self.session.invalidate_token()
        if response.status_code == 404 and not_found_ok:
            return None
        if not response.is_success:
            raise RemoteUnavailableError(
                f"Backend returned HTTP {response.status_code}",
                operation=operation,
                status_code=response.status_code,
                details={"body": response.text[:200]},
            )

        try:
            return schema.model_validate(response.json())
        except (SchemaError, ValueError) as e:
            raise RemoteUnavailableError(
                f"Malformed backend response: {e}",
                operation=operation,
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _convert(operation: str, build):
        try:
            return build()
        except ValueError as e:
            raise RemoteUnavailableError(
                f"Malformed backend response: {e}", operation=operation,
            ) from e
