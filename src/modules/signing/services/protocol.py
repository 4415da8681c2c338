import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Callable, Optional, Tuple, Union
from urllib.parse import unquote

from modules.signing.exceptions import (
    DecodeFailure,
    NotReady,
    SessionNotFound,
    UnsupportedOperation,
)
from modules.signing.models.session import SessionPool, SessionStatus, SessionView
from modules.signing.services.document_store import DocumentStore
from modules.signing.services.session_registry import SessionRegistry, new_session_id
from modules.signing.services.wire import SignerRequest

logger = logging.getLogger(__name__)

# Prefijo reservado con el que AutoFirma notifica sus errores (SAF_03_ERROR_CANCEL...)
ERROR_PREFIX = "SAF_"

_LINE_BREAKS = re.compile(r"[\r\n\t]")


class OutcomeKind(str, PyEnum):
    SIGNED = "signed"
    SIGNER_ERROR = "signer_error"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SubmissionOutcome:
    kind: OutcomeKind
    data: Optional[bytes] = None
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ServletReply:
    operation: str
    content: Union[bytes, str, dict]
    file_name: Optional[str] = None


def decode_base64(payload: str) -> bytes:
    """
    Strict base64 decode of a signer payload.

    Line breaks are dropped, spaces are read back as ``+`` (form decoding
    turns them into spaces), the URL-safe alphabet is accepted and missing
    padding is restored.
    """
    cleaned = _LINE_BREAKS.sub("", payload).replace(" ", "+")
    cleaned = cleaned.replace("-", "+").replace("_", "/")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"base64 inválido: {e}") from e
    if not data:
        raise DecodeFailure("el contenido decodificado está vacío")
    return data


def classify_payload(payload: Optional[str]) -> SubmissionOutcome:
    """
    Decides what a signer submission means. Precedence:

    1. missing or blank payload: ignored
    2. starts with ``SAF_`` after percent-decoding: signer-reported error
    3. otherwise base64 of the signed document; undecodable: ignored
    """
    if payload is None or not payload.strip():
        return SubmissionOutcome(OutcomeKind.IGNORED, reason="payload vacío")

    text = unquote(payload.strip())
    if text.startswith(ERROR_PREFIX):
        return SubmissionOutcome(OutcomeKind.SIGNER_ERROR, error=text)

    try:
        data = decode_base64(text)
    except DecodeFailure as e:
        return SubmissionOutcome(OutcomeKind.IGNORED, reason=str(e))
    return SubmissionOutcome(OutcomeKind.SIGNED, data=data)


def signed_file_name(file_name: str, suffix: str = "_firmado") -> str:
    """invoice.pdf -> invoice_firmado.pdf"""
    base = file_name or "documento.pdf"
    if base.lower().endswith(".pdf"):
        base = base[:-4]
    return f"{base}{suffix}.pdf"


class SigningProtocol:
    """
    Operaciones del relay: alta de sesión, entrega del original al firmador,
    recepción del firmado, consulta de estado y descarga.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: DocumentStore,
        signed_suffix: str = "_firmado",
        schedule_removal: Optional[Callable[[str], None]] = None,
    ):
        self.registry = registry
        self.store = store
        self.signed_suffix = signed_suffix
        self.schedule_removal = schedule_removal

    def create_session(
        self,
        file_name: str,
        document: Optional[bytes] = None,
        session_id: Optional[str] = None,
        pool: SessionPool = SessionPool.SESSION,
    ) -> SessionView:
        """
        Registra una sesión nueva. El documento se guarda antes de dar de alta
        la sesión, de modo que nadie ve la sesión sin su original.
        Re-registrar un id existente la reinicia.
        """
        session_id = session_id or new_session_id()

        if document is not None:
            self.store.put(session_id, document, file_name)
            self.store.discard_signed(session_id)
        else:
            self.store.remove(session_id)

        view = self.registry.create(file_name, session_id=session_id, pool=pool)
        if document is not None:
            logger.info("Archivo %s guardado - %.2f KB", file_name, len(document) / 1024)
        return view

    def upload_original(self, session_id: str, data: bytes) -> SessionView:
        session = self._require(session_id)
        with self.registry.locked(session_id):
            self.store.put(session_id, data, session.file_name)
            current = self.registry.get(session_id)
            if current.status in (SessionStatus.PENDING, SessionStatus.UPLOADED):
                current = self.registry.transition(session_id, SessionStatus.UPLOADED)
        logger.info("Archivo subido para sesión %s: %d bytes", session_id, len(data))
        return current

    def get_original(self, session_id: str) -> Tuple[bytes, str]:
        session = self._require(session_id)
        data = self.store.get_original(session_id)
        logger.info("PDF original enviado al firmador: %s (%d bytes)", session_id, len(data))
        return data, session.file_name

    def submit(self, session_id: str, payload: Optional[str]) -> SubmissionOutcome:
        """
        Applies a signer write-back. Never raises for payload problems: an
        undecodable submission is logged and ignored.
        """
        self._require(session_id)
        outcome = classify_payload(payload)

        if outcome.kind == OutcomeKind.SIGNED:
            with self.registry.locked(session_id):
                self.store.put_signed(session_id, outcome.data)
                self.registry.transition(session_id, SessionStatus.COMPLETED, signed=True)
            logger.info("Firma recibida para %s: %d bytes", session_id, len(outcome.data))
        elif outcome.kind == OutcomeKind.SIGNER_ERROR:
            with self.registry.locked(session_id):
                self.registry.transition(session_id, SessionStatus.ERROR, error=outcome.error)
                self.store.discard_signed(session_id)
            logger.error("Error de AutoFirma en %s: %s", session_id, outcome.error)
        else:
            logger.warning(
                "No se pudieron procesar los datos recibidos para %s: %s",
                session_id, outcome.reason,
            )
        return outcome

    def status(self, session_id: str) -> dict:
        session = self.registry.get(session_id)
        if session is None:
            return {"status": SessionStatus.NOT_FOUND.value, "hasSignedData": False, "error": None}
        return {
            "status": session.status.value,
            "hasSignedData": session.has_signed_data,
            "error": session.error,
        }

    def retrieve_signed(self, session_id: str) -> str:
        """Signed document as base64 text, for the signer-side retrieve call."""
        with self.registry.locked(session_id):
            session = self._require(session_id)
            if not session.is_ready:
                raise NotReady(session_id, session.status.value)
            data = self.store.get_signed(session_id)
        return base64.b64encode(data).decode("ascii")

    def download(self, session_id: str) -> Tuple[bytes, str]:
        """
        Devuelve el PDF firmado. La primera descarga programa el borrado de la
        sesión tras la ventana de gracia; las repetidas dentro de la ventana
        devuelven los mismos bytes.
        """
        with self.registry.locked(session_id):
            session = self.registry.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if not session.is_ready:
                raise NotReady(session_id, session.status.value)
            data = self.store.get_signed(session_id)
            first_download = session.downloaded_at is None
            self.registry.mark_downloaded(session_id)

        if first_download and self.schedule_removal is not None:
            self.schedule_removal(session_id)

        file_name = signed_file_name(session.file_name, self.signed_suffix)
        logger.info("Archivo firmado descargado: %s (%.2f KB)", file_name, len(data) / 1024)
        return data, file_name

    def dispatch(self, request: SignerRequest) -> ServletReply:
        """Single-endpoint servlet: get, put, retrieve, status, download."""
        operation = (request.operation or "").lower()
        if not request.id:
            raise UnsupportedOperation("ID requerido")

        if operation == "get":
            data, file_name = self.get_original(request.id)
            return ServletReply(operation, data, file_name)
        if operation == "put":
            self.submit(request.id, request.payload)
            return ServletReply(operation, "OK")
        if operation == "retrieve":
            return ServletReply(operation, self.retrieve_signed(request.id))
        if operation == "status":
            return ServletReply(operation, self.status(request.id))
        if operation == "download":
            data, file_name = self.download(request.id)
            return ServletReply(operation, data, file_name)

        raise UnsupportedOperation(f"Operación no válida: {request.operation}")

    def _require(self, session_id: str) -> SessionView:
        session = self.registry.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session
