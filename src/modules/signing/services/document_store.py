import io
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from PyPDF2 import PdfReader

from modules.signing.exceptions import (
    DocumentNotFound,
    InvalidDocument,
    PayloadTooLarge,
    StorageFailure,
)

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    file_name: str
    original: Optional[bytes] = None
    original_path: Optional[str] = None
    signed: Optional[bytes] = None

    @property
    def has_original(self) -> bool:
        return self.original is not None or self.original_path is not None


class DocumentStore:
    """
    Guarda el PDF original y, cuando llega, el PDF firmado de cada sesión.

    Los originales por debajo de ``spill_threshold`` quedan en memoria; los
    demás se escriben en un fichero temporal dentro de ``directory``, que se
    borra en cuanto se llama a ``remove``.
    """

    def __init__(
        self,
        max_size: int,
        directory: Optional[str] = None,
        spill_threshold: Optional[int] = None,
        validate_pdf: bool = False,
    ):
        self.max_size = max_size
        self.directory = directory
        self.spill_threshold = spill_threshold
        self.validate_pdf = validate_pdf
        self._entries: Dict[str, StoredDocument] = {}
        self._lock = threading.Lock()

    def put(self, session_id: str, data: bytes, file_name: str) -> None:
        """Stores (or replaces) the unsigned document for ``session_id``."""
        self._check_size(data)
        if self.validate_pdf:
            self._validate_pdf(data)

        path = None
        if self._should_spill(data):
            path = self._write_file(data)

        with self._lock:
            previous = self._entries.get(session_id)
            entry = StoredDocument(
                file_name=file_name,
                original=None if path else data,
                original_path=path,
                signed=previous.signed if previous else None,
            )
            self._entries[session_id] = entry

        if previous and previous.original_path and previous.original_path != path:
            self._unlink(previous.original_path)

    def get_original(self, session_id: str) -> bytes:
        entry = self._entries.get(session_id)
        if entry is None or not entry.has_original:
            raise DocumentNotFound(session_id, "original")
        if entry.original is not None:
            return entry.original
        try:
            with open(entry.original_path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise DocumentNotFound(session_id, "original")
        except OSError as e:
            raise StorageFailure(f"Error al leer {entry.original_path}: {e}") from e

    def put_signed(self, session_id: str, data: bytes) -> None:
        self._check_size(data)
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                # Sesión diferida: aún no hay original, solo el firmado
                entry = StoredDocument(file_name="")
                self._entries[session_id] = entry
            entry.signed = data

    def get_signed(self, session_id: str) -> bytes:
        entry = self._entries.get(session_id)
        if entry is None or entry.signed is None:
            raise DocumentNotFound(session_id, "firmado")
        return entry.signed

    def discard_signed(self, session_id: str) -> None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is not None:
                entry.signed = None

    def remove(self, session_id: str) -> None:
        """Idempotent: removing an unknown id is not an error."""
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry and entry.original_path:
            self._unlink(entry.original_path)

    def ids(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _check_size(self, data: bytes):
        if len(data) > self.max_size:
            raise PayloadTooLarge(len(data), self.max_size)

    def _should_spill(self, data: bytes) -> bool:
        return (
            self.directory is not None
            and self.spill_threshold is not None
            and len(data) >= self.spill_threshold
        )

    @staticmethod
    def _validate_pdf(data: bytes):
        try:
            reader = PdfReader(io.BytesIO(data))
            _ = reader.pages
        except Exception:
            raise InvalidDocument("PDF inválido o dañado")

    def _write_file(self, data: bytes) -> str:
        path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, path = tempfile.mkstemp(suffix=".pdf", dir=self.directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            if path:
                self._unlink(path)
            raise StorageFailure(f"No se pudo guardar el archivo: {e}") from e
        logger.debug("Documento guardado en disco: %s (%d bytes)", path, len(data))
        return path

    @staticmethod
    def _unlink(path: str):
        try:
            os.remove(path)
            logger.debug("Archivo temporal eliminado: %s", path)
        except FileNotFoundError:
            pass
