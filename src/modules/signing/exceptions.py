class RelayError(Exception):
    """Base exception for signing relay errors"""
    pass


class SessionNotFound(RelayError):
    """Unknown session id"""

    def __init__(self, session_id: str):
        super().__init__(f"Sesión no encontrada: {session_id}")
        self.session_id = session_id


class DocumentNotFound(RelayError):
    """The session exists but holds no document of the requested kind"""

    def __init__(self, session_id: str, kind: str = "original"):
        super().__init__(f"Documento {kind} no disponible para {session_id}")
        self.session_id = session_id
        self.kind = kind


class NotReady(RelayError):
    """Download attempted before the signer completed the session"""

    def __init__(self, session_id: str, status: str):
        super().__init__(f"La firma de {session_id} no se ha completado (estado: {status})")
        self.session_id = session_id
        self.status = status


class PayloadTooLarge(RelayError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"El tamaño máximo es {limit // (1024 * 1024)} MB (recibido: {size} bytes)")
        self.size = size
        self.limit = limit


class InvalidDocument(RelayError):
    """Original rejected by the PDF integrity check"""
    pass


class UnsupportedOperation(RelayError):
    pass


class StorageFailure(RelayError):
    """Underlying read/write error; the session keeps its prior state"""
    pass


class DecodeFailure(RelayError):
    """Malformed submission payload; never surfaced to the signer"""
    pass
