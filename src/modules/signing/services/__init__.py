from .cleanup import RetentionSweeper
from .document_store import DocumentStore
from .protocol import SigningProtocol, classify_payload, signed_file_name
from .session_registry import SessionRegistry
from .wire import SignerRequest, SubmissionConvention, parse_signer_request

__all__ = [
    'RetentionSweeper', 'DocumentStore', 'SigningProtocol', 'classify_payload',
    'signed_file_name', 'SessionRegistry', 'SignerRequest', 'SubmissionConvention',
    'parse_signer_request',
]
