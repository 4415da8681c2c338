from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from modules.signing.controllers.responses import pdf_response
from modules.signing.dependencies import get_protocol
from modules.signing.exceptions import DecodeFailure
from modules.signing.models.schemas import CreateSessionRequest, SessionCreatedResponse
from modules.signing.services.protocol import SigningProtocol, decode_base64

router = APIRouter(
    tags=["sessions"]
)


def decode_document(data: str) -> bytes:
    try:
        return decode_base64(data)
    except DecodeFailure:
        raise HTTPException(400, "El documento debe enviarse en base64")


def session_links(request: Request, session_id: str) -> SessionCreatedResponse:
    return SessionCreatedResponse(
        id=session_id,
        retrieval_url=str(request.url_for("get_original_document", session_id=session_id)),
        upload_url=str(request.url_for("upload_document", session_id=session_id)),
        status_url=str(request.url_for("session_status", session_id=session_id)),
        download_url=str(request.url_for("download_signed", session_id=session_id)),
    )


@router.post("", response_model=SessionCreatedResponse)
def create_session(
    payload: CreateSessionRequest,
    request: Request,
    protocol: SigningProtocol = Depends(get_protocol),
):
    """
    Registra una sesión de firma. Sin ``data`` la sesión queda a la espera
    de que se suba el PDF por ``uploadUrl``.
    """
    document = decode_document(payload.data) if payload.data is not None else None
    session = protocol.create_session(payload.file_name, document, session_id=payload.id)
    return session_links(request, session.id)


@router.put("/{session_id}/document")
async def upload_document(
    session_id: str,
    request: Request,
    protocol: SigningProtocol = Depends(get_protocol),
):
    body = await request.body()
    if not body:
        raise HTTPException(400, "Cuerpo vacío")
    await run_in_threadpool(protocol.upload_original, session_id, body)
    return PlainTextResponse("OK")


@router.get("/{session_id}/status")
def session_status(session_id: str, protocol: SigningProtocol = Depends(get_protocol)):
    """Estado de la sesión; ``not_found`` si no existe o ya caducó."""
    return protocol.status(session_id)


@router.get("/{session_id}/download")
def download_signed(session_id: str, protocol: SigningProtocol = Depends(get_protocol)):
    data, file_name = protocol.download(session_id)
    return pdf_response(data, file_name)
