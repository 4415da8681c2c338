# Rutas que consume el firmador (AutoFirma). Todas las variantes de envío
# terminan en SigningProtocol.submit.
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from modules.signing.controllers.responses import pdf_response
from modules.signing.controllers.session_controller import decode_document
from modules.signing.dependencies import get_protocol
from modules.signing.models.schemas import PrestorageRequest, PrestorageResponse
from modules.signing.models.session import SessionPool
from modules.signing.services.protocol import SigningProtocol
from modules.signing.services.wire import parse_signer_request

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["signer"]
)


async def read_signer_request(request: Request, session_id: Optional[str] = None):
    body = await request.body()
    signer_request = parse_signer_request(
        request.query_params,
        body,
        request.headers.get("content-type", ""),
        session_id=session_id,
    )
    logger.debug(
        "%s %s - id=%s op=%s convención=%s",
        request.method, request.url.path,
        signer_request.id, signer_request.operation, signer_request.convention.value,
    )
    return signer_request


@router.get("/documents/{session_id}")
def get_original_document(session_id: str, protocol: SigningProtocol = Depends(get_protocol)):
    data, file_name = protocol.get_original(session_id)
    return pdf_response(data, file_name)


@router.api_route("/storage/{session_id}", methods=["GET", "POST"])
async def store_signed(
    session_id: str,
    request: Request,
    protocol: SigningProtocol = Depends(get_protocol),
):
    """
    Recibe el PDF firmado: base64 crudo, formulario ``op=put&dat=``, JSON con
    ``dat``/``data`` o, por GET, la query ``op=put&dat=``. Siempre responde OK.
    """
    signer_request = await read_signer_request(request, session_id)
    if request.method == "GET" and (
        (signer_request.operation or "").lower() != "put" or signer_request.payload is None
    ):
        return PlainTextResponse("OK")
    await run_in_threadpool(protocol.submit, session_id, signer_request.payload)
    return PlainTextResponse("OK")


@router.get("/retrieve/{session_id}")
def retrieve_signed(session_id: str, protocol: SigningProtocol = Depends(get_protocol)):
    return PlainTextResponse(protocol.retrieve_signed(session_id))


@router.api_route("/servlet", methods=["GET", "POST"])
async def servlet(request: Request, protocol: SigningProtocol = Depends(get_protocol)):
    signer_request = await read_signer_request(request)
    reply = await run_in_threadpool(protocol.dispatch, signer_request)

    if isinstance(reply.content, bytes):
        return pdf_response(reply.content, reply.file_name)
    if isinstance(reply.content, dict):
        return JSONResponse(reply.content)
    return PlainTextResponse(reply.content)


@router.post("/prestorage", response_model=PrestorageResponse)
def prestorage(
    payload: PrestorageRequest,
    request: Request,
    protocol: SigningProtocol = Depends(get_protocol),
):
    """Pre-almacena un PDF grande; caduca antes que una sesión normal."""
    document = decode_document(payload.data)
    session = protocol.create_session(
        payload.file_name, document, session_id=payload.id, pool=SessionPool.PRESTORAGE
    )
    return PrestorageResponse(
        storage_id=session.id,
        retrieval_url=str(request.url_for("get_original_document", session_id=session.id)),
    )
