"""
Normalización de las peticiones del firmador.

Las distintas versiones de AutoFirma envían la misma información de formas
distintas (cuerpo en base64, formulario ``op=put&dat=``, JSON o query string).
Aquí se reducen todas a un único ``SignerRequest`` antes de llegar al
protocolo.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl


class SubmissionConvention(str, PyEnum):
    RAW = "raw"
    FORM = "form"
    STRUCTURED = "structured"
    QUERY = "query"
    NONE = "none"


@dataclass(frozen=True)
class SignerRequest:
    id: Optional[str]
    operation: Optional[str]
    payload: Optional[str]
    convention: SubmissionConvention


_FORM_START = re.compile(r"^(op|operation|dat|id)=")


def _looks_form_encoded(text: str) -> bool:
    return bool(_FORM_START.match(text)) or "&dat=" in text


def _first(*candidates: Optional[str]) -> Optional[str]:
    for value in candidates:
        if value:
            return value
    return None


def parse_signer_request(
    query: Mapping[str, str],
    body: bytes = b"",
    content_type: str = "",
    session_id: Optional[str] = None,
) -> SignerRequest:
    """
    Builds the canonical request from query parameters, raw body and content type.

    Body conventions take precedence over the query string; ``dat`` wins over
    ``data`` in structured bodies.
    """
    media_type = content_type.split(";")[0].strip().lower()
    text = body.decode("utf-8", errors="replace").strip() if body else ""

    fields: Dict[str, str] = {}
    payload = None
    convention = SubmissionConvention.NONE

    if text:
        if media_type == "application/json":
            try:
                data = json.loads(text)
            except ValueError:
                data = None
            if isinstance(data, dict):
                fields = {k: v for k, v in data.items() if isinstance(v, str)}
                payload = _first(fields.get("dat"), fields.get("data"))
                convention = SubmissionConvention.STRUCTURED
            else:
                payload = text
                convention = SubmissionConvention.RAW
        elif _looks_form_encoded(text):
            # por contenido, no por Content-Type
            fields = dict(parse_qsl(text, keep_blank_values=True))
            payload = fields.get("dat") or None
            convention = SubmissionConvention.FORM
        else:
            payload = text
            convention = SubmissionConvention.RAW

    if payload is None and query.get("dat"):
        payload = query.get("dat")
        convention = SubmissionConvention.QUERY

    return SignerRequest(
        id=_first(session_id, query.get("id"), fields.get("id")),
        operation=_first(
            query.get("op"), query.get("operation"), fields.get("op"), fields.get("operation")
        ),
        payload=payload,
        convention=convention,
    )
