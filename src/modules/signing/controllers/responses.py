from urllib.parse import quote

from fastapi import Response


def content_disposition(file_name: str) -> str:
    file_name = file_name.replace('"', "").replace("\r", "").replace("\n", "")
    try:
        file_name.encode("latin-1")
    except UnicodeEncodeError:
        fallback = file_name.encode("ascii", errors="replace").decode("ascii")
        return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(file_name)}'
    return f'attachment; filename="{file_name}"'


def pdf_response(data: bytes, file_name: str) -> Response:
    """PDF como adjunto; Content-Length lo fija Response."""
    return Response(
        content=data,
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(file_name),
            "Cache-Control": "no-cache",
        },
    )
