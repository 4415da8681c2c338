from fastapi import Request

from modules.signing.services.protocol import SigningProtocol


def get_protocol(request: Request) -> SigningProtocol:
    return request.app.state.protocol
