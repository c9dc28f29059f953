from fastapi import Request

from .config import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_tokens(request: Request):
    return request.app.state.tokens


def get_hasher(request: Request):
    return request.app.state.hasher


def get_mailer(request: Request):
    return request.app.state.mailer


def get_gateway(request: Request):
    return request.app.state.gateway
