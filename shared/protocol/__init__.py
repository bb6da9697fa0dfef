from .frames import (
    build_frame,
    error_detail,
    make_chat_request,
    make_ping,
    new_message_id,
    parse_frame,
)

__all__ = [
    "build_frame",
    "error_detail",
    "make_chat_request",
    "make_ping",
    "new_message_id",
    "parse_frame",
]
