"""QAP1 protocol client for Rserve."""

from .codec import decode_expression, decode_response, encode_request
from .connection import Connection, ServerInfo, State, connect, evaluate, parse_address
from .errors import (
    ConnectionBusy,
    DecodeError,
    EvaluationError,
    HandshakeError,
    InvalidAddress,
    QapConnectionError,
    QapError,
    QapTimeout,
    TruncatedResponse,
    UnsupportedType,
)
from .values import (
    Bool,
    BoolVec,
    Char,
    Double,
    DoubleVec,
    Int,
    IntVec,
    Null,
    Str,
    StrVec,
    Value,
)

__all__ = [
    "Bool",
    "BoolVec",
    "Char",
    "Connection",
    "ConnectionBusy",
    "DecodeError",
    "Double",
    "DoubleVec",
    "EvaluationError",
    "HandshakeError",
    "Int",
    "IntVec",
    "InvalidAddress",
    "Null",
    "QapConnectionError",
    "QapError",
    "QapTimeout",
    "ServerInfo",
    "State",
    "Str",
    "StrVec",
    "TruncatedResponse",
    "UnsupportedType",
    "Value",
    "connect",
    "decode_expression",
    "decode_response",
    "encode_request",
    "evaluate",
    "parse_address",
]
