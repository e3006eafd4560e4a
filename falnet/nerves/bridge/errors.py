#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import Any, Dict, Mapping, Type


class ErrorCode:
    """Structured status codes shared by every bridge endpoint"""
    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
    BRIDGE_NOT_FOUND = "BRIDGE_NOT_FOUND"
    BRIDGE_ALREADY_ADDED = "BRIDGE_ALREADY_ADDED"
    MISSING_PARAM = "MISSING_PARAM"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    INTERNAL = "INTERNAL"


class BridgeError(Exception):
    """
    Error carrying a status code that survives the RPC hop

    Example (wire):
        {"code": "DEVICE_NOT_FOUND", "message": "device not found: d1"}
    """

    code: str = ErrorCode.INTERNAL

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BridgeError":
        code = str(data.get("code") or ErrorCode.INTERNAL)
        message = str(data.get("message") or "")
        err_cls = _BY_CODE.get(code)
        if err_cls is None:
            return BridgeError(message, code=code)
        return err_cls(message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class DeviceNotFoundError(BridgeError):
    code = ErrorCode.DEVICE_NOT_FOUND


class BridgeNotFoundError(BridgeError):
    code = ErrorCode.BRIDGE_NOT_FOUND


class BridgeAlreadyAddedError(BridgeError):
    code = ErrorCode.BRIDGE_ALREADY_ADDED


class MissingParamError(BridgeError):
    code = ErrorCode.MISSING_PARAM


class NotSupportedError(BridgeError):
    code = ErrorCode.NOT_SUPPORTED


class NotImplementedYetError(BridgeError):
    code = ErrorCode.NOT_IMPLEMENTED


class InternalError(BridgeError):
    code = ErrorCode.INTERNAL


_BY_CODE: Dict[str, Type[BridgeError]] = {
    cls.code: cls
    for cls in (
        DeviceNotFoundError,
        BridgeNotFoundError,
        BridgeAlreadyAddedError,
        MissingParamError,
        NotSupportedError,
        NotImplementedYetError,
        InternalError,
    )
}
