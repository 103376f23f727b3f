"""Dismissible user notices built from marketplace errors."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from agromarket.core.exceptions import (
    BackendError,
    BackendUnavailable,
    MarketplaceException,
)

NoticeLevel = Literal["success", "error", "info"]


@dataclass(frozen=True, slots=True)
class Notice:
    level: NoticeLevel
    title: str
    message: str


def success(title: str, message: str) -> Notice:
    return Notice("success", title, message)


def error_notice(exc: BaseException, fallback: str = "Something went wrong") -> Notice:
    """Map an exception to the notice shown to the user."""
    if isinstance(exc, BackendUnavailable):
        return Notice("error", "Error", fallback)
    if isinstance(exc, BackendError):
        return Notice("error", "Error", exc.message or fallback)
    if isinstance(exc, MarketplaceException):
        return Notice("error", exc.title, exc.message or fallback)
    return Notice("error", "Error", fallback)
