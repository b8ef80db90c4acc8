"""Identity and role models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import field_validator

from pytelesync.models._base import TelesyncBaseModel


class Role(StrEnum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class Identity(TelesyncBaseModel):
    """An authenticated user as reported by the identity provider."""

    uid: str
    email: str | None = None
    display_name: str | None = None

    @field_validator("uid")
    @classmethod
    def _normalize_uid(cls, value: str) -> str:
        uid = value.strip()
        if not uid:
            raise ValueError("uid must be non-empty")
        return uid

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        email = value.strip().lower()
        return email or None
