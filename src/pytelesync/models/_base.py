"""Base model shared by pytelesync data models.

Every model inherits from :class:`TelesyncBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase feed keys (as emitted by
  the dashboard front-end and most JSON telemetry bridges) map to
  snake_case fields.
* ``frozen=True``: published values are immutable snapshots.
* ``allow_inf_nan=False``: non-finite floats never validate.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TelesyncBaseModel(BaseModel):
    """Base for pytelesync models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        allow_inf_nan=False,
    )
