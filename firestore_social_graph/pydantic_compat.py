import logging
from typing import Any, Dict, Optional, Set

import pydantic
from packaging.version import parse
from pydantic.version import VERSION

logger = logging.getLogger(__name__)

version_parsed = parse(str(VERSION))

if version_parsed.major >= 2:
    PydanticVersion = 2
    from pydantic import ConfigDict
else:
    PydanticVersion = 1
    ConfigDict = None  # type: ignore[assignment,misc]

PYDANTIC_V2_11_PLUS = (version_parsed.major, version_parsed.minor) >= (2, 11)

logger.debug(f"Running on Pydantic {VERSION}")

BaseModel: type = pydantic.BaseModel
Field: type = pydantic.Field
PrivateAttr = pydantic.PrivateAttr


# Pydantic V1: __fields__; Pydantic V2: model_fields
def get_model_fields(cls: type) -> dict:
    if PydanticVersion == 1:
        return getattr(cls, "__fields__", {})
    return getattr(cls, "model_fields", {})  # type: ignore[attr-defined]


def get_model_config() -> Dict[str, Any]:
    """
    Config that lets documents be built from either Firestore field names
    (aliases) or Python attribute names.

    Enum fields are stored as their plain values so documents stay
    readable from other clients.
    """
    if PydanticVersion == 1:
        return {
            "allow_population_by_field_name": True,
            "use_enum_values": True,
            "validate_all": True,
        }
    if PYDANTIC_V2_11_PLUS:
        return ConfigDict(
            validate_by_name=True,
            validate_by_alias=True,
            use_enum_values=True,
            validate_default=True,
        )
    return ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)


def model_dump_compat(
    instance: Any,
    exclude: Optional[Set[str]] = None,
    include: Optional[Set[str]] = None,
    exclude_unset: bool = False,
    exclude_none: bool = False,
    by_alias: bool = False,
) -> Dict[str, Any]:
    if PydanticVersion == 1:
        return instance.dict(
            exclude=exclude,
            include=include,
            exclude_unset=exclude_unset,
            exclude_none=exclude_none,
            by_alias=by_alias,
        )
    return instance.model_dump(
        exclude=exclude,
        include=include,
        exclude_unset=exclude_unset,
        exclude_none=exclude_none,
        by_alias=by_alias,
    )


# Raised when a stored document does not fit its model.
DocumentValidationError = pydantic.ValidationError

__all__ = [
    "BaseModel",
    "DocumentValidationError",
    "Field",
    "PrivateAttr",
    "ConfigDict",
    "get_model_fields",
    "get_model_config",
    "model_dump_compat",
    "PydanticVersion",
    "PYDANTIC_V2_11_PLUS",
]
