"""
Helpers for moving between Pydantic models and stored documents.
"""

from enum import Enum
from typing import Any, Dict, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from pastry_publishing.errors import InvalidArgumentError

ModelT = TypeVar("ModelT", bound=BaseModel)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_document(model: BaseModel, **overrides: Any) -> Dict[str, Any]:
    """Dump a model to a storage document; enums become their values, datetimes stay datetimes."""
    document = _plain(model.model_dump())
    document.update(_plain(overrides))
    return document


def parse_request(model_cls: Type[ModelT], data: Union[ModelT, Dict[str, Any]]) -> ModelT:
    """
    Accept either a built request model or raw input for one.

    Raises:
        InvalidArgumentError: If the raw input fails validation.
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]} for err in e.errors()
        ]
        raise InvalidArgumentError(f"Invalid {model_cls.__name__}", details={"errors": errors}) from e
