import math
from typing import Any
from typing import Self

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema
from pydantic_core import core_schema


class NonNegativeSeconds(float):
    """A finite duration in seconds that must be >= 0."""

    def __new__(cls, value: float) -> Self:
        if not math.isfinite(value):
            raise ValueError(f"{cls.__name__} must be finite, got {value}")
        if value < 0:
            raise ValueError(f"{cls.__name__} must be >= 0, got {value}")
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.float_schema(ge=0, allow_inf_nan=False),
        )


class PositiveSeconds(float):
    """A finite duration in seconds that must be > 0."""

    def __new__(cls, value: float) -> Self:
        if not math.isfinite(value):
            raise ValueError(f"{cls.__name__} must be finite, got {value}")
        if value <= 0:
            raise ValueError(f"{cls.__name__} must be > 0, got {value}")
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.float_schema(gt=0, allow_inf_nan=False),
        )
