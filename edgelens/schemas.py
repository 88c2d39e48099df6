"""
EdgeLens - Settings Schemas
===========================
Pydantic models for filter options and the per-frame configuration record.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from edgelens.errors import ContractViolation


U8_MAX = 255
U32_MAX = 2**32 - 1


class FilterType(str, Enum):
    """Operating modes."""
    NONE = "none"
    GRAYSCALE = "grayscale"
    BLUR = "blur"
    THRESHOLD = "threshold"
    EDGE = "edge"


class HysteresisMode(str, Enum):
    """Edge-tracking strategies for the last Canny stage."""
    RASTER = "raster"  # single top-to-bottom, left-to-right pass
    FLOOD = "flood"    # connected-component propagation from strong seeds


class FilterOptions(BaseModel):
    """Numeric parameters consumed by the filters."""

    model_config = ConfigDict(extra='forbid', validate_assignment=True)

    low_threshold: int = Field(50, ge=0, le=U8_MAX)
    high_threshold: int = Field(150, ge=0, le=U8_MAX)
    blur_radius: int = Field(2, ge=0, le=U32_MAX)
    threshold_value: int = Field(128, ge=0, le=U8_MAX)

    hysteresis: HysteresisMode = HysteresisMode.RASTER
    workers: int = Field(1, ge=1)

    @model_validator(mode='after')
    def _check_threshold_order(self):
        if self.low_threshold > self.high_threshold:
            raise ValueError(
                f"low_threshold ({self.low_threshold}) must not exceed "
                f"high_threshold ({self.high_threshold})"
            )
        return self

    @classmethod
    def create(cls, **values: Any) -> 'FilterOptions':
        """Validate and build, raising ContractViolation on bad values."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ContractViolation(f"Invalid filter options: {e}") from e

    def as_dict(self) -> Dict[str, Any]:
        """Export options as a plain dictionary."""
        return self.model_dump(mode='json')


class FilterSettings(FilterOptions):
    """
    Per-frame configuration record.

    enabled=False or filter_type=none passes frames through unchanged.
    """

    filter_type: FilterType = FilterType.EDGE
    enabled: bool = True

    @classmethod
    def create(cls, **values: Any) -> 'FilterSettings':
        try:
            return cls(**values)
        except ValidationError as e:
            raise ContractViolation(f"Invalid filter settings: {e}") from e

    def merged(self, changes: Optional[Dict[str, Any]] = None, **kwargs: Any) -> 'FilterSettings':
        """Return a new record with the given fields replaced and revalidated."""
        values = self.model_dump()
        values.update(changes or {})
        values.update(kwargs)
        return FilterSettings.create(**values)

    def options(self) -> FilterOptions:
        """The numeric part of the record."""
        return FilterOptions.create(
            **self.model_dump(include=set(FilterOptions.model_fields))
        )

    @property
    def passthrough(self) -> bool:
        return not self.enabled or self.filter_type == FilterType.NONE
