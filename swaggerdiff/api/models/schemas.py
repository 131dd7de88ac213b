from __future__ import annotations

from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ComparisonType(str, Enum):
    diff = "diff"
    changelog = "changelog"
    breaking = "breaking"

    @property
    def subcommand(self) -> str:
        return self.value


_ORDINALS = list(ComparisonType)


class ApiDiffRequest(BaseModel):
    old_version_name: str = Field("", alias="oldVersionName")
    new_version_name: str = Field("", alias="newVersionName")
    comparison_type: ComparisonType = Field(ComparisonType.diff, alias="comparisonType")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "oldVersionName": "doc_20240101120000",
                    "newVersionName": "doc_20240301090000",
                    "comparisonType": "breaking",
                }
            ]
        },
    )

    @field_validator("comparison_type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        # accept enum names in any case and integer ordinals
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            if 0 <= v < len(_ORDINALS):
                return _ORDINALS[v]
            raise ValueError(f"unknown comparison type ordinal: {v}")
        if isinstance(v, str):
            s = v.strip()
            if s.isdigit():
                return cls._coerce_type(int(s))
            return s.lower()
        return v


class ApiResult(BaseModel):
    """Envelope returned by the embedded endpoints."""

    is_success: bool = Field(alias="isSuccess")
    data: Any = None
    message: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class VersionsResult(ApiResult):
    data: List[str] = Field(default_factory=list)


class CompareResult(ApiResult):
    data: str | None = None
