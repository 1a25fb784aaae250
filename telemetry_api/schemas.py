from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SettingsPatchIn(BaseModel):
    # Acepta snake_case y camelCase (documentos legacy)
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    lower_bound_line1: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("lower_bound_line1", "lowerBoundLine1")
    )
    lower_bound_line2: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("lower_bound_line2", "lowerBoundLine2")
    )
    units_per_line1: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("units_per_line1", "unitsPerLine1")
    )
    units_per_line2: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("units_per_line2", "unitsPerLine2")
    )

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class DeviceSettingsOut(BaseModel):
    device_id: str
    lower_bound_line1: int
    lower_bound_line2: int
    units_per_line1: float
    units_per_line2: float


class IngestResult(BaseModel):
    status: str = "success"
    stored: Dict[str, Any]
    record_id: str
    persisted: bool
    alert: str


class ReadingResponse(BaseModel):
    status: str
    # "--" cuando no hay dato live
    data: Union[Dict[str, Any], str]


class HistoryResponse(BaseModel):
    status: str
    data: List[Dict[str, Any]] = Field(default_factory=list)


class RelayCommandResult(BaseModel):
    status: str = "success"
    device_id: str
    record_id: str
    relays: Dict[str, Any] = Field(default_factory=dict)
