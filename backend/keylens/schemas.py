"""Pydantic schemas for the HTTP API.

Request bodies mirror the dashboard's filter state; responses carry the
resolved window so the client can label its chart axis.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FilterItem(BaseModel):
    """One operator/value pair as sent by the dashboard.

    Operator and value are validated per field by
    keylens.analytics.filters, which knows each field's rules.
    """

    operator: str = Field(description="is, contains, startsWith or endsWith", examples=["is"])
    value: Any = Field(description="String or number", examples=["key_123"])


class AnalyticsQueryRequest(BaseModel):
    """Analytics query request body."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "workspaceId": "ws_123",
                "apiId": "api_123",
                "since": "24h",
                "filters": {
                    "outcomes": [{"operator": "is", "value": "VALID"}],
                    "identities": [{"operator": "contains", "value": "user_"}],
                },
            }
        },
    )

    workspace_id: str = Field(alias="workspaceId", min_length=1)
    api_id: Optional[str] = Field(default=None, alias="apiId")
    start_time: Optional[int] = Field(default=None, alias="startTime", description="Epoch ms")
    end_time: Optional[int] = Field(default=None, alias="endTime", description="Epoch ms")
    since: Optional[str] = Field(default=None, description="Relative window such as 1h, 30m or 7d")
    filters: Dict[str, Optional[List[FilterItem]]] = Field(default_factory=dict)

    def raw_filters(self) -> Dict[str, Optional[List[Dict[str, Any]]]]:
        return {
            name: None if items is None else [item.model_dump() for item in items]
            for name, items in self.filters.items()
        }


class TimeseriesResponse(BaseModel):
    """Timeseries rows plus the window and bucket size they were computed for."""

    model_config = ConfigDict(populate_by_name=True)

    granularity: str = Field(examples=["perMinute"])
    start_time: int = Field(alias="startTime")
    end_time: int = Field(alias="endTime")
    data: List[Dict[str, Any]] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: Dict[str, Any] = Field(
        description="QueryError.to_dict() payload",
        examples=[{"code": "ERR_002", "error": "UNKNOWN_FIELD", "message": "Unknown filter field"}],
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
