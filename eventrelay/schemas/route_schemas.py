from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Union, Annotated, Literal

from jsonpath_ng.ext import parse as parse_jsonpath

from eventrelay.enums import PropertyOperator, JsonPathOperator
from eventrelay.services.condition_evaluator import parse_script_condition
from eventrelay.services.destination_registry import NAME_PATTERN, normalize_event_types
from eventrelay.utils.serialization import to_jsonable


class PropertyCondition(BaseModel):
    type: Literal["property"]
    property: str = Field(..., min_length=1)
    operator: PropertyOperator
    value: Any = None

    @validator("value", always=True)
    def validate_value(cls, v, values):
        operator = values.get("operator")
        if operator == PropertyOperator.IN and not isinstance(v, list):
            raise ValueError("operator 'in' requires an array value")
        return v


class JsonPathCondition(BaseModel):
    type: Literal["jsonpath"]
    path: str = Field(..., min_length=1)
    operator: JsonPathOperator
    value: Any = None

    @validator("path")
    def validate_path(cls, v):
        try:
            parse_jsonpath(v)
        except Exception as e:
            raise ValueError(f"Invalid JSONPath expression: {e}")
        return v

    @validator("value", always=True)
    def validate_value(cls, v, values):
        if values.get("operator") == JsonPathOperator.COUNT and (not isinstance(v, int) or isinstance(v, bool)):
            raise ValueError("operator 'count' requires an integer value")
        return v


class ScriptCondition(BaseModel):
    type: Literal["script"]
    script: Union[str, Dict[str, Any]]

    @validator("script")
    def validate_script(cls, v):
        try:
            parse_script_condition(v)
        except ValueError as e:
            raise ValueError(f"script must be a JSON-encoded condition object: {e}")
        return v


Condition = Annotated[
    Union[PropertyCondition, JsonPathCondition, ScriptCondition],
    Field(discriminator="type"),
]


def _condition_to_dict(condition) -> Optional[dict]:
    if condition is None:
        return None
    return to_jsonable(condition.dict())


class RouteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    event_types: Union[str, List[str]] = Field(default_factory=lambda: ["*"], alias="eventTypes")
    transformation_id: str = Field(..., alias="transformationId")
    destination_id: str = Field(..., alias="destinationId")
    condition: Optional[Condition] = None
    priority: int = Field(100, ge=0, le=1000)
    enabled: bool = True

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "paid-orders-to-crm",
                "eventTypes": ["order.*"],
                "transformationId": "ck...",
                "destinationId": "ck...",
                "condition": {"type": "property", "property": "properties.plan", "operator": "in", "value": ["pro", "team"]},
                "priority": 10,
            }
        }

    @validator("name")
    def validate_name(cls, v):
        if not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v

    @validator("event_types")
    def validate_event_types(cls, v):
        normalized = normalize_event_types(v)
        if not normalized or any(not item for item in normalized):
            raise ValueError("eventTypes must contain at least one non-empty event type")
        return normalized

    def to_values(self) -> dict:
        data = self.dict(exclude={"condition"})
        data["condition"] = _condition_to_dict(self.condition)
        return data


class RouteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    event_types: Optional[Union[str, List[str]]] = Field(None, alias="eventTypes")
    transformation_id: Optional[str] = Field(None, alias="transformationId")
    destination_id: Optional[str] = Field(None, alias="destinationId")
    condition: Optional[Condition] = None
    priority: Optional[int] = Field(None, ge=0, le=1000)
    enabled: Optional[bool] = None

    class Config:
        populate_by_name = True

    @validator("name")
    def validate_name(cls, v):
        if v is not None and not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v

    @validator("event_types")
    def validate_event_types(cls, v):
        if v is None:
            return v
        return normalize_event_types(v)

    def to_values(self) -> dict:
        data = self.dict(exclude_unset=True, exclude={"condition"})
        if "condition" in self.__fields_set__:
            data["condition"] = _condition_to_dict(self.condition)
        return data

