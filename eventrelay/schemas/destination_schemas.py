from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Union

from eventrelay.enums import BodyFormat, DestinationType, HttpMethod
from eventrelay.schemas.transformation_schemas import TransformSpec
from eventrelay.services.destination_registry import NAME_PATTERN, is_valid_url, normalize_event_types


class RetryStrategy(BaseModel):
    maxRetries: int = Field(0, ge=0, le=10)
    initialDelay: int = Field(1000, ge=0, le=60000, description="Delay before the first retry in ms")
    maxDelay: int = Field(30000, ge=0, le=300000, description="Upper bound for backoff in ms")
    backoffFactor: float = Field(2, ge=1, le=10)
    retryableStatusCodes: List[int] = Field(default_factory=lambda: [408, 429, 500, 502, 503, 504])

    @validator("retryableStatusCodes", each_item=True)
    def validate_status_code(cls, v):
        if v < 100 or v > 599:
            raise ValueError("status codes must be between 100 and 599")
        return v


def _validate_config(v: Optional[dict]) -> Optional[dict]:
    if v is None:
        return v
    headers = v.get("headers")
    if headers is not None:
        if not isinstance(headers, dict) or not all(isinstance(key, str) for key in headers):
            raise ValueError("config.headers must be an object of header names to values")
    body_format = v.get("format")
    if body_format is not None and body_format not in {item.value for item in BodyFormat}:
        raise ValueError("config.format must be one of json, form, multipart")
    return v


class DestinationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    type: DestinationType = DestinationType.WEBHOOK
    url: str = Field(..., max_length=2048)
    method: HttpMethod = HttpMethod.POST
    event_types: Union[str, List[str]] = Field(default_factory=lambda: ["*"], alias="eventTypes")
    config: Dict[str, Any] = Field(default_factory=dict)
    transform: Optional[TransformSpec] = None
    secret_key: Optional[str] = Field(None, alias="secretKey", max_length=500)
    enabled: bool = True
    timeout: int = Field(5000, ge=1000, le=60000, description="Request timeout in ms")
    retry_strategy: Optional[RetryStrategy] = Field(None, alias="retryStrategy")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "crm-webhook",
                "type": "webhook",
                "url": "https://example.test/hook",
                "eventTypes": ["order.paid"],
                "secretKey": "s3cr3t",
                "config": {"headers": {"X-Source": "eventrelay"}, "format": "json"},
            }
        }

    @validator("name")
    def validate_name(cls, v):
        if not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v

    @validator("url")
    def validate_url(cls, v):
        if not is_valid_url(v):
            raise ValueError("url must be a valid http(s) URL")
        return v

    @validator("event_types")
    def validate_event_types(cls, v):
        return normalize_event_types(v)

    @validator("config")
    def validate_config(cls, v):
        return _validate_config(v)


class DestinationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    type: Optional[DestinationType] = None
    url: Optional[str] = Field(None, max_length=2048)
    method: Optional[HttpMethod] = None
    event_types: Optional[Union[str, List[str]]] = Field(None, alias="eventTypes")
    config: Optional[Dict[str, Any]] = None
    transform: Optional[TransformSpec] = None
    secret_key: Optional[str] = Field(None, alias="secretKey", max_length=500)
    enabled: Optional[bool] = None
    timeout: Optional[int] = Field(None, ge=1000, le=60000)
    retry_strategy: Optional[RetryStrategy] = Field(None, alias="retryStrategy")

    class Config:
        populate_by_name = True

    @validator("name")
    def validate_name(cls, v):
        if v is not None and not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v

    @validator("url")
    def validate_url(cls, v):
        if v is not None and not is_valid_url(v):
            raise ValueError("url must be a valid http(s) URL")
        return v

    @validator("event_types")
    def validate_event_types(cls, v):
        return normalize_event_types(v) if v is not None else v

    @validator("config")
    def validate_config(cls, v):
        return _validate_config(v)
