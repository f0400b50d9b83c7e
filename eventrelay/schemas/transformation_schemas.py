"""
Transformation request schemas and per-type config validation.
"""
from pydantic import BaseModel, Field, ValidationError, validator
from typing import Optional, List, Dict, Any, Union

from eventrelay.enums import TransformationType
from eventrelay.services.destination_registry import NAME_PATTERN
from eventrelay.services.transformer_service import transformer_service


class TemplateConfig(BaseModel):
    template: Optional[str] = None
    templates: Optional[Dict[str, str]] = None

    @validator("templates", always=True)
    def exactly_one_template_source(cls, v, values):
        if bool(values.get("template")) == bool(v):
            raise ValueError("Provide either 'template' or 'templates'")
        return v


class ScriptConfig(BaseModel):
    script: Union[str, Dict[str, Any]]


class JsonPathConfig(BaseModel):
    mapping: Dict[str, str]
    defaults: Dict[str, Any] = Field(default_factory=dict)

    @validator("mapping")
    def mapping_not_empty(cls, v):
        if not v:
            raise ValueError("mapping must not be empty")
        return v


class MappingConfig(BaseModel):
    mapping: Dict[str, Any]
    includeOriginal: Union[bool, List[str]] = False
    fixed: Dict[str, Any] = Field(default_factory=dict)

    @validator("mapping")
    def validate_sources(cls, v):
        if not v:
            raise ValueError("mapping must not be empty")
        for target, source in v.items():
            if isinstance(source, str):
                continue
            if isinstance(source, list) and source and all(isinstance(item, str) for item in source):
                continue
            if isinstance(source, dict) and isinstance(source.get("path"), str):
                continue
            raise ValueError(f"Invalid source for '{target}': use a path, a list of paths or {{path, default}}")
        return v


class SlackConfig(BaseModel):
    username: Optional[str] = None
    icon_emoji: Optional[str] = None
    channel: Optional[str] = None
    message: Optional[str] = None
    blocks: Optional[List[Dict[str, Any]]] = None


class MixpanelConfig(BaseModel):
    includeProperties: Optional[Union[bool, List[str]]] = None
    excludeProperties: Optional[List[str]] = None
    eventNamePrefix: Optional[str] = None

    @validator("includeProperties")
    def include_is_false_or_list(cls, v):
        if v is True:
            raise ValueError("includeProperties must be false or a list of property names")
        return v


CONFIG_MODELS = {
    TransformationType.TEMPLATE.value: TemplateConfig,
    TransformationType.SCRIPT.value: ScriptConfig,
    TransformationType.JSONPATH.value: JsonPathConfig,
    TransformationType.MAPPING.value: MappingConfig,
    TransformationType.SLACK.value: SlackConfig,
    TransformationType.MIXPANEL.value: MixpanelConfig,
}


def validate_transformation_config(transform_type: str, config: Optional[dict]) -> dict:
    """
    Check ``config`` against the shape its ``transform_type`` expects and make
    sure it compiles. Raises ``ValueError`` with a readable message.
    """
    config = config or {}
    if not isinstance(config, dict):
        raise ValueError("config must be an object")

    model = CONFIG_MODELS.get(transform_type)
    if model is not None:
        try:
            model(**config)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
                for error in e.errors()
            )
            raise ValueError(f"Invalid {transform_type} config: {problems}")

    try:
        transformer_service.create_transformer({"type": transform_type, "config": config})
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid {transform_type} config: {e}")
    return config


class TransformSpec(BaseModel):
    """Inline transform attached to a destination."""
    type: TransformationType = TransformationType.IDENTITY
    config: Dict[str, Any] = Field(default_factory=dict)

    @validator("config")
    def validate_config(cls, v, values):
        transform_type = values.get("type")
        if transform_type is None:
            return v
        return validate_transformation_config(transform_type.value, v)


class TransformationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    type: TransformationType
    config: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "name": "order-to-crm",
                "type": "mapping",
                "config": {
                    "mapping": {"who": "properties.userId", "amt": ["properties.amount", "properties.total"]},
                    "fixed": {"v": 1},
                },
            }
        }

    @validator("name")
    def validate_name(cls, v):
        if not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v

    @validator("config")
    def validate_config(cls, v, values):
        transform_type = values.get("type")
        if transform_type is None:
            return v
        return validate_transformation_config(transform_type.value, v)


class TransformationUpdate(BaseModel):
    """Config is re-validated in the service against the effective type."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    type: Optional[TransformationType] = None
    config: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None

    @validator("name")
    def validate_name(cls, v):
        if v is not None and not NAME_PATTERN.match(v):
            raise ValueError("name may only contain letters, numbers, underscores and hyphens")
        return v
