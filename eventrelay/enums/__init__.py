"""
Shared enums for the application.
"""

from .routing_enums import (
    DestinationType,
    HttpMethod,
    BodyFormat,
    TransformationType,
    ConditionType,
    PropertyOperator,
    JsonPathOperator,
    ScriptOperator,
    ProviderType
)

__all__ = [
    "DestinationType",
    "HttpMethod",
    "BodyFormat",
    "TransformationType",
    "ConditionType",
    "PropertyOperator",
    "JsonPathOperator",
    "ScriptOperator",
    "ProviderType"
]
