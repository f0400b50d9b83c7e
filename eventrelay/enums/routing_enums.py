"""
Routing-related enums for the application.
"""

from enum import Enum


class DestinationType(str, Enum):
    SLACK = "slack"
    MIXPANEL = "mixpanel"
    WEBHOOK = "webhook"
    CUSTOM = "custom"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class BodyFormat(str, Enum):
    JSON = "json"
    FORM = "form"
    MULTIPART = "multipart"


class TransformationType(str, Enum):
    IDENTITY = "identity"
    TEMPLATE = "template"
    SCRIPT = "script"
    JSONPATH = "jsonpath"
    MAPPING = "mapping"
    SLACK = "slack"
    MIXPANEL = "mixpanel"


class ConditionType(str, Enum):
    PROPERTY = "property"
    JSONPATH = "jsonpath"
    SCRIPT = "script"


class PropertyOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IN = "in"
    EXISTS = "exists"


class JsonPathOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    EXISTS = "exists"
    COUNT = "count"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


class ScriptOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    REGEX = "regex"
    AND = "and"
    OR = "or"
    NOT = "not"


class ProviderType(str, Enum):
    STRIPE = "stripe"
