"""
JSON schemas for configuration validation.
"""

REMOTE_SCHEMA = {
    "type": "object",
    "properties": {
        "url": {"type": ["string", "null"]},
        "api_key": {"type": ["string", "null"]},
        "rest_path": {"type": "string"},
        "rpc_function": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "default_page_size": {"type": "integer", "minimum": 1},
        "schema_prefix": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "global_schema": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
    },
    "additionalProperties": False,
}

RESILIENCE_SCHEMA = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "failure_threshold": {"type": "integer", "minimum": 1},
        "recovery_timeout": {"type": "number", "minimum": 0.0},
        "half_open_successes": {"type": "integer", "minimum": 1},
    },
    "additionalProperties": False,
}

IDENTIFIERS_SCHEMA = {
    "type": "object",
    "properties": {
        "id_column": {"type": "string"},
        "name_column": {"type": "string"},
    },
    "additionalProperties": False,
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "log_queries": {"type": "boolean"},
        "log_fallbacks": {"type": "boolean"},
        "redact_api_keys": {"type": "boolean"},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "remote": REMOTE_SCHEMA,
        "resilience": RESILIENCE_SCHEMA,
        "identifiers": IDENTIFIERS_SCHEMA,
        "logging": LOGGING_SCHEMA,
    },
}
