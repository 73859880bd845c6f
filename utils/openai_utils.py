"""Shared utilities for OpenAI-compatible chat API integration."""
import json
import re

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")


def strict_schema(schema: dict) -> dict:
    """Force all properties into `required[]` and set additionalProperties: false.

    Structured Outputs strict mode requires:
    - Every property listed in required[] (including those with defaults)
    - additionalProperties: false at every object level

    Handles nested models defined in $defs.
    Applied via: model_config = ConfigDict(json_schema_extra=strict_schema)
    """
    schema["required"] = list(schema.get("properties", {}).keys())
    schema["additionalProperties"] = False
    for defn in schema.get("$defs", {}).values():
        defn["required"] = list(defn.get("properties", {}).keys())
        defn.setdefault("additionalProperties", False)
    return schema


def json_schema_response_format(name: str, schema: dict) -> dict:
    """Wrap a JSON schema as a strict `response_format` request parameter."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "strict": True,
            "schema": schema,
        },
    }


def find_json_object(text: str) -> dict | None:
    """Recover a JSON object embedded in free-form model output.

    Takes the span from the first ``{`` to the last ``}``, which tolerates
    markdown fences and chatter around the payload. Returns None when there is
    no such span or it does not decode to an object.
    """
    match = _JSON_SPAN.search(text)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
