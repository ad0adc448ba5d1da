import json
from pathlib import Path

from jsonschema import Draft202012Validator

from boxcheckr.core.errors import ValidationError
from boxcheckr.services.inventory import InventoryReport

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schemas" / "inventory-1.0.schema.json"

with SCHEMA_PATH.open("r", encoding="utf-8") as f:
    _SCHEMA = json.load(f)

VALIDATOR = Draft202012Validator(_SCHEMA)

_STRING_FIELDS = (
    "hostname",
    "os",
    "os_version",
    "disk_encryption_details",
    "antivirus_details",
    "firewall_details",
    "screen_lock_details",
)
_BOOL_FIELDS = ("disk_encrypted", "antivirus_enabled", "firewall_enabled", "screen_lock_enabled")


def validate_inventory(payload: dict) -> None:
    errors = sorted(VALIDATOR.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        # Surface the first error for concise API responses.
        e = errors[0]
        loc = "/".join(str(p) for p in e.path)
        raise ValidationError(f"schema validation failed at '{loc}': {e.message}")


def parse_inventory(body: bytes) -> InventoryReport:
    """Decode and validate an agent payload; absent or null fields take defaults."""
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError("Invalid JSON") from e
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object")

    validate_inventory(payload)

    fields: dict = {}
    for name in _STRING_FIELDS:
        fields[name] = payload.get(name) or ""
    for name in _BOOL_FIELDS:
        fields[name] = bool(payload.get(name))
    # JSON Schema treats 300.0 as an integer too.
    fields["screen_lock_timeout"] = int(payload.get("screen_lock_timeout") or 0)
    return InventoryReport(**fields)
