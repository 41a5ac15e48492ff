"""
Explicit validation for tree entities.

Element rules run in a fixed order and stop at the first failing field:
name, type, subType, then the Outside Wall fields (outsideCover,
buildMethod, buildMethodIsolation, isolationCoverage). Layer groups are
normalized before any of that runs.
"""
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from errors import ValidationError

ELEMENT_SUBTYPES = {
    "Wall": ("Outside Wall", "Isolation Wall"),
    "Floor": ("Upper Open Space", "Upper Close Room"),
    "Ceiling": ("Upper Open Space", "Upper Close Room", "Upper Roof", "Under Roof"),
    "Thermal Bridge": (),
}
ELEMENT_TYPES = tuple(ELEMENT_SUBTYPES)

OUTSIDE_COVERS = ("tiah", "dry hang", "wet hang")
BUILD_METHODS = ("blocks", "concrete", "amir wall", "baranovich", "light build")
# Build methods that need an explicit isolation method
ISOLATED_BUILD_METHODS = ("blocks", "concrete", "amir wall", "baranovich")
ISOLATION_COVERAGES = ("dark color", "bright color")

BUILDING_TYPE_TYPES = ("Residential", "Schools", "Offices", "Hotels", "Commercials", "Public Gathering")
SPACE_TYPES = ("Bedroom", "Protect Space", "Wet Room", "Balcony")
PROJECT_AREAS = ("A", "B", "C", "D")
BUILDING_VERSIONS = ("version2011", "version2019", "fixSheet1", "fixSheet2")
LAYER_GROUPS = (1, 2, 3)

SUBTYPE_MISMATCH = "SubType does not match Element Type"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
MIN_PASSWORD_LENGTH = 6
# bcrypt only hashes the first 72 bytes
MAX_PASSWORD_BYTES = 72

# Cut-over dates for the regulation sheet that applies to a permission date
_VERSION_CUTOVERS = (
    (date(2020, 1, 1), "version2011"),
    (date(2021, 6, 1), "version2019"),
    (date(2022, 12, 1), "fixSheet1"),
)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def normalize_layers(layers: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Give every layer without a group the group (index mod 3) + 1."""
    normalized = []
    for index, layer in enumerate(layers or []):
        layer = dict(layer)
        if not layer.get("group"):
            layer["group"] = (index % 3) + 1
        normalized.append(layer)
    return normalized


def validate_layers(layers: List[Dict[str, Any]]):
    for position, layer in enumerate(layers, start=1):
        if layer.get("group") not in LAYER_GROUPS:
            raise ValidationError(f"Layer {position}: group must be 1, 2 or 3")
        thickness = layer.get("thickness")
        if thickness is not None and thickness <= 0:
            raise ValidationError(f"Layer {position}: thickness must be greater than 0")


def validate_subtype(element_type: str, sub_type: Optional[str]):
    if element_type not in ELEMENT_SUBTYPES:
        raise ValidationError("Please specify a valid element type")
    if not _present(sub_type):
        return
    if sub_type not in ELEMENT_SUBTYPES[element_type]:
        raise ValidationError(SUBTYPE_MISMATCH)


def validate_outside_wall(data: Dict[str, Any]):
    """Conditional fields for Wall / Outside Wall, checked in a fixed order."""
    if not _present(data.get("outsideCover")):
        raise ValidationError("Outside Cover is required for Outside Wall elements")
    if data["outsideCover"] not in OUTSIDE_COVERS:
        raise ValidationError("Invalid outside cover")

    if not _present(data.get("buildMethod")):
        raise ValidationError("Build Method is required for Outside Wall elements")
    if data["buildMethod"] not in BUILD_METHODS:
        raise ValidationError("Invalid build method")

    if data["buildMethod"] in ISOLATED_BUILD_METHODS and not _present(data.get("buildMethodIsolation")):
        raise ValidationError("Build Method Isolation is required for this build method")

    if not _present(data.get("isolationCoverage")):
        raise ValidationError("Isolation Coverage is required for Outside Wall elements")
    if data["isolationCoverage"] not in ISOLATION_COVERAGES:
        raise ValidationError("Invalid isolation coverage")


def validate_element(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize and validate an element payload; return the document fields to store."""
    element = dict(data)
    element["layers"] = normalize_layers(element.get("layers"))
    element["parameters"] = element.get("parameters") or {}

    name = (element.get("name") or "").strip()
    if not name:
        raise ValidationError("Please add an element name")
    element["name"] = name

    validate_subtype(element.get("type"), element.get("subType"))
    if not _present(element.get("subType")):
        element.pop("subType", None)

    if element["type"] == "Wall" and element.get("subType") == "Outside Wall":
        validate_outside_wall(element)
    else:
        for wall_field in ("outsideCover", "buildMethod", "buildMethodIsolation", "isolationCoverage"):
            element.pop(wall_field, None)

    validate_layers(element["layers"])
    return element


def validate_choice(value: Any, choices: Iterable[str], message: str) -> str:
    if value not in tuple(choices):
        raise ValidationError(message)
    return value


def require_name(value: Optional[str], message: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(message)
    return name


def parse_calendar_date(value: Any, field_name: str = "permissionDate") -> datetime:
    """Parse a YYYY-MM-DD (or ISO datetime) value into a UTC midnight datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        parsed = value
    else:
        text = str(value or "").strip()
        try:
            if len(text) > 10:
                # Full ISO timestamps are accepted; only their date part is kept
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            else:
                parsed = date.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid {field_name}: expected a calendar date (YYYY-MM-DD)")
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def derive_building_version(permission_date: datetime) -> str:
    day = permission_date.date()
    for cutover, version in _VERSION_CUTOVERS:
        if day < cutover:
            return version
    return "fixSheet2"


def validate_email(value: Optional[str]) -> str:
    email = (value or "").strip().lower()
    if not email:
        raise ValidationError("Please add an email")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please add a valid email")
    return email


def validate_password(value: Optional[str]) -> str:
    if not value:
        raise ValidationError("Please add a password")
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value
