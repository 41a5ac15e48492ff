import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for request bodies: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Element payloads ---
class LayerInput(WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    substance: Optional[str] = None
    maker: Optional[str] = None
    product: Optional[str] = None
    thickness: Optional[float] = None
    thermal_conductivity: Optional[float] = Field(None, alias="thermalConductivity")
    mass: Optional[float] = None
    group: Optional[int] = None  # 1..3, assigned from position when missing


class ElementInput(WireModel):
    # Enum-like fields stay plain strings; validators.validate_element checks them in order
    name: Optional[str] = None
    type: Optional[str] = None
    sub_type: Optional[str] = Field(None, alias="subType")
    parameters: Optional[Dict[str, Any]] = None
    outside_cover: Optional[str] = Field(None, alias="outsideCover")
    build_method: Optional[str] = Field(None, alias="buildMethod")
    build_method_isolation: Optional[str] = Field(None, alias="buildMethodIsolation")
    isolation_coverage: Optional[str] = Field(None, alias="isolationCoverage")
    layers: Optional[List[LayerInput]] = None


# --- Tree payloads ---
class BuildingTypeInput(WireModel):
    name: Optional[str] = None
    type: Optional[str] = None


class SpaceInput(WireModel):
    name: Optional[str] = None
    type: Optional[str] = None
    elements: Optional[List[ElementInput]] = None  # None keeps the current elements on update


class ProjectSpaceInput(SpaceInput):
    """Space embedded in a project creation request; names its building type."""
    building_type: Optional[str] = Field(None, alias="buildingType")


class ProjectUpdate(WireModel):
    name: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    area: Optional[str] = None
    permission_date: Optional[str] = Field(None, alias="permissionDate")
    creation_date: Optional[str] = Field(None, alias="creationDate")
    building_version: Optional[str] = Field(None, alias="buildingVersion")


class ProjectCreate(ProjectUpdate):
    spaces: List[ProjectSpaceInput] = Field(default_factory=list)


# --- Sharing / identity ---
class ShareRequest(WireModel):
    email: str
    role: str


class RegisterRequest(WireModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    company_name: Optional[str] = Field(None, alias="companyName")
    company_address: Optional[str] = Field(None, alias="companyAddress")
    phone: Optional[str] = None


class UserCreate(RegisterRequest):
    """Account created by an administrator; may carry the admin role."""
    role: str = "user"


class LoginRequest(WireModel):
    email: Optional[str] = None
    password: Optional[str] = None


class DetailsUpdate(WireModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = Field(None, alias="companyName")
    company_address: Optional[str] = Field(None, alias="companyAddress")


class PasswordUpdate(WireModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")


class NotificationSettings(WireModel):
    email: bool = True
    push: bool = False
    project_updates: bool = Field(True, alias="projectUpdates")
    system_announcements: bool = Field(True, alias="systemAnnouncements")


class AppearanceSettings(WireModel):
    theme: Literal["light", "dark", "system"] = "light"
    language: str = "he"
    density: str = "comfortable"


class UserSettings(WireModel):
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    appearance: AppearanceSettings = Field(default_factory=AppearanceSettings)


class UserStatusUpdate(WireModel):
    active: bool


# --- Responses ---
class Pagination(BaseModel):
    total: int
    pages: int
    page: int
    limit: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, pages=math.ceil(total / limit) if limit else 0, page=page, limit=limit)


class ComplianceDetails(WireModel):
    checks_passed: List[str] = Field(default_factory=list, alias="checksPassed")
    checks_failed: List[str] = Field(default_factory=list, alias="checksFailed")
    recommendations: List[str] = Field(default_factory=list)


class ComplianceResult(WireModel):
    is_compliant: bool = Field(..., alias="isCompliant")
    details: ComplianceDetails


class HealthResponse(BaseModel):
    """Response model for health check"""
    status: str
    mongodb: str
