"""
Compliance-check collaborator.

The regulatory algorithm lives outside this service; handlers only depend
on the `check(element) -> ComplianceResult` contract. The bundled
placeholder produces a randomized result so the endpoint can be wired
end to end.
"""
import random
from typing import Any, Dict, Optional, Protocol

from models import ComplianceDetails, ComplianceResult


class ComplianceChecker(Protocol):
    def check(self, element: Dict[str, Any]) -> ComplianceResult:
        ...


class PlaceholderComplianceChecker:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def check(self, element: Dict[str, Any]) -> ComplianceResult:
        thermal_failed = self.rng.random() <= 0.3
        details = ComplianceDetails(
            checks_passed=["Structural integrity", "Material standards"],
            checks_failed=["Thermal insulation"] if thermal_failed else [],
            recommendations=["Increase insulation thickness to meet standards"] if thermal_failed else [],
        )
        return ComplianceResult(is_compliant=not thermal_failed, details=details)
