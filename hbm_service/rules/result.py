"""
Rule check results

Rule functions never raise. They return a RuleCheck and the calling service
decides: errors become a BusinessRuleViolationError, warnings are logged.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List

from hbm_service.core.exceptions import BusinessRuleViolationError

logger = logging.getLogger(__name__)


@dataclass
class RuleCheck:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def merge(self, *others: "RuleCheck") -> "RuleCheck":
        for other in others:
            self.errors.extend(other.errors)
            self.warnings.extend(other.warnings)
        return self

    def raise_for_errors(self, message: str, **details: Any) -> None:
        """
        Raise if any rule failed, otherwise log the warnings.

        Raises:
            BusinessRuleViolationError: With every error and warning in details
        """
        if self.errors:
            raise BusinessRuleViolationError(
                f"{message}: " + "; ".join(self.errors),
                details={"errors": list(self.errors), "warnings": list(self.warnings), **details},
            )
        for warning in self.warnings:
            logger.warning(f"{message}: {warning} ({details})")
