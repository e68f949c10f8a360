"""
Configuration Validation
Validates storage, notifier and tenancy settings on startup
"""
import logging
from dataclasses import dataclass
from typing import List, Tuple

import pytz

from franchise_crm.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    component: str
    setting: str
    is_valid: bool
    message: str
    is_warning: bool = False


class ConfigValidator:
    """
    Validates runtime configuration at startup.

    Memory backends are allowed but flagged as warnings, since they lose
    all data on restart and do not share changes between processes.
    """

    SUPPORTED_BACKENDS = ("memory", "redis")

    def __init__(self, settings: Settings, strict: bool = False):
        """
        Args:
            settings: Settings to check
            strict: If True, treat warnings as errors
        """
        self.settings = settings
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        self.results = []

        for component, backend in (
            ("storage", self.settings.storage_backend),
            ("notifications", self.settings.notifier_backend),
        ):
            if backend not in self.SUPPORTED_BACKENDS:
                self._add_error(component, f"{component.upper()}_BACKEND",
                    f"Unsupported backend '{backend}' (expected one of {', '.join(self.SUPPORTED_BACKENDS)})")
            elif backend == "memory":
                self._add_warning(component, f"{component.upper()}_BACKEND",
                    f"In-memory {component} backend: data is process-local")
            else:
                self._add_success(component, f"{component.upper()}_BACKEND", f"Using {backend}")

        uses_redis = "redis" in (self.settings.storage_backend, self.settings.notifier_backend)
        if uses_redis and not self.settings.redis_url:
            self._add_error("redis", "REDIS_URL", "Redis backend selected but REDIS_URL is empty")

        if not self.settings.privileged_tenant_id.strip():
            self._add_error("tenancy", "PRIVILEGED_TENANT_ID", "Privileged tenant id must not be empty")

        if self.settings.business_timezone not in pytz.all_timezones_set:
            self._add_error("business", "BUSINESS_TIMEZONE",
                f"Unknown timezone '{self.settings.business_timezone}'")

        if not self.settings.jwt_secret:
            self._add_warning("auth", "JWT_SECRET", "JWT signatures are not verified")

        errors = [r for r in self.results if not r.is_valid and (self.strict or not r.is_warning)]
        return len(errors) == 0, self.results

    def _add_success(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, True, message))

    def _add_error(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, False, message))

    def _add_warning(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, False, message, is_warning=True))


def validate_config_on_startup(settings: Settings, strict: bool = False) -> None:
    """
    Run validation and log the outcome.

    Raises:
        RuntimeError: If validation fails
    """
    validator = ConfigValidator(settings, strict=strict)
    all_valid, results = validator.validate_all()

    for result in results:
        if result.is_valid:
            logger.info(f"✓ {result.component}: {result.message}")
        elif result.is_warning:
            logger.warning(f"⚠ {result.component}: {result.message}")
        else:
            logger.error(f"✗ {result.component}: {result.message}")

    if not all_valid:
        failed = [r.setting for r in results if not r.is_valid and (strict or not r.is_warning)]
        raise RuntimeError(f"Configuration validation failed: {', '.join(failed)}")
