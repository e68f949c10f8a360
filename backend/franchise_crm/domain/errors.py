"""
Domain Errors
Error taxonomy shared by the store, gateway, lifecycle and API layers
"""
from typing import Dict, List, Optional


class CRMError(Exception):
    """Base class for all CRM domain errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class CorruptedPartitionError(CRMError):
    """Stored partition data could not be parsed or validated"""

    def __init__(self, module: str, tenant_id: str, reason: str):
        self.module = module
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Partition {module}/{tenant_id} is corrupted: {reason}")


class UnknownTenantError(CRMError):
    """Tenant id is not present in the tenant registry"""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Unknown tenant: {tenant_id}")


class TenantAccessError(CRMError):
    """Scoped viewer attempted to touch another tenant's partition"""

    def __init__(self, viewer_tenant: str, owner_tenant: str):
        self.viewer_tenant = viewer_tenant
        self.owner_tenant = owner_tenant
        super().__init__(
            f"Tenant {viewer_tenant} may not write records owned by {owner_tenant}"
        )


class MissingFollowUpError(CRMError):
    """A follow-up status was requested without a due date"""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Status '{status}' requires a follow-up due date")


class ValidationError(CRMError):
    """
    Record input failed validation.

    `fields` maps each offending field to a human readable reason so the
    API layer can report all of them at once.
    """

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        self.fields = fields or {}
        super().__init__(message)

    @property
    def field_names(self) -> List[str]:
        return list(self.fields.keys())


class RecordNotFoundError(CRMError):
    """Record id does not exist in the target partition"""

    def __init__(self, module: str, record_id: str):
        self.module = module
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in {module}")


class PersistenceError(CRMError):
    """Persistence backend failed; in-memory state was left untouched"""

    def __init__(self, operation: str, key: str, cause: Exception):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"Persistence {operation} failed for {key}: {cause}")
