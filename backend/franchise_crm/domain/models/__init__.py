"""Domain models"""

# Tenancy
from .tenant import (
    TenantStatus,
    ViewerRole,
    Tenant,
    IdentityContext,
)

# Records
from .record import (
    HistoryEntry,
    BaseRecord,
    CallContact,
    Lead,
    Vendor,
    StaffMember,
    Enquiry,
    CallLog,
    AggregatedRecord,
    DialerStatus,
    LeadStatus,
    VendorStatus,
    StaffStatus,
    EnquiryStatus,
    CallLogStatus,
    generate_record_id,
)

# Module registry
from .modules import (
    ModuleType,
    ModuleSpec,
    MODULE_SPECS,
    get_module_spec,
)

# Notifications
from .change_event import (
    ChangeOperation,
    ChangeEvent,
)
