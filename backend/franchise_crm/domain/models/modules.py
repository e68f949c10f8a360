"""
Module Definitions
Maps each business module to its record type, storage key and status rules
"""
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple, Type
from enum import Enum

from .record import (
    BaseRecord,
    CallContact,
    CallLog,
    CallLogStatus,
    DialerStatus,
    Enquiry,
    EnquiryStatus,
    Lead,
    LeadStatus,
    StaffMember,
    StaffStatus,
    Vendor,
    VendorStatus,
)


class ModuleType(str, Enum):
    """Business modules backed by a partitioned record store"""
    DIALER_CONTACT = "dialer_contact"
    LEAD = "lead"
    VENDOR = "vendor"
    STAFF = "staff"
    ENQUIRY = "enquiry"
    CALL_LOG = "call_log"


@dataclass(frozen=True)
class ModuleSpec:
    """Static description of a module's records and their lifecycle rules."""
    module: ModuleType
    storage_key: str
    record_class: Type[BaseRecord]
    untouched_status: Optional[str]
    follow_up_status: Optional[str]
    required_fields: Tuple[str, ...]
    default_notes: Dict[str, str] = field(default_factory=dict)

    @property
    def statuses(self) -> List[str]:
        return [s.value for s in self.record_class.STATUS_ENUM]

    @property
    def campaignable(self) -> bool:
        return self.untouched_status is not None

    def default_note(self, status: str) -> str:
        """Canned history note used when the caller supplies none."""
        return self.default_notes.get(status) or f"Status changed to {status}."


_OUTREACH_NOTES = {
    "No Answer": "Call not answered.",
    "Not Interested": "Not interested at this time.",
    "Interested": "Showed interest.",
    "Callback": "Asked for a callback.",
    "Completed": "Call completed.",
}


MODULE_SPECS: Dict[str, ModuleSpec] = {
    ModuleType.DIALER_CONTACT.value: ModuleSpec(
        module=ModuleType.DIALER_CONTACT,
        storage_key="auto_dialer_data",
        record_class=CallContact,
        untouched_status=DialerStatus.PENDING.value,
        follow_up_status=DialerStatus.CALLBACK.value,
        required_fields=("name", "phone"),
        default_notes=dict(_OUTREACH_NOTES),
    ),
    ModuleType.LEAD.value: ModuleSpec(
        module=ModuleType.LEAD,
        storage_key="leads_data",
        record_class=Lead,
        untouched_status=LeadStatus.NEW.value,
        follow_up_status=LeadStatus.CALLBACK.value,
        required_fields=("name", "phone"),
        default_notes={
            **_OUTREACH_NOTES,
            "Qualified": "Lead qualified.",
            "Rejected": "Lead rejected.",
            "Converted": "Lead converted to franchise partner.",
        },
    ),
    ModuleType.VENDOR.value: ModuleSpec(
        module=ModuleType.VENDOR,
        storage_key="vendor_data",
        record_class=Vendor,
        untouched_status=VendorStatus.PENDING.value,
        follow_up_status=VendorStatus.CALLBACK.value,
        required_fields=("owner_name", "phone"),
        default_notes={
            **_OUTREACH_NOTES,
            "Active": "Vendor attached.",
            "Inactive": "Vendor deactivated.",
        },
    ),
    ModuleType.STAFF.value: ModuleSpec(
        module=ModuleType.STAFF,
        storage_key="staff_data",
        record_class=StaffMember,
        untouched_status=None,
        follow_up_status=None,
        required_fields=("name", "phone"),
        default_notes={
            StaffStatus.ACTIVE.value: "Staff member activated.",
            StaffStatus.INACTIVE.value: "Staff member deactivated.",
        },
    ),
    ModuleType.ENQUIRY.value: ModuleSpec(
        module=ModuleType.ENQUIRY,
        storage_key="global_enquiries_data",
        record_class=Enquiry,
        untouched_status=EnquiryStatus.NEW.value,
        follow_up_status=EnquiryStatus.CALLBACK.value,
        required_fields=("name", "phone"),
        default_notes={
            **_OUTREACH_NOTES,
            "Converted": "Enquiry converted.",
            "Booked": "Booking confirmed.",
            "Closed": "Enquiry closed.",
        },
    ),
    ModuleType.CALL_LOG.value: ModuleSpec(
        module=ModuleType.CALL_LOG,
        storage_key="call_enquiries_history",
        record_class=CallLog,
        untouched_status=None,
        follow_up_status=None,
        required_fields=("name", "city"),
        default_notes={
            CallLogStatus.TRANSFERRED.value: "Call transferred.",
            CallLogStatus.CLOSED.value: "Call closed.",
        },
    ),
}


def get_module_spec(module: str) -> ModuleSpec:
    """Look up a module definition by its value."""
    key = module.value if isinstance(module, ModuleType) else module
    if key not in MODULE_SPECS:
        available = ", ".join(MODULE_SPECS.keys())
        raise ValueError(f"Unknown module: {key}. Available: {available}")
    return MODULE_SPECS[key]


def with_default_notes(spec: ModuleSpec, overrides: Dict[str, str]) -> ModuleSpec:
    """Return a copy of spec with configured default notes merged in."""
    if not overrides:
        return spec
    return replace(spec, default_notes={**spec.default_notes, **overrides})
