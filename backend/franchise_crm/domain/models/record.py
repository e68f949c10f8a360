"""
Record Models
Per-module record shapes sharing the partitioned-record contract:
id, owner_tenant, status and an append-only interaction history.
"""
import uuid
from dataclasses import dataclass
from pydantic import BaseModel, Field
from typing import Any, ClassVar, Dict, List, Optional, Type
from datetime import datetime
from enum import Enum

from franchise_crm.utils.clock import business_now


class HistoryEntry(BaseModel):
    """One logged interaction. Never mutated once written."""

    timestamp: datetime = Field(..., description="When the interaction was logged")
    resulting_status: str = Field(..., description="Status the record moved to")
    note: str = Field(default="", description="What happened")

    model_config = {"frozen": True}


class DialerStatus(str, Enum):
    """Call outcome of an auto-dialer contact"""
    PENDING = "Pending"
    INTERESTED = "Interested"
    NOT_INTERESTED = "Not Interested"
    NO_ANSWER = "No Answer"
    CALLBACK = "Callback"
    COMPLETED = "Completed"


class LeadStatus(str, Enum):
    """Sales pipeline stage of a lead"""
    NEW = "New"
    INTERESTED = "Interested"
    QUALIFIED = "Qualified"
    NO_ANSWER = "No Answer"
    CALLBACK = "Callback"
    REJECTED = "Rejected"
    CONVERTED = "Converted"


class VendorStatus(str, Enum):
    """Onboarding status of a vendor"""
    PENDING = "Pending"
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    NO_ANSWER = "No Answer"
    CALLBACK = "Callback"
    NOT_INTERESTED = "Not Interested"


class StaffStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class EnquiryStatus(str, Enum):
    """Status of a customer or vendor enquiry"""
    NEW = "New"
    IN_PROGRESS = "In Progress"
    CALLBACK = "Callback"
    SCHEDULED = "Scheduled"
    BOOKED = "Booked"
    CONVERTED = "Converted"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


class CallLogStatus(str, Enum):
    """Handling status of an inbound/outbound call log"""
    MESSAGE_TAKEN = "Message Taken"
    PENDING = "Pending"
    TRANSFERRED = "Transferred"
    CLOSED = "Closed"


def generate_record_id(prefix: str) -> str:
    """Stable record id, e.g. VEN-3f9a1c0b2d4e"""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class BaseRecord(BaseModel):
    """
    Fields every partitioned record carries.

    `history` is ordered newest first. `note` is the current draft note
    that the next transition consumes and clears.
    """

    ID_PREFIX: ClassVar[str] = "REC"
    STATUS_ENUM: ClassVar[Type[Enum]] = DialerStatus

    id: str = Field(..., min_length=1, description="Stable record identifier")
    owner_tenant: str = Field(..., min_length=1, description="Tenant whose partition holds the record")
    status: str = Field(..., description="Module status value")
    phone: str = Field(default="", description="Primary phone number")
    city: str = Field(default="")
    note: str = Field(default="", description="Current draft note")
    next_follow_up: Optional[datetime] = None
    last_interaction_at: Optional[datetime] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=business_now)

    model_config = {"use_enum_values": True, "extra": "ignore"}

    @property
    def display_name(self) -> str:
        return getattr(self, "name", "") or ""

    def to_export_row(self) -> Dict[str, Any]:
        """Flatten for export: history collapses to its length."""
        row = self.model_dump(mode="json", exclude={"history"})
        row["history_count"] = len(self.history)
        return row


class CallContact(BaseRecord):
    """Auto-dialer contact"""

    ID_PREFIX: ClassVar[str] = "C"
    STATUS_ENUM: ClassVar[Type[Enum]] = DialerStatus

    status: DialerStatus = Field(default=DialerStatus.PENDING)
    name: str = Field(default="")
    email: str = Field(default="")


class LeadPriority(str, Enum):
    HOT = "Hot"
    WARM = "Warm"
    COLD = "Cold"


class Lead(BaseRecord):
    """Franchise sales lead"""

    ID_PREFIX: ClassVar[str] = "L"
    STATUS_ENUM: ClassVar[Type[Enum]] = LeadStatus

    status: LeadStatus = Field(default=LeadStatus.NEW)
    name: str = Field(default="")
    role: str = Field(default="")
    email: str = Field(default="")
    priority: LeadPriority = Field(default=LeadPriority.WARM)
    source: str = Field(default="")
    total_value: float = Field(default=0, ge=0)


class Vendor(BaseRecord):
    """Attached vehicle vendor"""

    ID_PREFIX: ClassVar[str] = "VEN"
    STATUS_ENUM: ClassVar[Type[Enum]] = VendorStatus

    status: VendorStatus = Field(default=VendorStatus.PENDING)
    owner_name: str = Field(default="")
    email: str = Field(default="")
    vehicle_type: str = Field(default="")
    category: str = Field(default="")
    fleet_size: int = Field(default=1, ge=0)
    documents: List[str] = Field(default_factory=list)
    remarks: str = Field(default="")

    @property
    def display_name(self) -> str:
        return self.owner_name


class StaffMember(BaseRecord):
    """Employee record"""

    ID_PREFIX: ClassVar[str] = "EMP"
    STATUS_ENUM: ClassVar[Type[Enum]] = StaffStatus

    status: StaffStatus = Field(default=StaffStatus.ACTIVE)
    name: str = Field(default="")
    email: str = Field(default="")
    role: str = Field(default="")
    department: str = Field(default="")
    branch: str = Field(default="")
    joining_date: Optional[str] = None


class EnquiryType(str, Enum):
    CUSTOMER = "Customer"
    VENDOR = "Vendor"


class Enquiry(BaseRecord):
    """
    Customer or vendor enquiry.

    `vendor_id` links the vendor created when a vendor enquiry is promoted.
    """

    ID_PREFIX: ClassVar[str] = "ENQ"
    STATUS_ENUM: ClassVar[Type[Enum]] = EnquiryStatus

    status: EnquiryStatus = Field(default=EnquiryStatus.NEW)
    name: str = Field(default="")
    email: str = Field(default="")
    enquiry_type: EnquiryType = Field(default=EnquiryType.CUSTOMER)
    details: str = Field(default="")
    priority: str = Field(default="Warm")
    vendor_id: Optional[str] = None


class CallDirection(str, Enum):
    INCOMING = "Incoming"
    OUTGOING = "Outgoing"


class CallLog(BaseRecord):
    """Call enquiry log entry"""

    ID_PREFIX: ClassVar[str] = "CL"
    STATUS_ENUM: ClassVar[Type[Enum]] = CallLogStatus

    status: CallLogStatus = Field(default=CallLogStatus.MESSAGE_TAKEN)
    name: str = Field(default="")
    direction: CallDirection = Field(default=CallDirection.INCOMING)
    caller_type: str = Field(default="Customer")
    details: str = Field(default="")
    assigned_to: str = Field(default="")
    logged_by: str = Field(default="")


@dataclass(frozen=True)
class AggregatedRecord:
    """
    Read-time decoration of a record with its origin tenant tag.

    Only ever built by the aggregation gateway; `strip()` returns the
    underlying record so the tag can never be persisted.
    """

    record: BaseRecord
    tenant_tag: str

    def strip(self) -> BaseRecord:
        return self.record

    def to_export_row(self) -> Dict[str, Any]:
        row = self.record.to_export_row()
        row["source"] = self.tenant_tag
        return row

    def to_api_dict(self) -> Dict[str, Any]:
        data = self.record.model_dump(mode="json")
        data["tenant_tag"] = self.tenant_tag
        return data
