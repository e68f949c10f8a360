"""
Record Lifecycle
Creation, field edits and status transitions with an append-only history

Transition rules:
- new status must belong to the module's status enum
- the module's follow-up status requires a due date
- exactly one HistoryEntry is prepended per transition
- the draft note is consumed and cleared
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

from pydantic import ValidationError as PydanticValidationError

from franchise_crm.domain.errors import MissingFollowUpError, ValidationError
from franchise_crm.domain.models.modules import MODULE_SPECS, ModuleSpec, get_module_spec
from franchise_crm.domain.models.record import BaseRecord, HistoryEntry, generate_record_id
from franchise_crm.utils.clock import BusinessClock

logger = logging.getLogger(__name__)


# Only transition() may change these
MANAGED_FIELDS = frozenset({
    "id",
    "owner_tenant",
    "status",
    "history",
    "next_follow_up",
    "last_interaction_at",
    "created_at",
})


def pydantic_fields(error: PydanticValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into {field: message}."""
    fields = {}
    for err in error.errors():
        name = ".".join(str(part) for part in err["loc"]) or "__root__"
        fields[name] = err["msg"]
    return fields


class RecordLifecycle:
    """Pure record transformations. Nothing here touches storage."""

    def __init__(
        self,
        clock: Optional[BusinessClock] = None,
        specs: Optional[Dict[str, ModuleSpec]] = None
    ):
        self.clock = clock or BusinessClock()
        self.specs = specs or MODULE_SPECS
        self._by_class: Dict[Type[BaseRecord], ModuleSpec] = {
            spec.record_class: spec for spec in self.specs.values()
        }

    def spec_for(self, record_or_module: Union[BaseRecord, str]) -> ModuleSpec:
        if isinstance(record_or_module, BaseRecord):
            return self._by_class[type(record_or_module)]
        key = record_or_module.value if isinstance(record_or_module, Enum) else record_or_module
        if key in self.specs:
            return self.specs[key]
        return get_module_spec(key)

    # =========================================================================
    # Creation and edits
    # =========================================================================

    def create(
        self,
        module: str,
        owner_tenant: str,
        fields: Dict[str, Any],
        follow_up_due: Optional[Union[datetime, date, str]] = None
    ) -> BaseRecord:
        """
        Build a new record in its module's untouched status.

        System-managed keys in fields are ignored, except `status`, which
        may set a valid initial status (e.g. imported vendors). Starting in
        the follow-up status needs follow_up_due, like a transition does.

        Raises:
            ValidationError: required fields missing or values invalid
            MissingFollowUpError: follow-up status without follow_up_due
        """
        spec = self.spec_for(module)
        data = {k: v for k, v in fields.items() if k not in MANAGED_FIELDS}

        missing = {
            name: "required"
            for name in spec.required_fields
            if not str(data.get(name) or "").strip()
        }
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                fields=missing
            )

        status = fields.get("status") or spec.untouched_status or spec.statuses[0]
        self._check_status(spec, status)

        if status == spec.follow_up_status and not follow_up_due:
            raise MissingFollowUpError(status)
        next_follow_up = self._parse_due(follow_up_due) if follow_up_due else None

        try:
            record = spec.record_class(
                **data,
                id=generate_record_id(spec.record_class.ID_PREFIX),
                owner_tenant=owner_tenant,
                status=status,
                next_follow_up=next_follow_up,
                created_at=self.clock.now(),
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid record fields", fields=pydantic_fields(e)) from e

        logger.debug(f"Created {spec.module.value} record {record.id} for {owner_tenant}")
        return record

    def apply_edits(self, record: BaseRecord, changes: Dict[str, Any]) -> BaseRecord:
        """
        Apply business-field edits and return a new record.

        Raises:
            ValidationError: managed, unknown or invalid fields
        """
        spec = self.spec_for(record)

        managed = {k: "managed by status transitions" for k in changes if k in MANAGED_FIELDS}
        unknown = {
            k: "unknown field" for k in changes
            if k not in MANAGED_FIELDS and k not in type(record).model_fields
        }
        if managed or unknown:
            raise ValidationError("Fields cannot be edited", fields={**managed, **unknown})

        blanked = {
            name: "required"
            for name in spec.required_fields
            if name in changes and not str(changes[name] or "").strip()
        }
        if blanked:
            raise ValidationError("Required fields cannot be blank", fields=blanked)

        try:
            return type(record).model_validate({**record.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError("Invalid record fields", fields=pydantic_fields(e)) from e

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        record: BaseRecord,
        new_status: Union[str, Enum],
        note: Optional[str] = None,
        follow_up_due: Optional[Union[datetime, date]] = None
    ) -> BaseRecord:
        """
        Move record to new_status and log the interaction.

        Args:
            record: Current record (not modified)
            new_status: Target status
            note: History note; falls back to the draft note, then the module default
            follow_up_due: Required when new_status is the follow-up status

        Returns:
            Updated copy of the record

        Raises:
            ValidationError: new_status is not a status of this module
            MissingFollowUpError: follow-up status without follow_up_due
        """
        spec = self.spec_for(record)
        status = new_status.value if isinstance(new_status, Enum) else new_status
        self._check_status(spec, status)

        if status == spec.follow_up_status and follow_up_due is None:
            raise MissingFollowUpError(status)

        resolved_note = self._resolve_note(spec, record, status, note)
        now = self.clock.now()
        entry = HistoryEntry(timestamp=now, resulting_status=status, note=resolved_note)

        next_follow_up = record.next_follow_up
        if follow_up_due is not None:
            next_follow_up = self._as_datetime(follow_up_due)

        updated = record.model_copy(
            deep=True,
            update={
                "status": status,
                "note": "",
                "last_interaction_at": now,
                "next_follow_up": next_follow_up,
                "history": [entry] + list(record.history),
            }
        )

        logger.info(
            f"{spec.module.value} {record.id}: {record.status} -> {status}"
            + (f" (follow-up {next_follow_up})" if follow_up_due is not None else "")
        )
        return updated

    def _resolve_note(
        self,
        spec: ModuleSpec,
        record: BaseRecord,
        status: str,
        note: Optional[str]
    ) -> str:
        if note and note.strip():
            return note.strip()
        if record.note and record.note.strip():
            return record.note.strip()
        return spec.default_note(status)

    def _check_status(self, spec: ModuleSpec, status: str) -> None:
        if status not in spec.statuses:
            raise ValidationError(
                f"Invalid status '{status}' for {spec.module.value}",
                fields={"status": f"must be one of: {', '.join(spec.statuses)}"}
            )

    def _parse_due(self, value: Union[datetime, date, str]) -> datetime:
        """Due date from a caller or an imported ISO string."""
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip())
            except ValueError as e:
                raise ValidationError(
                    f"Invalid follow-up date '{value}'",
                    fields={"next_follow_up": "must be an ISO date"}
                ) from e
        return self._as_datetime(value)

    def _as_datetime(self, value: Union[datetime, date]) -> datetime:
        if isinstance(value, datetime):
            return self.clock.localize(value)
        return datetime(value.year, value.month, value.day)
