"""Data models for the Taskminder pipeline."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class Horizon(str, Enum):
    """Time window a reminder run covers."""

    TODAY = "today"
    WEEK = "week"


class Audience(str, Enum):
    """Recipient shape of a reminder run."""

    BROADCAST = "broadcast"
    PER_INDIVIDUAL = "individual"


class CompletionStatus(str, Enum):
    """Persisted gate value. Absence (None) means never started or consumed."""

    PENDING = "PENDING"
    DONE = "DONE"


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class ReminderKey:
    """One audience x horizon combination; owns its own checkpoint and gate."""

    audience: Audience
    horizon: Horizon

    @property
    def slug(self) -> str:
        return f"{self.audience.value}_{self.horizon.value}"

    @classmethod
    def parse(cls, audience: str, horizon: str) -> "ReminderKey":
        """Build a key from raw strings. Raises ValueError on unknown values."""
        return cls(Audience(audience.lower()), Horizon(horizon.lower()))


ALL_KEYS: tuple[ReminderKey, ...] = tuple(
    ReminderKey(a, h) for a in Audience for h in Horizon
)


@dataclass(frozen=True)
class WorkItem:
    """A single outstanding task row extracted from a task sheet."""

    label: str
    note: str
    due_date: date
    assignee: str

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "note": self.note,
            "due_date": self.due_date.isoformat(),
            "assignee": self.assignee,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkItem":
        return cls(
            label=str(data["label"]),
            note=str(data["note"]),
            due_date=date.fromisoformat(data["due_date"]),
            assignee=str(data["assignee"]),
        )


@dataclass
class SourceReport:
    """Qualifying items of one task sheet, in row order."""

    source_name: str
    source_url: str
    items: list[WorkItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "source_name": self.source_name,
            "source_url": self.source_url,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SourceReport":
        return cls(
            source_name=str(data["source_name"]),
            source_url=str(data["source_url"]),
            items=[WorkItem.from_dict(i) for i in data["items"]],
        )


@dataclass
class AggregationState:
    """Checkpoint payload: fully scanned sheets plus the next sheet index."""

    accumulated: list[SourceReport] = field(default_factory=list)
    resume_cursor: int = 0

    def to_dict(self) -> dict:
        return {
            "accumulated": [r.to_dict() for r in self.accumulated],
            "resume_cursor": self.resume_cursor,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AggregationState":
        cursor = int(data["resume_cursor"])
        if cursor < 0:
            raise ValueError(f"negative resume cursor: {cursor}")
        return cls(
            accumulated=[SourceReport.from_dict(r) for r in data["accumulated"]],
            resume_cursor=cursor,
        )


@dataclass
class ScanResult:
    status: ScanStatus
    reports: list[SourceReport] = field(default_factory=list)

    @property
    def suspended(self) -> bool:
        return self.status == ScanStatus.SUSPENDED


@dataclass(frozen=True)
class SheetInfo:
    """A tab of the task workbook."""

    title: str
    sheet_id: int
    hidden: bool = False


@dataclass(frozen=True)
class StaffMember:
    name: str
    email: str


@dataclass(frozen=True)
class IndividualTarget:
    """A staff member receiving their own filtered reminders."""

    name: str
    email: str
    today_doc_url: str | None = None
    week_doc_url: str | None = None

    def doc_url_for(self, horizon: Horizon) -> str | None:
        return self.today_doc_url if horizon == Horizon.TODAY else self.week_doc_url


@dataclass(frozen=True)
class ReminderConfig:
    """Read-only snapshot of roster, addresses and destination documents."""

    staff: tuple[StaffMember, ...] = ()
    broadcast_recipients: tuple[StaffMember, ...] = ()
    broadcast_today_doc_url: str | None = None
    broadcast_week_doc_url: str | None = None
    individuals: tuple[IndividualTarget, ...] = ()

    def broadcast_doc_url_for(self, horizon: Horizon) -> str | None:
        if horizon == Horizon.TODAY:
            return self.broadcast_today_doc_url
        return self.broadcast_week_doc_url


@dataclass
class DeliveryResult:
    """Outcome of one recipient branch of a dispatch."""

    recipient: str
    success: bool
    doc_url: str | None = None
    error: str | None = None


@dataclass
class DispatchOutcome:
    key: ReminderKey
    skipped: bool = False
    gate_status: CompletionStatus | None = None
    deliveries: list[DeliveryResult] = field(default_factory=list)


# --- Rendered report (document-independent) ---

@dataclass
class TableCell:
    text: str
    bold: bool = False
    font_size: int = 10


@dataclass
class ReportSection:
    heading: str
    link_url: str
    column_widths: list[int]
    rows: list[list[TableCell]]


@dataclass
class ReportDocument:
    title: str
    intro: str | None = None
    sections: list[ReportSection] = field(default_factory=list)
