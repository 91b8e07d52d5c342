#!/usr/bin/env python3
"""
Data models for GitHub organization snapshots.

Contains the value types stored by the statistics service: the composite
statistics key, the statistics snapshot itself, projects and contributors.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_date(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime truncated to milliseconds."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_millis(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds, the stored representation."""
    return (normalize_date(value) - EPOCH) // timedelta(milliseconds=1)


def from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(millis))


def parse_date(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Parse a date coming from JSON or a query string.

    Accepts ISO 8601 strings (a trailing ``Z`` is allowed), epoch milliseconds
    and datetimes.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return normalize_date(value)
    if isinstance(value, bool):
        raise ValidationError(f"Invalid date: {value!r}")
    if isinstance(value, (int, float)):
        return from_millis(int(value))
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return from_millis(int(text))
    try:
        return normalize_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def format_date(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return normalize_date(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class StatisticsKey:
    """Identity of a statistics snapshot: organization id plus snapshot date."""
    organization_id: int = 0
    snapshot_date: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "snapshot_date", normalize_date(self.snapshot_date))

    def with_snapshot_date(self, snapshot_date: Optional[datetime]) -> 'StatisticsKey':
        return replace(self, snapshot_date=snapshot_date)

    def is_complete(self) -> bool:
        return self.organization_id is not None and self.snapshot_date is not None

    def validate(self) -> None:
        """Raise ValidationError unless the key can identify a stored record."""
        if self.organization_id is None:
            raise ValidationError("Statistics key is missing the organization id")
        if isinstance(self.organization_id, bool) or not isinstance(self.organization_id, int):
            raise ValidationError(f"Organization id must be an integer, got {self.organization_id!r}")
        if self.organization_id < 0:
            raise ValidationError(f"Organization id must not be negative, got {self.organization_id}")
        if self.snapshot_date is None:
            raise ValidationError("Statistics key is missing the snapshot date")


COUNTER_FIELDS = (
    "private_project_count",
    "public_project_count",
    "members_count",
    "teams_count",
    "all_contributors_count",
    "all_stars_count",
    "all_forks_count",
    "all_size_count",
    "program_languages_count",
    "tags_count",
)


@dataclass
class Statistics:
    """
    One organization's metric snapshot at one point in time.

    Every counter is ``None`` until it was measured; ``None`` and ``0`` are
    different values and both survive a round trip through the store.
    """
    key: Optional[StatisticsKey] = None
    organization_name: Optional[str] = None
    private_project_count: Optional[int] = None
    public_project_count: Optional[int] = None
    members_count: Optional[int] = None
    teams_count: Optional[int] = None
    all_contributors_count: Optional[int] = None
    all_stars_count: Optional[int] = None
    all_forks_count: Optional[int] = None
    all_size_count: Optional[int] = None
    program_languages_count: Optional[int] = None
    tags_count: Optional[int] = None

    @classmethod
    def create(cls, organization_id: int, snapshot_date: datetime, **kwargs) -> 'Statistics':
        return cls(key=StatisticsKey(organization_id, snapshot_date), **kwargs)

    @property
    def organization_id(self) -> int:
        return 0 if self.key is None else self.key.organization_id

    @property
    def snapshot_date(self) -> Optional[datetime]:
        return None if self.key is None else self.key.snapshot_date

    @snapshot_date.setter
    def snapshot_date(self, value: Optional[datetime]) -> None:
        if self.key is None:
            self.key = StatisticsKey()
        self.key = self.key.with_snapshot_date(value)

    def counters(self) -> Dict[str, Optional[int]]:
        return {name: getattr(self, name) for name in COUNTER_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.organization_id,
            "snapshot_date": format_date(self.snapshot_date),
            "organization_name": self.organization_name,
        }
        data.update(self.counters())
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Statistics':
        """Build a record from its JSON form, keeping absent counters unset."""
        try:
            organization_id = data["id"]
        except KeyError as e:
            raise ValidationError("Statistics entry is missing 'id'") from e
        counters = {name: data.get(name) for name in COUNTER_FIELDS}
        for name, value in counters.items():
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValidationError(f"Counter '{name}' must be an integer or null, got {value!r}")
        return cls(
            key=StatisticsKey(organization_id, parse_date(data.get("snapshot_date"))),
            organization_name=data.get("organization_name"),
            **counters,
        )


@dataclass
class Project:
    """A repository of an organization as seen at one snapshot."""
    name: str
    organization_name: str
    snapshot_date: Optional[datetime] = None
    id: Optional[int] = None
    git_hub_project_id: Optional[int] = None
    url: Optional[str] = None
    description: Optional[str] = None
    stars_count: Optional[int] = None
    forks_count: Optional[int] = None
    last_pushed: Optional[str] = None
    primary_language: Optional[str] = None
    language_list: List[str] = field(default_factory=list)
    commits_count: Optional[int] = None
    contributors_count: Optional[int] = None
    score: Optional[int] = None
    maintainers: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.snapshot_date = normalize_date(self.snapshot_date)

    def validate(self) -> None:
        if self.snapshot_date is None:
            raise ValidationError(f"Project {self.name} has no snapshot date")

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["snapshot_date"] = format_date(self.snapshot_date)
        data["language_list"] = list(self.language_list)
        data["maintainers"] = list(self.maintainers)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if not values.get("name") or not values.get("organization_name"):
            raise ValidationError("Project entry needs 'name' and 'organization_name'")
        values["snapshot_date"] = parse_date(values.get("snapshot_date"))
        values["language_list"] = list(values.get("language_list") or [])
        values["maintainers"] = list(values.get("maintainers") or [])
        return cls(**values)


@dataclass
class Contributor:
    """A member's contribution figures for one organization snapshot."""
    id: int
    organization_id: int
    snapshot_date: Optional[datetime] = None
    name: Optional[str] = None
    url: Optional[str] = None
    organizational_commits_count: Optional[int] = None
    personal_commits_count: Optional[int] = None
    personal_projects_count: Optional[int] = None
    organizational_projects_count: Optional[int] = None
    organization_name: Optional[str] = None

    def __post_init__(self):
        self.snapshot_date = normalize_date(self.snapshot_date)

    def validate(self) -> None:
        if self.id is None or self.organization_id is None or self.snapshot_date is None:
            raise ValidationError("Contributor needs id, organization_id and snapshot_date")

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["snapshot_date"] = format_date(self.snapshot_date)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Contributor':
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "id" not in values or "organization_id" not in values:
            raise ValidationError("Contributor entry needs 'id' and 'organization_id'")
        values["snapshot_date"] = parse_date(values.get("snapshot_date"))
        return cls(**values)
