from datetime import datetime, timedelta, timezone

import pytest

from org_stats.errors import ValidationError
from org_stats.models import (
    Contributor,
    Project,
    Statistics,
    StatisticsKey,
    format_date,
    from_millis,
    parse_date,
    to_millis,
)


def test_default_key_is_incomplete():
    key = StatisticsKey()
    assert key.organization_id == 0
    assert key.snapshot_date is None
    assert not key.is_complete()
    with pytest.raises(ValidationError):
        key.validate()


def test_key_equality_is_exact():
    date = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert StatisticsKey(1, date) == StatisticsKey(1, date)
    assert StatisticsKey(1, date) != StatisticsKey(2, date)
    assert StatisticsKey(1, date) != StatisticsKey(1, date + timedelta(milliseconds=1))
    assert len({StatisticsKey(1, date), StatisticsKey(1, date)}) == 1


def test_key_normalizes_to_utc_milliseconds():
    naive = datetime(2024, 5, 1, 12, 0, 0, 123456)
    key = StatisticsKey(7, naive)
    assert key.snapshot_date == datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)

    other_zone = datetime(2024, 5, 1, 14, 0, 0, 123999, tzinfo=timezone(timedelta(hours=2)))
    assert StatisticsKey(7, other_zone) == key


def test_key_with_snapshot_date_returns_new_key():
    key = StatisticsKey(3)
    dated = key.with_snapshot_date(datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert key.snapshot_date is None
    assert dated.organization_id == 3
    assert dated.is_complete()


def test_key_rejects_negative_organization_id():
    with pytest.raises(ValidationError):
        StatisticsKey(-1, datetime.now(timezone.utc)).validate()


def test_snapshot_date_setter_creates_key():
    statistics = Statistics(organization_name="acme")
    assert statistics.organization_id == 0
    assert statistics.snapshot_date is None

    statistics.snapshot_date = datetime(2024, 2, 3, tzinfo=timezone.utc)
    assert statistics.key == StatisticsKey(0, datetime(2024, 2, 3, tzinfo=timezone.utc))


def test_snapshot_date_setter_keeps_organization_id():
    statistics = Statistics.create(42, datetime(2024, 2, 3, tzinfo=timezone.utc))
    statistics.snapshot_date = datetime(2024, 2, 4, tzinfo=timezone.utc)
    assert statistics.organization_id == 42
    assert statistics.snapshot_date == datetime(2024, 2, 4, tzinfo=timezone.utc)


def test_counters_default_to_unset():
    statistics = Statistics.create(1, datetime.now(timezone.utc))
    assert all(value is None for value in statistics.counters().values())


def test_dict_round_trip_keeps_null_and_zero_apart():
    statistics = Statistics.create(
        5, datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc),
        organization_name="acme", teams_count=0, all_stars_count=None, members_count=12,
    )
    data = statistics.to_dict()
    assert data["id"] == 5
    assert data["snapshot_date"] == "2024-03-01T08:30:00.000Z"
    assert data["teams_count"] == 0
    assert data["all_stars_count"] is None

    restored = Statistics.from_dict(data)
    assert restored == statistics
    assert restored.teams_count == 0
    assert restored.all_stars_count is None


def test_from_dict_requires_id():
    with pytest.raises(ValidationError):
        Statistics.from_dict({"snapshot_date": "2024-01-01T00:00:00Z"})


@pytest.mark.parametrize("value", ["abc", "3", 2.5, True, [1]])
def test_from_dict_rejects_non_integer_counters(value):
    with pytest.raises(ValidationError):
        Statistics.from_dict({"id": 1, "snapshot_date": "2024-01-01T00:00:00Z", "members_count": value})


def test_millis_round_trip():
    date = datetime(2023, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)
    assert from_millis(to_millis(date)) == date
    assert to_millis(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0


@pytest.mark.parametrize("value, expected", [
    ("2024-01-02T03:04:05Z", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)),
    ("2024-01-02T05:04:05+02:00", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)),
    ("1704164645000", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)),
    (1704164645000, datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)),
    ("", None),
    (None, None),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ValidationError):
        parse_date("last tuesday")


def test_format_date_none():
    assert format_date(None) is None


def test_project_from_dict_ignores_unknown_fields():
    project = Project.from_dict({
        "name": "widget",
        "organization_name": "acme",
        "snapshot_date": "2024-01-01T00:00:00Z",
        "stars_count": 3,
        "unknown": "ignored",
    })
    assert project.name == "widget"
    assert project.stars_count == 3
    assert project.language_list == []
    assert project.to_dict()["snapshot_date"] == "2024-01-01T00:00:00.000Z"


def test_project_from_dict_requires_name():
    with pytest.raises(ValidationError):
        Project.from_dict({"organization_name": "acme"})


def test_contributor_validate():
    with pytest.raises(ValidationError):
        Contributor(id=1, organization_id=2).validate()
    Contributor(id=1, organization_id=2, snapshot_date=datetime.now(timezone.utc)).validate()
