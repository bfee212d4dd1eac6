"""Unit tests for credential generation, quota policy, timestamps and errors."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from keygate.constants import CREDENTIAL_ALPHABET
from keygate.credentials.errors import (
    CredentialError,
    CredentialNotFoundError,
    MalformedStateError,
    PersistenceError,
    QuotaExceededError,
)
from keygate.credentials.generator import generate_credential_value
from keygate.credentials.models import (
    Credential,
    IdentityCredentialRecord,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from keygate.credentials.quota import QuotaPolicy


def _record(n: int) -> IdentityCredentialRecord:
    record = IdentityCredentialRecord()
    for i in range(n):
        record.append(
            Credential(
                value=f"Apikey-{i}",
                issued_at=utc_now(),
                owner_identity_id="U1",
                owner_display_name="alice",
            )
        )
    return record


class TestGenerator:
    def test_format(self) -> None:
        value = generate_credential_value()
        assert value.startswith("Apikey-")
        assert len(value) == 30
        assert all(ch in CREDENTIAL_ALPHABET for ch in value[len("Apikey-"):])

    def test_values_differ(self) -> None:
        values = {generate_credential_value() for _ in range(200)}
        assert len(values) == 200


class TestQuotaPolicy:
    def test_absent_record_can_issue(self) -> None:
        assert QuotaPolicy().can_issue(None)

    def test_boundary(self) -> None:
        policy = QuotaPolicy()
        assert policy.can_issue(_record(2))
        assert not policy.can_issue(_record(3))

    def test_over_limit_record_stays_blocked(self) -> None:
        assert not QuotaPolicy().can_issue(_record(5))
        assert QuotaPolicy().remaining(_record(5)) == 0

    def test_remaining(self) -> None:
        policy = QuotaPolicy()
        assert policy.remaining(None) == 3
        assert policy.remaining(_record(1)) == 2

    def test_custom_limit(self) -> None:
        assert not QuotaPolicy(max_credentials=1).can_issue(_record(1))


class TestRecordCount:
    def test_append_and_remove_keep_count(self) -> None:
        record = _record(3)
        assert record.count == 3
        assert record.remove("Apikey-1") is not None
        assert record.count == len(record.credentials) == 2
        assert record.remove("Apikey-1") is None
        assert record.count == 2


class TestTimestamps:
    def test_format_matches_file_layout(self) -> None:
        value = datetime(2026, 3, 4, 5, 6, 7, 89000, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2026-03-04T05:06:07.089Z"

    def test_format_converts_to_utc(self) -> None:
        value = datetime(2026, 3, 4, 7, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2026-03-04T05:00:00.000Z"

    def test_parse_z_suffix(self) -> None:
        parsed = parse_timestamp("2026-03-04T05:06:07.089Z")
        assert parsed == datetime(2026, 3, 4, 5, 6, 7, 89000, tzinfo=timezone.utc)

    def test_utc_now_is_millisecond_precise(self) -> None:
        now = utc_now()
        assert now.microsecond % 1000 == 0
        assert parse_timestamp(format_timestamp(now)) == now


class TestErrors:
    def test_hierarchy_and_message(self) -> None:
        for error in (
            QuotaExceededError("U1"),
            CredentialNotFoundError(),
            PersistenceError("disk full"),
            MalformedStateError("bad json"),
        ):
            assert isinstance(error, CredentialError)
            assert error.message == str(error)

    def test_quota_error_carries_context(self) -> None:
        error = QuotaExceededError("U1", limit=3)
        assert (error.identity_id, error.limit) == ("U1", 3)
        assert "3" in error.message
