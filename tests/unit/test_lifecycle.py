"""Unit tests for keygate/credentials/lifecycle.py.

Covers issuance (format, quota, admin annotations, persistence, notification),
revocation (single, absent, bulk), status and listing.
"""

from __future__ import annotations

import asyncio
import json
import re
import threading
import time
from pathlib import Path

import pytest

from keygate.constants import DEFAULT_ISSUE_REASON, MAX_CREDENTIALS_PER_IDENTITY
from keygate.credentials.errors import QuotaExceededError
from keygate.credentials.lifecycle import CredentialLifecycleManager
from keygate.credentials.store import CredentialStore
from keygate.notify import flush_notifications

_KEY_FORMAT_RE = re.compile(r"^Apikey-[A-Za-z0-9]{23}$")


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def send(self, identity_id: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("DMs closed")
        self.sent.append((identity_id, message))


class StalledNotifier:
    """Holds every send until ``release`` is set."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.delivered: list[str] = []

    async def send(self, identity_id: str, message: str) -> None:
        while not self.release.is_set():
            await asyncio.sleep(0.01)
        self.delivered.append(identity_id)


def _assert_counts_consistent(store: CredentialStore) -> None:
    for _, record in store.records():
        assert record.count == len(record.credentials)


class TestIssue:
    def test_three_distinct_well_formed_values(self, manager: CredentialLifecycleManager) -> None:
        values = [manager.issue("U1", "alice").value for _ in range(3)]
        assert len(set(values)) == 3
        for value in values:
            assert _KEY_FORMAT_RE.match(value), value
            assert len(value) == 30

    def test_fourth_issue_fails_and_store_unchanged(
        self, manager: CredentialLifecycleManager, store: CredentialStore, store_path: Path
    ) -> None:
        for _ in range(MAX_CREDENTIALS_PER_IDENTITY):
            manager.issue("U1", "alice")
        before = store_path.read_bytes()

        with pytest.raises(QuotaExceededError) as exc_info:
            manager.issue("U1", "alice")

        assert exc_info.value.identity_id == "U1"
        assert exc_info.value.limit == 3
        record = store.get_record("U1")
        assert record is not None
        assert record.count == 3
        assert store_path.read_bytes() == before

    def test_quota_applies_to_admin_issuance(self, manager: CredentialLifecycleManager) -> None:
        for _ in range(3):
            manager.issue("U2", "bob", on_behalf_of="OWNER")
        with pytest.raises(QuotaExceededError):
            manager.issue("U2", "bob", on_behalf_of="OWNER", reason="please")

    def test_quota_is_per_identity(self, manager: CredentialLifecycleManager) -> None:
        for _ in range(3):
            manager.issue("U1", "alice")
        manager.issue("U2", "bob")  # must not raise

    def test_admin_issue_carries_annotations(self, manager: CredentialLifecycleManager) -> None:
        admin = manager.issue("U2", "bob", on_behalf_of="OWNER", reason="testing")
        assert admin.issued_by_identity_id == "OWNER"
        assert admin.issue_reason == "testing"

        own = manager.issue("U2", "bob")
        assert own.issued_by_identity_id is None
        assert own.issue_reason is None

    def test_admin_issue_default_reason(self, manager: CredentialLifecycleManager) -> None:
        credential = manager.issue("U2", "bob", on_behalf_of="OWNER")
        assert credential.issue_reason == DEFAULT_ISSUE_REASON

    def test_self_issue_ignores_reason(self, manager: CredentialLifecycleManager) -> None:
        credential = manager.issue("U2", "bob", reason="ignored")
        assert credential.issue_reason is None

    def test_owner_fields_captured(self, manager: CredentialLifecycleManager) -> None:
        credential = manager.issue("U1", "alice")
        assert credential.owner_identity_id == "U1"
        assert credential.owner_display_name == "alice"
        assert credential.issued_at.tzinfo is not None

    def test_issue_persists_before_returning(
        self, manager: CredentialLifecycleManager, store_path: Path
    ) -> None:
        credential = manager.issue("U1", "alice")
        data = json.loads(store_path.read_text(encoding="utf-8"))
        assert data["U1"]["count"] == 1
        assert data["U1"]["keys"][0]["key"] == credential.value
        assert data["U1"]["keys"][0]["username"] == "alice"

    def test_notification_carries_value(self, store: CredentialStore) -> None:
        notifier = RecordingNotifier()
        manager = CredentialLifecycleManager(store, notifier=notifier)
        credential = manager.issue("U1", "alice")
        flush_notifications()
        assert len(notifier.sent) == 1
        identity_id, message = notifier.sent[0]
        assert identity_id == "U1"
        assert credential.value in message

    def test_failed_notification_keeps_credential(self, store: CredentialStore) -> None:
        manager = CredentialLifecycleManager(store, notifier=RecordingNotifier(fail=True))
        credential = manager.issue("U1", "alice")  # must not raise
        flush_notifications()
        assert store.find_owner(credential.value) is not None

    def test_stalled_notifier_does_not_block_without_loop(self, store: CredentialStore) -> None:
        notifier = StalledNotifier()
        manager = CredentialLifecycleManager(store, notifier=notifier)

        started = time.monotonic()
        credential = manager.issue("U1", "alice")
        elapsed = time.monotonic() - started

        assert elapsed < 0.5
        assert store.find_owner(credential.value) is not None
        assert notifier.delivered == []

        notifier.release.set()
        flush_notifications()
        assert notifier.delivered == ["U1"]

    @pytest.mark.asyncio
    async def test_notification_does_not_block_on_running_loop(self, store: CredentialStore) -> None:
        notifier = RecordingNotifier()
        manager = CredentialLifecycleManager(store, notifier=notifier)
        credential = manager.issue("U1", "alice")
        # Mutation committed before the notification task got a chance to run.
        assert store.find_owner(credential.value) is not None
        assert notifier.sent == []
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert len(notifier.sent) == 1


class TestRevoke:
    def test_scenario_revoke_second_of_three(
        self, manager: CredentialLifecycleManager, store: CredentialStore
    ) -> None:
        first, second, third = (manager.issue("U1", "alice") for _ in range(3))
        assert manager.revoke(second.value) is True
        assert [c.value for c in manager.list_for_identity("U1")] == [first.value, third.value]
        record = store.get_record("U1")
        assert record is not None and record.count == 2

    def test_revoke_frees_quota(self, manager: CredentialLifecycleManager) -> None:
        issued = [manager.issue("U1", "alice") for _ in range(3)]
        manager.revoke(issued[0].value)
        manager.issue("U1", "alice")  # must not raise

    def test_revoke_unknown_leaves_file_identical(
        self, manager: CredentialLifecycleManager, store: CredentialStore, store_path: Path
    ) -> None:
        manager.issue("U1", "alice")
        manager.issue("U2", "bob")
        before_file = store_path.read_bytes()
        before_memory = json.dumps(store.to_dict(), indent=2)

        assert manager.revoke("Apikey-neverissuedneverissued0") is False

        assert store_path.read_bytes() == before_file
        assert json.dumps(store.to_dict(), indent=2) == before_memory

    def test_revoke_is_terminal(self, manager: CredentialLifecycleManager) -> None:
        credential = manager.issue("U1", "alice")
        assert manager.revoke(credential.value) is True
        assert manager.revoke(credential.value) is False
        assert manager.status(credential.value).found is False

    def test_revoke_last_keeps_empty_record(
        self, manager: CredentialLifecycleManager, store: CredentialStore
    ) -> None:
        credential = manager.issue("U1", "alice")
        manager.revoke(credential.value)
        record = store.get_record("U1")
        assert record is not None
        assert record.count == 0 and record.credentials == []

    def test_revoke_persists(self, manager: CredentialLifecycleManager, store_path: Path) -> None:
        credential = manager.issue("U1", "alice")
        manager.revoke(credential.value)
        data = json.loads(store_path.read_text(encoding="utf-8"))
        assert data["U1"] == {"count": 0, "keys": []}

    def test_count_invariant_after_mixed_sequence(
        self, manager: CredentialLifecycleManager, store: CredentialStore
    ) -> None:
        a = manager.issue("U1", "alice")
        manager.issue("U2", "bob")
        b = manager.issue("U1", "alice")
        manager.revoke(a.value)
        manager.issue("U1", "alice")
        manager.revoke("Apikey-missing")
        manager.revoke(b.value)
        _assert_counts_consistent(store)


class TestRevokeAll:
    def test_scenario_after_partial_revoke(
        self, manager: CredentialLifecycleManager, store: CredentialStore
    ) -> None:
        issued = [manager.issue("U1", "alice") for _ in range(3)]
        manager.revoke(issued[1].value)

        assert manager.revoke_all_for_identity("U1") == 2
        assert manager.list_for_identity("U1") == []
        assert store.get_record("U1") is None

    def test_absent_identity_returns_zero(
        self, manager: CredentialLifecycleManager, store_path: Path
    ) -> None:
        assert manager.revoke_all_for_identity("ghost") == 0
        assert not store_path.exists()

    def test_other_identities_untouched(self, manager: CredentialLifecycleManager) -> None:
        manager.issue("U1", "alice")
        kept = manager.issue("U2", "bob")
        manager.revoke_all_for_identity("U1")
        assert [c.value for c in manager.list_for_identity("U2")] == [kept.value]

    def test_persists_deletion(self, manager: CredentialLifecycleManager, store_path: Path) -> None:
        manager.issue("U1", "alice")
        manager.revoke_all_for_identity("U1")
        assert json.loads(store_path.read_text(encoding="utf-8")) == {}


class TestReads:
    def test_status_found(self, manager: CredentialLifecycleManager) -> None:
        credential = manager.issue("U1", "alice")
        status = manager.status(credential.value)
        assert status.found is True
        assert status.owner_identity_id == "U1"
        assert status.owner_display_name == "alice"
        assert status.issued_at == credential.issued_at

    def test_status_not_found(self, manager: CredentialLifecycleManager) -> None:
        status = manager.status("Apikey-nothing")
        assert status.found is False
        assert status.owner_identity_id is None

    def test_list_all_order(self, manager: CredentialLifecycleManager) -> None:
        a1 = manager.issue("U1", "alice")
        b1 = manager.issue("U2", "bob")
        a2 = manager.issue("U1", "alice")
        listing = manager.list_all()
        assert [(row.identity_id, row.value) for row in listing] == [
            ("U1", a1.value),
            ("U1", a2.value),
            ("U2", b1.value),
        ]
        assert listing[2].display_name == "bob"
        assert listing[0].issued_at == a1.issued_at

    def test_list_all_round_trip(
        self, manager: CredentialLifecycleManager, store_path: Path
    ) -> None:
        manager.issue("U1", "alice")
        manager.issue("U2", "bob", on_behalf_of="OWNER", reason="r")
        manager.issue("U1", "alice")
        before = manager.list_all()

        reloaded = CredentialStore(store_path)
        reloaded.load()
        after = CredentialLifecycleManager(reloaded).list_all()
        assert after == before

    def test_list_for_identity_is_a_copy(self, manager: CredentialLifecycleManager) -> None:
        manager.issue("U1", "alice")
        listing = manager.list_for_identity("U1")
        listing.clear()
        assert len(manager.list_for_identity("U1")) == 1

    def test_list_for_unknown_identity(self, manager: CredentialLifecycleManager) -> None:
        assert manager.list_for_identity("nobody") == []
