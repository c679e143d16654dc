"""Unit tests for the room directory and its repositories."""

from __future__ import annotations

import itertools

import pytest

from app.models import Privacy, ReasonCode
from app.monitoring.metrics import directory_persist_failures_total
from app.services.directory import RoomDirectory
from app.services.repository import InMemoryRoomRepository, RepositoryError, SqlRoomRepository


class FlakyRepository(InMemoryRoomRepository):
    """In-memory repository whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def put(self, name, document) -> None:
        if self.fail_writes:
            raise RepositoryError("disk full")
        super().put(name, document)


def scripted_codes(*codes: str):
    iterator = iter(codes)
    return lambda length: next(iterator)


@pytest.fixture()
def directory(repository) -> RoomDirectory:
    return RoomDirectory(repository)


def test_create_room_rejects_duplicates_and_bad_names(directory):
    assert directory.create_room("demo").ok
    assert directory.create_room("  demo ").error is ReasonCode.ALREADY_EXISTS
    assert directory.create_room("   ").error is ReasonCode.INVALID_NAME
    assert directory.create_room("x" * 51).error is ReasonCode.INVALID_NAME
    assert directory.create_room(None).error is ReasonCode.INVALID_NAME


def test_claim_and_authenticate(directory):
    claimed = directory.claim("demo", "pw1", Privacy.PRIVATE)
    assert claimed.ok
    assert claimed.value.privacy is Privacy.PRIVATE
    assert claimed.value.owner_password_hash != "pw1"

    assert directory.authenticate("demo", "pw1").ok
    assert directory.authenticate("demo", "nope").error is ReasonCode.INVALID_PASSWORD
    assert directory.authenticate("ghost", "pw1").error is ReasonCode.NOT_FOUND

    assert directory.claim("demo", "pw1").ok
    assert directory.claim("demo", "other").error is ReasonCode.INVALID_PASSWORD


def test_claim_attaches_password_to_open_room(directory):
    directory.create_room("fresh")
    assert directory.authenticate("fresh", None).ok

    assert directory.claim("fresh", "secret").ok
    assert directory.authenticate("fresh", "secret").ok
    assert directory.authenticate("fresh", "").error is ReasonCode.INVALID_PASSWORD


def test_permanent_room_cannot_be_claimed_by_strangers(directory):
    directory.create_room("bought")
    assert directory.mark_permanent("bought").value.permanent

    assert directory.claim("bought", "mine").error is ReasonCode.ALREADY_EXISTS
    assert directory.mark_permanent("ghost").error is ReasonCode.NOT_FOUND


def test_scenario_single_use_code_is_spent_once(repository):
    directory = RoomDirectory(repository, code_factory=scripted_codes("X1"))
    directory.claim("demo", "pw1", Privacy.PRIVATE)
    assert directory.update_vip_required("demo", True).value is True
    directory.add_vip_user("demo", "Alice")

    generated = directory.generate_vip_code("demo", max_uses=1)
    assert generated.value == {
        "code": "X1",
        "maxUses": 1,
        "usesLeft": 1,
        "used": 0,
        "multiUse": False,
    }

    redeemed = directory.redeem_code("x1", "demo")
    assert redeemed.ok
    assert redeemed.value.uses_left == 0
    assert directory.list_vip_codes("demo")[0]["usesLeft"] == 0

    assert directory.redeem_code("X1", "demo").error is ReasonCode.INVALID_OR_EXHAUSTED
    assert directory.list_vip_codes("demo")[0]["usesLeft"] == 0


def test_multi_use_codes_only_count(repository):
    directory = RoomDirectory(repository, code_factory=scripted_codes("MULTI1"))
    directory.create_room("club", privacy=Privacy.PRIVATE)
    generated = directory.generate_vip_code("club", max_uses=0)
    assert generated.value["multiUse"] is True
    assert generated.value["usesLeft"] is None

    for _ in range(3):
        assert directory.redeem_code("MULTI1").ok

    (code,) = directory.list_vip_codes("club")
    assert code["used"] == 3
    assert code["usesLeft"] is None


def test_redeem_rejects_unknown_and_foreign_codes(repository):
    directory = RoomDirectory(repository, code_factory=scripted_codes("AAAAAA"))
    directory.create_room("one")
    directory.create_room("two")
    directory.generate_vip_code("one", max_uses=5)

    assert directory.redeem_code("ZZZZZZ").error is ReasonCode.INVALID_OR_EXHAUSTED
    assert directory.redeem_code("").error is ReasonCode.INVALID_OR_EXHAUSTED
    assert directory.redeem_code("AAAAAA", "two").error is ReasonCode.INVALID_OR_EXHAUSTED
    assert directory.list_vip_codes("one")[0]["usesLeft"] == 5


def test_code_generation_gives_up_after_bounded_retries(repository):
    directory = RoomDirectory(
        repository,
        code_attempts=4,
        code_factory=lambda length: "SAME22",
    )
    directory.create_room("busy")
    assert directory.generate_vip_code("busy").ok

    outcome = directory.generate_vip_code("busy")
    assert outcome.error is ReasonCode.CODE_SPACE_EXHAUSTED
    assert len(directory.list_vip_codes("busy")) == 1


def test_generated_codes_use_unambiguous_alphabet(directory):
    directory.create_room("room")
    code = directory.generate_vip_code("room", 2).value["code"]
    assert len(code) == 6
    assert not set(code) & set("01IO")


def test_revoke_code(repository):
    directory = RoomDirectory(repository, code_factory=scripted_codes("REVOKE"))
    directory.create_room("room")
    directory.generate_vip_code("room", 1)

    assert directory.revoke_vip_code("room", "revoke").ok
    assert directory.list_vip_codes("room") == []
    assert directory.revoke_vip_code("room", "REVOKE").error is ReasonCode.NOT_FOUND
    assert directory.redeem_code("REVOKE").error is ReasonCode.INVALID_OR_EXHAUSTED


def test_vip_roster_is_case_insensitive_and_idempotent(directory):
    directory.create_room("room", privacy=Privacy.PRIVATE)
    directory.add_vip_user("room", "Alice")
    assert directory.add_vip_user("room", " alice ").value == ["Alice"]
    assert directory.get("room").is_vip_user("ALICE")

    assert directory.remove_vip_user("room", "aLiCe").value == []
    assert directory.remove_vip_user("room", "alice").error is ReasonCode.NOT_FOUND
    assert directory.add_vip_user("room", "   ").error is ReasonCode.INVALID_NAME


def test_public_rooms_are_never_vip_gated(directory):
    directory.create_room("room", privacy=Privacy.PRIVATE)
    assert directory.update_vip_required("room", True).value is True

    directory.update_privacy("room", Privacy.PUBLIC)
    assert directory.get("room").vip_required is False

    outcome = directory.update_vip_required("room", True)
    assert outcome.ok
    assert outcome.value is False


def test_live_listing_and_viewer_counts(directory):
    directory.create_room("stage")
    directory.create_room("hidden", privacy=Privacy.PRIVATE)
    directory.update_live("stage", live=True, title="Launch")
    directory.update_live("hidden", live=True)

    assert directory.adjust_viewer_count("stage", 2).value == 2
    assert directory.adjust_viewer_count("stage", -5).value == 0
    assert directory.list_public_rooms() == [
        {"name": "stage", "viewers": 0, "title": "Launch", "live": True}
    ]


def test_failed_write_leaves_memory_untouched():
    repository = FlakyRepository()
    directory = RoomDirectory(repository, code_factory=scripted_codes("AAAAAA", "BBBBBB"))
    directory.create_room("room", privacy=Privacy.PRIVATE)
    directory.generate_vip_code("room", 1)
    before = directory_persist_failures_total.value("redeem_code")

    repository.fail_writes = True
    assert directory.redeem_code("AAAAAA").error is ReasonCode.PERSISTENCE_FAILED
    assert directory.generate_vip_code("room", 1).error is ReasonCode.PERSISTENCE_FAILED
    assert directory.create_room("other").error is ReasonCode.PERSISTENCE_FAILED

    assert directory.list_vip_codes("room")[0]["usesLeft"] == 1
    assert len(directory.list_vip_codes("room")) == 1
    assert not directory.exists("other")
    assert directory_persist_failures_total.value("redeem_code") == before + 1

    repository.fail_writes = False
    assert directory.redeem_code("AAAAAA").ok
    assert repository.get("room")["vipCodes"]["AAAAAA"]["usesLeft"] == 0


def test_get_returns_a_detached_copy(directory):
    directory.create_room("room")
    record = directory.get("room")
    record.vip_users.append("Mallory")
    assert directory.get("room").vip_users == []


def test_sql_repository_round_trip(session_factory):
    repository = SqlRoomRepository(session_factory)
    codes = itertools.cycle(["CODE22"])
    directory = RoomDirectory(repository, code_factory=lambda length: next(codes))
    directory.claim("persisted", "pw", Privacy.PRIVATE)
    directory.add_vip_user("persisted", "Alice")
    directory.generate_vip_code("persisted", 3)
    directory.redeem_code("CODE22")

    reloaded = RoomDirectory(SqlRoomRepository(session_factory))
    assert reloaded.load() == 1
    record = reloaded.get("persisted")
    assert record.privacy is Privacy.PRIVATE
    assert record.vip_users == ["Alice"]
    assert reloaded.authenticate("persisted", "pw").ok
    assert reloaded.list_vip_codes("persisted")[0]["usesLeft"] == 2
    assert reloaded.redeem_code("CODE22").value.uses_left == 1


def test_load_skips_unreadable_documents(repository):
    repository.put("good", {"name": "good", "privacy": "private"})
    repository.put("bad", {"privacy": "public"})

    directory = RoomDirectory(repository)
    assert directory.load() == 1
    assert directory.get("good").privacy is Privacy.PRIVATE
