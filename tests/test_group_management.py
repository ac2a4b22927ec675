import re
import pytest
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.security import decode_access_token
from app.models.base import Base
from app.models.group import Group
from app.models.group_membership import GroupMembership, MemberStatus
from app.models.permission import Permission, OWNER_PERMISSIONS
from app.models.user import User
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.group_schemas import JoinGroupRequest
from app.services.group_service import GroupService
from app.services.otp_service import OTPService
from tests.conftest import (
    DEFAULT_PASSWORD,
    GROUP_PASSWORD,
    FakeMailer,
    add_member,
    create_group,
    create_user,
    headers_for,
)


def create_group_payload(**overrides):
    payload = {
        "full_name": "Funmi Founder",
        "email": "founder@example.com",
        "phone_number": "+2348100000001",
        "password": DEFAULT_PASSWORD,
        "gender": "female",
        "group_name": "Lagos Social Club",
        "description": "Monthly meetups",
        "group_password": GROUP_PASSWORD,
    }
    payload.update(overrides)
    return payload


def join_payload(join_code, **overrides):
    payload = {
        "full_name": "New Joiner",
        "email": "joiner@example.com",
        "phone_number": "+2348100000002",
        "password": DEFAULT_PASSWORD,
        "join_code": join_code,
        "group_password": GROUP_PASSWORD,
    }
    payload.update(overrides)
    return payload


class TestCreateGroup:
    """Tests for POST /public/create-group"""

    def test_owner_gets_first_member_number(self, client, db_session, mailer):
        response = client.post("/public/create-group", json=create_group_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["member_number"] == "LSC-001"
        assert len(data["join_code"]) == 6
        assert re.fullmatch(r"[A-Z0-9]{6}", data["join_code"])

        group = db_session.get(Group, data["group_id"])
        assert group.member_counter == 1
        assert group.abbreviation == "LSC"
        assert group.created_by_id == data["user_id"]

        membership = db_session.query(GroupMembership).filter_by(user_id=data["user_id"]).one()
        assert set(membership.permissions) == {p.value for p in OWNER_PERMISSIONS}

        user = db_session.get(User, data["user_id"])
        assert user.verified is False
        assert user.current_group_id == group.id
        assert mailer.last_code_for("founder@example.com") is not None

    def test_passwords_are_hashed(self, client, db_session):
        data = client.post("/public/create-group", json=create_group_payload()).json()
        user = db_session.get(User, data["user_id"])
        group = db_session.get(Group, data["group_id"])
        assert user.password_hash != DEFAULT_PASSWORD
        assert group.password_hash != GROUP_PASSWORD

    def test_duplicate_email_conflicts(self, client, owner):
        response = client.post(
            "/public/create-group", json=create_group_payload(email="OWNER@example.com")
        )
        assert response.status_code == 409

    def test_duplicate_phone_conflicts(self, client, owner):
        response = client.post(
            "/public/create-group", json=create_group_payload(phone_number=owner.phone_number)
        )
        assert response.status_code == 409

    def test_email_registered_after_check_conflicts(self, client, db_session, owner, monkeypatch):
        """A sign-up that loses the insert race to the same email is a conflict, not a crash"""
        monkeypatch.setattr(UserRepository, "exists_by_email_or_phone", lambda self, email, phone: False)

        response = client.post(
            "/public/create-group", json=create_group_payload(email="owner@example.com")
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"
        assert db_session.query(User).count() == 1
        assert db_session.query(Group).count() == 0

    def test_join_code_taken_on_insert_is_redrawn(self, client, db_session, group, monkeypatch):
        codes = iter([group.join_code, "NEW001"])
        monkeypatch.setattr("app.services.group_service.generate_join_code", lambda: next(codes))
        monkeypatch.setattr(GroupRepository, "join_code_exists", lambda self, join_code: False)

        response = client.post("/public/create-group", json=create_group_payload())

        assert response.status_code == 201
        assert response.json()["join_code"] == "NEW001"
        assert db_session.query(User).filter_by(email="founder@example.com").count() == 1
        assert db_session.query(Group).count() == 2

    def test_join_code_never_free_gives_up(self, client, db_session, group, monkeypatch):
        taken = group.join_code
        monkeypatch.setattr("app.services.group_service.generate_join_code", lambda: taken)
        monkeypatch.setattr(GroupRepository, "join_code_exists", lambda self, join_code: False)

        response = client.post("/public/create-group", json=create_group_payload())

        assert response.status_code == 500
        assert response.json()["code"] == "TRANSACTION_FAILED"
        assert db_session.query(User).filter_by(email="founder@example.com").count() == 0
        assert db_session.query(Group).count() == 1

    def test_invalid_email_is_bad_request(self, client):
        response = client.post("/public/create-group", json=create_group_payload(email="not-an-email"))
        assert response.status_code == 400

    def test_failure_midway_leaves_nothing_behind(self, client, db_session, monkeypatch):
        """User, group and membership are written together or not at all"""

        def broken_issue(self, user):
            raise OperationalError("INSERT INTO otp_verifications", {}, Exception("disk I/O error"))

        monkeypatch.setattr(OTPService, "issue", broken_issue)

        response = client.post("/public/create-group", json=create_group_payload())

        assert response.status_code == 500
        assert response.json()["code"] == "TRANSACTION_FAILED"
        assert db_session.query(User).count() == 0
        assert db_session.query(Group).count() == 0
        assert db_session.query(GroupMembership).count() == 0

    def test_mail_failure_does_not_undo_signup(self, client, db_session, mailer):
        mailer.fail = True

        response = client.post("/public/create-group", json=create_group_payload())

        assert response.status_code == 201
        assert db_session.query(User).filter_by(email="founder@example.com").count() == 1


class TestJoinGroup:
    """Tests for POST /public/join-group"""

    def test_new_user_gets_next_number_and_otp(self, client, db_session, group, mailer):
        response = client.post("/public/join-group", json=join_payload(group.join_code))

        assert response.status_code == 201
        data = response.json()
        assert data["member_number"] == "LSC-002"
        assert data["otp_required"] is True
        assert mailer.last_code_for("joiner@example.com") is not None

        db_session.refresh(group)
        assert group.member_counter == 2

    def test_sequential_joiners_get_distinct_numbers(self, client, group):
        numbers = []
        for i in range(3):
            response = client.post(
                "/public/join-group",
                json=join_payload(
                    group.join_code,
                    email=f"joiner{i}@example.com",
                    phone_number=f"+23481000000{i}9",
                ),
            )
            numbers.append(response.json()["member_number"])

        assert numbers == ["LSC-002", "LSC-003", "LSC-004"]

    def test_email_registered_after_lookup_conflicts(self, client, db_session, group, member, monkeypatch):
        monkeypatch.setattr(UserRepository, "get_by_email", lambda self, email: None)

        response = client.post(
            "/public/join-group",
            json=join_payload(group.join_code, email="member@example.com"),
        )

        assert response.status_code == 409
        db_session.refresh(group)
        assert group.member_counter == 2

    def test_concurrent_joiners_get_gapless_numbers(self, tmp_path):
        """Parallel joins on a real database file each get their own number"""
        joiners = 8
        engine = create_engine(
            f"sqlite:///{tmp_path / 'joins.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        try:
            with Session() as db:
                seeded = create_group(db, create_user(db, "owner@example.com"))
                group_id, join_code = seeded.id, seeded.join_code

            def join(i):
                with Session() as db:
                    _, data = GroupService(db, FakeMailer()).join_group(
                        JoinGroupRequest(
                            **join_payload(
                                join_code,
                                email=f"parallel{i}@example.com",
                                phone_number=f"+2348200000{i:03d}",
                            )
                        )
                    )
                    return data["member_number"]

            with ThreadPoolExecutor(max_workers=joiners) as pool:
                numbers = list(pool.map(join, range(joiners)))

            assert sorted(numbers) == [f"LSC-{n:03d}" for n in range(2, joiners + 2)]
            with Session() as db:
                assert db.get(Group, group_id).member_counter == joiners + 1
                assert db.query(GroupMembership).filter_by(group_id=group_id).count() == joiners + 1
        finally:
            engine.dispose()

    def test_join_code_is_case_insensitive(self, client, group):
        response = client.post("/public/join-group", json=join_payload(group.join_code.lower()))
        assert response.status_code == 201

    def test_existing_account_joins_without_otp(self, client, db_session, group, other_owner, mailer):
        response = client.post(
            "/public/join-group",
            json=join_payload(group.join_code, email="rival@example.com"),
        )

        assert response.status_code == 200
        assert response.json()["otp_required"] is False
        assert mailer.sent == []
        assert db_session.query(GroupMembership).filter_by(
            group_id=group.id, user_id=other_owner.id
        ).count() == 1

    def test_existing_account_needs_its_own_password(self, client, group, other_owner):
        response = client.post(
            "/public/join-group",
            json=join_payload(group.join_code, email="rival@example.com", password="guessing-game"),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_rejoining_is_idempotent(self, client, db_session, group, member):
        """Already a member: 202 and neither the counter nor the membership changes"""
        db_session.refresh(group)
        counter_before = group.member_counter

        response = client.post(
            "/public/join-group",
            json=join_payload(group.join_code, email="member@example.com"),
        )

        assert response.status_code == 202
        db_session.refresh(group)
        assert group.member_counter == counter_before
        assert db_session.query(GroupMembership).filter_by(
            group_id=group.id, user_id=member.id
        ).count() == 1

    def test_wrong_group_password(self, client, group):
        response = client.post(
            "/public/join-group",
            json=join_payload(group.join_code, group_password="wrong"),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "GROUP_NOT_FOUND"

    def test_unknown_join_code(self, client, group):
        code = "ZZZZZZ" if group.join_code != "ZZZZZZ" else "YYYYYY"
        response = client.post("/public/join-group", json=join_payload(code))
        assert response.status_code == 404


class TestVerifyGroup:
    """Tests for POST /public/verify-group"""

    def test_valid_pair(self, client, group):
        response = client.post(
            "/public/verify-group",
            json={"join_code": group.join_code, "group_password": GROUP_PASSWORD},
        )
        assert response.status_code == 200
        assert response.json()["group_name"] == "Lagos Social Club"

    def test_wrong_password(self, client, group):
        response = client.post(
            "/public/verify-group",
            json={"join_code": group.join_code, "group_password": "nope"},
        )
        assert response.status_code == 404


class TestMultipleGroups:
    """Tests for create-another-group, join-another-group and switch-group"""

    def test_create_another_group_returns_token_for_it(self, client, db_session, owner, owner_headers):
        response = client.post(
            "/private/create-another-group",
            headers=owner_headers,
            json={"group_name": "Weekend Football", "group_password": "kickoff"},
        )

        assert response.status_code == 201
        data = response.json()
        claims = decode_access_token(data["token"])
        assert claims["group_id"] == data["group_id"]
        assert Permission.ADMIN in claims["permissions"]

        membership = db_session.query(GroupMembership).filter_by(
            group_id=data["group_id"], user_id=owner.id
        ).one()
        assert membership.member_number == "WEF-001"

    def test_join_another_group(self, client, db_session, other_group, owner, owner_headers):
        response = client.post(
            "/private/join-another-group",
            headers=owner_headers,
            json={"join_code": other_group.join_code, "group_password": GROUP_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["member_number"] == "ABC-002"

        again = client.post(
            "/private/join-another-group",
            headers=owner_headers,
            json={"join_code": other_group.join_code, "group_password": GROUP_PASSWORD},
        )
        assert again.status_code == 202

    def test_switch_group_reissues_scoped_token(self, client, db_session, owner, group, other_group, owner_headers):
        add_member(db_session, other_group, owner)

        response = client.post(f"/private/switch-group/{other_group.id}", headers=owner_headers)

        assert response.status_code == 200
        claims = decode_access_token(response.json()["token"])
        assert claims["group_id"] == other_group.id
        assert claims["permissions"] == frozenset({Permission.USER})
        db_session.refresh(owner)
        assert owner.current_group_id == other_group.id

    def test_switch_to_foreign_group(self, client, other_group, owner_headers):
        response = client.post(f"/private/switch-group/{other_group.id}", headers=owner_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_A_MEMBER"

    def test_switch_to_group_where_inactive(self, client, db_session, owner, other_group, owner_headers):
        add_member(db_session, other_group, owner, status=MemberStatus.INACTIVE)
        response = client.post(f"/private/switch-group/{other_group.id}", headers=owner_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "MEMBER_INACTIVE"


class TestGroupInformation:
    """Tests for group information, notifications and join code"""

    def test_group_information(self, client, group, member, member_headers):
        response = client.get("/private/group-information", headers=member_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Lagos Social Club"
        assert data["member_number"] == "LSC-002"
        assert data["member_count"] == 2

    def test_toggle_notifications(self, client, member, member_headers):
        first = client.patch("/private/toggle-group-notifications", headers=member_headers)
        second = client.patch("/private/toggle-group-notifications", headers=member_headers)

        assert first.json()["notifications_enabled"] is True
        assert second.json()["notifications_enabled"] is False

    def test_admin_updates_group(self, client, db_session, group, owner_headers):
        response = client.patch(
            "/private/manage-update-group-information",
            headers=owner_headers,
            json={"name": "Lagos Social Society"},
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Lagos Social Society"
        assert response.json()["abbreviation"] == "LSC"

    def test_member_cannot_update_group(self, client, member_headers):
        response = client.patch(
            "/private/manage-update-group-information",
            headers=member_headers,
            json={"name": "Hacked"},
        )
        assert response.status_code == 403

    def test_reset_group_password(self, client, group, owner_headers):
        response = client.post(
            "/private/manage-reset-group-password",
            headers=owner_headers,
            json={"group_password": "new-secret"},
        )
        assert response.status_code == 200

        old = client.post(
            "/public/verify-group",
            json={"join_code": group.join_code, "group_password": GROUP_PASSWORD},
        )
        new = client.post(
            "/public/verify-group",
            json={"join_code": group.join_code, "group_password": "new-secret"},
        )
        assert old.status_code == 404
        assert new.status_code == 200

    def test_fetch_join_code(self, client, group, owner_headers):
        response = client.get(f"/private/fetch-group-join-code/{group.id}", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["join_code"] == group.join_code

    def test_fetch_join_code_of_other_group(self, client, other_group, owner_headers):
        response = client.get(
            f"/private/fetch-group-join-code/{other_group.id}", headers=owner_headers
        )
        assert response.status_code == 404

    def test_fetch_join_code_requires_admin(self, client, group, member_headers):
        response = client.get(f"/private/fetch-group-join-code/{group.id}", headers=member_headers)
        assert response.status_code == 403


class TestMemberManagement:
    """Tests for member listing, status changes and removal"""

    def test_group_members_lists_active_only(self, client, db_session, group, member, owner_headers):
        idle = create_user(db_session, "idle@example.com", full_name="Idle Member")
        add_member(db_session, group, idle, status=MemberStatus.INACTIVE)

        response = client.get(f"/private/group-members/{group.id}", headers=owner_headers)

        assert response.status_code == 200
        numbers = [m["member_number"] for m in response.json()["members"]]
        assert numbers == ["LSC-001", "LSC-002"]

    def test_admin_users_search_wildcards_are_literal(self, client, db_session, group, owner_headers):
        add_member(db_session, group, create_user(db_session, "ada_l@example.com", full_name="Ada_Lovelace"))
        add_member(db_session, group, create_user(db_session, "adal@example.com", full_name="Ada Lovelace"))

        by_name = client.get("/private/admin-users", params={"full_name": "a_l"}, headers=owner_headers)
        by_email = client.get("/private/admin-users", params={"email": "%@"}, headers=owner_headers)

        assert [m["email"] for m in by_name.json()["members"]] == ["ada_l@example.com"]
        assert by_email.json()["members"] == []

    def test_admin_users_search_and_paging(self, client, db_session, group, owner_headers):
        for i in range(11):
            add_member(db_session, group, create_user(db_session, f"m{i}@example.com", full_name=f"Member {i}"))

        page_one = client.get("/private/admin-users", headers=owner_headers)
        page_two = client.get("/private/admin-users?page=2", headers=owner_headers)
        by_name = client.get("/private/admin-users?full_name=member 1", headers=owner_headers)

        assert page_one.json()["total_pages"] == 2
        assert len(page_one.json()["members"]) == 10
        assert len(page_two.json()["members"]) == 2
        assert {m["email"] for m in by_name.json()["members"]} == {"m1@example.com", "m10@example.com"}

    def test_deactivate_member(self, client, db_session, group, member, owner_headers):
        response = client.patch(
            f"/private/manage-member-status/{member.id}",
            headers=owner_headers,
            json={"status": "inactive"},
        )

        assert response.status_code == 200
        membership = db_session.query(GroupMembership).filter_by(user_id=member.id).one()
        db_session.refresh(membership)
        assert membership.status == MemberStatus.INACTIVE

    def test_cannot_deactivate_creator(self, client, db_session, group, owner, member):
        headers = headers_for(member.id, group.id, [Permission.MANAGE_MEMBERS])
        response = client.patch(
            f"/private/manage-member-status/{owner.id}",
            headers=headers,
            json={"status": "inactive"},
        )
        assert response.status_code == 403

    def test_remove_member(self, client, db_session, group, member, owner_headers):
        response = client.delete(f"/private/manage-remove-member/{member.id}", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["removed_count"] == 1
        assert db_session.query(GroupMembership).filter_by(
            group_id=group.id, user_id=member.id
        ).count() == 0

        # Neither side of the relationship still references the group
        profile = client.get("/private/user-profile", headers=headers_for(member.id, group.id))
        assert profile.json()["groups"] == []
        assert profile.json()["current_group_id"] is None

    def test_remove_member_by_post(self, client, group, member, owner_headers):
        response = client.post(f"/private/manage-remove-member/{member.id}", headers=owner_headers)
        assert response.status_code == 200

    def test_removed_number_is_never_reused(self, client, db_session, group, member, owner_headers):
        """LSC-002 leaves; the next joiner gets LSC-003, not LSC-002"""
        client.delete(f"/private/manage-remove-member/{member.id}", headers=owner_headers)

        response = client.post("/public/join-group", json=join_payload(group.join_code))

        assert response.json()["member_number"] == "LSC-003"

    def test_remove_many_members(self, client, db_session, group, owner_headers):
        users = [create_user(db_session, f"r{i}@example.com") for i in range(3)]
        for user in users:
            add_member(db_session, group, user)

        response = client.post(
            "/private/manage-remove-members",
            headers=owner_headers,
            json={"user_ids": [u.id for u in users]},
        )

        assert response.status_code == 200
        assert response.json()["removed_count"] == 3
        assert db_session.query(GroupMembership).filter_by(group_id=group.id).count() == 1

    def test_cannot_remove_self(self, client, owner, group, owner_headers):
        response = client.delete(f"/private/manage-remove-member/{owner.id}", headers=owner_headers)
        assert response.status_code == 403

    def test_cannot_remove_creator(self, client, db_session, group, owner, member):
        headers = headers_for(member.id, group.id, [Permission.ADMIN])
        response = client.delete(f"/private/manage-remove-member/{owner.id}", headers=headers)
        assert response.status_code == 403

    def test_remove_member_of_other_group(self, client, other_owner, other_group, owner_headers):
        stranger = other_owner
        response = client.delete(f"/private/manage-remove-member/{stranger.id}", headers=owner_headers)
        assert response.status_code == 404

    @pytest.mark.parametrize("method", ["post", "delete"])
    def test_member_cannot_remove(self, client, group, owner, member_headers, method):
        response = getattr(client, method)(
            f"/private/manage-remove-member/{owner.id}", headers=member_headers
        )
        assert response.status_code == 403
