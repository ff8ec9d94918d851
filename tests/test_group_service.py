import asyncio

import pytest

from groupchat.core import errors
from groupchat.models.group_messages import GroupMessage, GroupMessageRead
from groupchat.models.groups import Group
from groupchat.services import group_message_service, group_service


def create(db, notifier, creator, members, **kwargs):
    return asyncio.run(group_service.create_group(
        db, creator.id, notifier,
        name=kwargs.pop("name", "Team"),
        members=[str(m.id) for m in members],
        **kwargs,
    ))


def assert_admins_subset(group):
    assert set(group.admin_ids) <= set(group.member_ids)


# =============================================================================
# create_group
# =============================================================================


class TestCreateGroup:
    def test_creator_becomes_member_and_only_admin(self, db, notifier, users):
        u1, u2 = users[:2]

        group = create(db, notifier, u1, [u1, u2])

        assert group.member_ids == [u1.id, u2.id]
        assert group.admin_ids == [u1.id]
        assert group.created_by == u1.id
        assert group.max_members == 256
        assert group.is_private is False

    def test_creator_added_when_missing_from_members(self, db, notifier, users):
        u1, u2, u3 = users[:3]

        group = create(db, notifier, u1, [u2, u3, u2])

        assert group.member_ids == [u1.id, u2.id, u3.id]

    def test_emits_group_created_to_every_member(self, db, notifier, users):
        u1, u2 = users[:2]

        group = create(db, notifier, u1, [u2])

        assert notifier.recipients("groupCreated") == [u1.id, u2.id]
        payload = notifier.payloads("groupCreated")[0]
        assert payload["id"] == group.id
        assert [m["id"] for m in payload["members"]] == [u1.id, u2.id]
        assert payload["created_by"]["id"] == u1.id

    @pytest.mark.parametrize("name", ["", "   "])
    def test_rejects_empty_name(self, db, notifier, users, name):
        with pytest.raises(errors.ValidationError, match="name is required"):
            create(db, notifier, users[0], [users[1]], name=name)

    def test_rejects_empty_member_list(self, db, notifier, users):
        with pytest.raises(errors.ValidationError, match="At least one member"):
            create(db, notifier, users[0], [])

    def test_rejects_malformed_member_id(self, db, notifier, users):
        with pytest.raises(errors.ValidationError, match="Invalid member IDs"):
            asyncio.run(group_service.create_group(
                db, users[0].id, notifier, name="Team", members=[str(users[1].id), "not-an-id"],
            ))
        assert db.query(Group).count() == 0

    def test_rejects_unknown_member(self, db, notifier, users):
        with pytest.raises(errors.ValidationError, match="Unknown member IDs: 999"):
            asyncio.run(group_service.create_group(
                db, users[0].id, notifier, name="Team", members=["999"],
            ))

    def test_initial_members_respect_capacity(self, db, notifier, users):
        with pytest.raises(errors.CapacityError):
            create(db, notifier, users[0], users[1:4], max_members=3)
        assert notifier.events == []

    def test_uploads_group_image(self, db, notifier, users, storage, image_bytes):
        group = create(db, notifier, users[0], [users[1]], image=image_bytes, storage=storage)

        assert group.group_image.startswith("http://testserver/static/group_images/")
        assert group.group_image.endswith(".jpg")
        assert len(list((storage.root / "group_images").iterdir())) == 1

    def test_failed_image_upload_aborts_creation(self, db, notifier, users, storage):
        with pytest.raises(errors.MediaUploadError):
            create(db, notifier, users[0], [users[1]], image=b"definitely not an image", storage=storage)

        assert db.query(Group).count() == 0
        assert notifier.events == []


# =============================================================================
# membership
# =============================================================================


class TestAddGroupMembers:
    def test_adds_new_members(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        group, added = asyncio.run(group_service.add_group_members(db, str(group.id), [str(u3.id)], u1.id, notifier))

        assert added == [u3.id]
        assert group.member_ids == [u1.id, u2.id, u3.id]
        assert_admins_subset(group)

    def test_existing_members_are_skipped(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        group, added = asyncio.run(group_service.add_group_members(
            db, group.id, [str(u2.id), str(u3.id), str(u3.id)], u1.id, notifier
        ))

        assert added == [u3.id]
        assert group.member_ids == [u1.id, u2.id, u3.id]

    def test_notifies_every_member_after_update(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        asyncio.run(group_service.add_group_members(db, group.id, [str(u3.id)], u1.id, notifier))

        assert notifier.recipients("groupMembersAdded") == [u1.id, u2.id, u3.id]
        assert notifier.payloads("groupMembersAdded")[0]["new_members"] == [u3.id]

    def test_non_admin_cannot_add(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.AuthorizationError, match="Only admins can add members"):
            asyncio.run(group_service.add_group_members(db, group.id, [str(u3.id)], u2.id, notifier))

    def test_capacity_is_enforced(self, db, notifier, users):
        u1, u2, u3, u4 = users[:4]
        group = create(db, notifier, u1, [u2], max_members=3)

        with pytest.raises(errors.CapacityError, match="maximum members limit of 3"):
            asyncio.run(group_service.add_group_members(
                db, group.id, [str(u3.id), str(u4.id)], u1.id, notifier
            ))

        db.expire_all()
        assert db.get(Group, group.id).member_ids == [u1.id, u2.id]

    def test_filling_up_to_the_limit_is_allowed(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2], max_members=3)

        group, _ = asyncio.run(group_service.add_group_members(db, group.id, [str(u3.id)], u1.id, notifier))

        assert group.member_count == 3

    def test_unknown_group(self, db, notifier, users):
        with pytest.raises(errors.NotFoundError):
            asyncio.run(group_service.add_group_members(db, "4242", [str(users[1].id)], users[0].id, notifier))


class TestRemoveGroupMember:
    def test_creator_cannot_be_removed(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])
        asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        with pytest.raises(errors.InvariantError, match="Cannot remove group creator"):
            asyncio.run(group_service.remove_group_member(db, group.id, str(u1.id), u2.id, notifier))

        db.expire_all()
        assert u1.id in db.get(Group, group.id).member_ids

    def test_admin_removes_member(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2, u3])
        asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        group = asyncio.run(group_service.remove_group_member(db, group.id, str(u2.id), u1.id, notifier))

        assert group.member_ids == [u1.id, u3.id]
        assert group.admin_ids == [u1.id]
        assert notifier.recipients("groupMemberRemoved") == [u1.id, u3.id]
        assert notifier.recipients("removedFromGroup") == [u2.id]

    def test_member_can_remove_self(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        group = asyncio.run(group_service.remove_group_member(db, group.id, str(u2.id), u2.id, notifier))

        assert group.member_ids == [u1.id]

    def test_member_cannot_remove_others(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2, u3])

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(group_service.remove_group_member(db, group.id, str(u3.id), u2.id, notifier))

    def test_target_must_be_member(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.NotFoundError):
            asyncio.run(group_service.remove_group_member(db, group.id, str(u3.id), u1.id, notifier))


class TestLeaveGroup:
    def test_creator_cannot_leave(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.InvariantError, match="Transfer ownership first"):
            asyncio.run(group_service.leave_group(db, group.id, u1.id, notifier))

    def test_member_leaves(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2, u3])
        asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        group = asyncio.run(group_service.leave_group(db, group.id, u2.id, notifier))

        assert group.member_ids == [u1.id, u3.id]
        assert_admins_subset(group)
        assert notifier.recipients("groupMemberLeft") == [u1.id, u3.id]
        assert notifier.payloads("groupMemberLeft")[0]["left_member"] == u2.id

    def test_outsider_cannot_leave(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.NotFoundError):
            asyncio.run(group_service.leave_group(db, group.id, u3.id, notifier))


class TestMakeGroupAdmin:
    def test_promotes_member(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        group = asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        assert group.admin_ids == [u1.id, u2.id]
        assert notifier.payloads("groupAdminAdded")[0]["new_admin"] == u2.id

    def test_promoting_twice_is_a_no_op(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))
        group = asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        assert group.admin_ids == [u1.id, u2.id]

    def test_non_admin_cannot_promote(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2, u3])

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(group_service.make_group_admin(db, group.id, str(u3.id), u2.id, notifier))

    def test_target_must_be_member(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.NotFoundError, match="not a member"):
            asyncio.run(group_service.make_group_admin(db, group.id, str(u3.id), u1.id, notifier))


# =============================================================================
# metadata / lifecycle
# =============================================================================


class TestUpdateGroup:
    def test_only_supplied_fields_change(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2], description="before")

        group = asyncio.run(group_service.update_group(db, group.id, u1.id, notifier, name="Renamed"))

        assert group.name == "Renamed"
        assert group.description == "before"
        assert notifier.recipients("groupUpdated") == [u1.id, u2.id]

    def test_non_admin_cannot_update(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.AuthorizationError, match="Only admins can update group"):
            asyncio.run(group_service.update_group(db, group.id, u2.id, notifier, name="Mine"))

    def test_empty_name_is_rejected(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.ValidationError):
            asyncio.run(group_service.update_group(db, group.id, u1.id, notifier, name=" "))


class TestDeleteGroup:
    def test_only_creator_can_delete(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])
        asyncio.run(group_service.make_group_admin(db, group.id, str(u2.id), u1.id, notifier))

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(group_service.delete_group(db, group.id, u2.id, notifier))

    def test_cascades_to_messages_and_receipts(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])
        message = asyncio.run(group_message_service.send_group_message(
            db, group.id, u1.id, notifier, content="hello"
        ))
        group_message_service.mark_group_message_as_read(db, message.id, u2.id)
        group_id = group.id

        deleted = asyncio.run(group_service.delete_group(db, group_id, u1.id, notifier))

        assert deleted == group_id
        db.expire_all()
        assert db.get(Group, group_id) is None
        assert db.query(GroupMessage).count() == 0
        assert db.query(GroupMessageRead).count() == 0
        assert notifier.recipients("groupDeleted") == [u1.id, u2.id]
        assert notifier.payloads("groupDeleted")[0] == {"group_id": group_id}


class TestTransferOwnership:
    def test_new_owner_becomes_admin_and_old_owner_may_leave(self, db, notifier, users):
        u1, u2 = users[:2]
        group = create(db, notifier, u1, [u2])

        group = asyncio.run(group_service.transfer_group_ownership(db, group.id, str(u2.id), u1.id, notifier))

        assert group.created_by == u2.id
        assert set(group.admin_ids) == {u1.id, u2.id}
        assert_admins_subset(group)

        group = asyncio.run(group_service.leave_group(db, group.id, u1.id, notifier))
        assert group.member_ids == [u2.id]

    def test_only_creator_can_transfer(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2, u3])

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(group_service.transfer_group_ownership(db, group.id, str(u3.id), u2.id, notifier))

    def test_target_must_be_member(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2])

        with pytest.raises(errors.NotFoundError):
            asyncio.run(group_service.transfer_group_ownership(db, group.id, str(u3.id), u1.id, notifier))


# =============================================================================
# queries
# =============================================================================


class TestQueries:
    def test_user_groups_most_recent_first(self, db, notifier, users):
        u1, u2 = users[:2]
        first = create(db, notifier, u1, [u2], name="First")
        second = create(db, notifier, u1, [u2], name="Second")
        create(db, notifier, users[2], [users[3]], name="Other")

        groups = group_service.get_user_groups(db, u2.id)

        assert [g.id for g in groups] == [second.id, first.id]

    def test_search_returns_public_matches_only(self, db, notifier, users):
        u1, u2 = users[:2]
        public = create(db, notifier, u1, [u2], name="Python Club")
        create(db, notifier, u1, [u2], name="Secret python", is_private=True)
        by_description = create(db, notifier, u1, [u2], name="Snakes", description="all things PYTHON")

        found = group_service.search_groups(db, "python")

        assert {g.id for g in found} == {public.id, by_description.id}

    def test_search_with_null_limit(self, db, notifier, users):
        group = create(db, notifier, users[0], [users[1]], name="Chess")

        assert [g.id for g in group_service.search_groups(db, "chess", None)] == [group.id]

    def test_search_treats_wildcards_literally(self, db, notifier, users):
        create(db, notifier, users[0], [users[1]], name="Plain")

        assert group_service.search_groups(db, "%") == []

    def test_private_details_hidden_from_outsiders(self, db, notifier, users):
        u1, u2, u3 = users[:3]
        group = create(db, notifier, u1, [u2], is_private=True)

        assert group_service.get_group_details(db, str(group.id), u2.id).id == group.id
        with pytest.raises(errors.AuthorizationError):
            group_service.get_group_details(db, str(group.id), u3.id)

    @pytest.mark.parametrize("bad_id", ["abc", "-1", "0", ""])
    def test_malformed_group_id(self, db, bad_id):
        with pytest.raises(errors.ValidationError):
            group_service.get_group_details(db, bad_id, 1)
