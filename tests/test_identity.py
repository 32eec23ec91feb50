import pytest

from gymchat.utils.identity import (
    conversation_id,
    group_conversation_id,
    is_group_conversation,
    new_group_id,
    sanitize_identity,
)


@pytest.mark.parametrize(
    "a,b",
    [
        ("a@x.com", "b@x.com"),
        ("zed@gym.io", "admin"),
        ("same@x.com", "same@x.com"),
    ],
)
def test_conversation_id_is_symmetric(a, b):
    assert conversation_id(a, b) == conversation_id(b, a)


def test_conversation_id_format():
    assert conversation_id("b@x.com", "a@x.com") == "private_a_x_com_b_x_com"


def test_sanitize_replaces_unsafe_characters():
    assert sanitize_identity("first.last@gym.com") == "first_last_gym_com"


@pytest.mark.parametrize("bad", ["", "   "])
def test_empty_identities_are_rejected(bad):
    with pytest.raises(ValueError):
        conversation_id(bad, "a@x.com")
    with pytest.raises(ValueError):
        group_conversation_id(bad)


def test_group_and_private_ids_never_collide():
    # a user literally named like a group id still lands in the private namespace
    group = group_conversation_id("group_1")
    private = conversation_id("group_1", "group_1")
    assert group != private
    assert is_group_conversation(group)
    assert not is_group_conversation(private)


def test_new_group_id_uses_epoch_millis():
    assert new_group_id(1700000000000) == "group_1700000000000"
