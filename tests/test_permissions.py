from discordrest.core.permissions import Permission, add_permission, has_permission, remove_permission


def test_flags_combine_as_plain_integers():
    mask = Permission.SEND_MESSAGES | Permission.READ_MESSAGES

    assert int(mask) == 0x00000C00
    assert has_permission(mask, Permission.SEND_MESSAGES)
    assert not has_permission(mask, Permission.ADMINISTRATOR)


def test_add_and_remove_helpers():
    mask = add_permission(0, Permission.KICK_MEMBERS)
    mask = add_permission(mask, Permission.BAN_MEMBERS)

    assert mask == 0x6
    assert remove_permission(mask, Permission.KICK_MEMBERS) == 0x4


def test_voice_composite_covers_voice_bits():
    for permission in (Permission.CONNECT, Permission.SPEAK, Permission.USE_VAD, Permission.MOVE_MEMBERS):
        assert has_permission(Permission.VOICE, permission)
    assert not has_permission(Permission.VOICE, Permission.SEND_MESSAGES)
    assert has_permission(Permission.ALL_CHANNEL, Permission.MANAGE_WEBHOOKS)
