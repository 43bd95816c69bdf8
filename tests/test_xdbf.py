import struct

import pytest

from xexkit.xdbf import (
    XACH_SIGNATURE,
    XDBF_SIGNATURE,
    Language,
    Namespace,
    XdbfFile,
)

XSTR = 0x58535452


def build_xdbf(resources, free_entries=0):
    content = b""
    entries = b""
    for namespace, resource_id, payload in resources:
        entries += struct.pack(">HQII", namespace, resource_id, len(content), len(payload))
        content += payload
    header = struct.pack(">6I", XDBF_SIGNATURE, 0x10000, len(resources), len(resources),
                         free_entries, free_entries)
    free = b"\xAA" * (8 * free_entries)
    return header + entries + free + content


def string_table(strings):
    body = b""
    for string_id, text in strings.items():
        raw = text.encode("utf-8")
        body += struct.pack(">HH", string_id, len(raw)) + raw
    return struct.pack(">IIIH", XSTR, 1, len(body), len(strings)) + body


def achievement_table(rows):
    body = b""
    for achievement_id, name_id, unlocked_id, locked_id, image_id, score in rows:
        body += struct.pack(">HHHHIH2sI16s", achievement_id, name_id, unlocked_id, locked_id,
                            image_id, score, b"\0\0", 0, bytes(16))
    return struct.pack(">IIIH", XACH_SIGNATURE, 1, len(body), len(rows)) + body


@pytest.fixture
def database():
    strings = string_table({1: "First Steps", 2: "You did it", 3: "Do something",
                            4: "Second", 5: "Done again", 6: "Hidden"})
    achievements = achievement_table([(10, 1, 2, 3, 77, 15), (11, 4, 5, 6, 99, 30)])
    return XdbfFile(build_xdbf([
        (Namespace.SPA_STRING_TABLE, Language.ENGLISH, strings),
        (Namespace.SPA_METADATA, XACH_SIGNATURE, achievements),
        (Namespace.SPA_IMAGE, 77, b"\x89PNGimage"),
    ]))


def test_rejects_bad_signature():
    data = bytearray(build_xdbf([(Namespace.SPA_IMAGE, 1, b"abc")]))
    data[0:4] = b"NOPE"
    with pytest.raises(ValueError):
        XdbfFile(bytes(data))


def test_rejects_header_only_data():
    data = struct.pack(">6I", XDBF_SIGNATURE, 0, 0, 0, 0, 0)
    with pytest.raises(ValueError):
        XdbfFile(data)


def test_rejects_truncated_entry_table():
    data = struct.pack(">6I", XDBF_SIGNATURE, 0, 3, 3, 0, 0) + b"\0\0"
    with pytest.raises(ValueError):
        XdbfFile(data)


def test_get_resource_returns_payload():
    xdbf = XdbfFile(build_xdbf([(Namespace.SPA_IMAGE, 5, b"hello"), (Namespace.SPA_IMAGE, 6, b"world")]))
    block = xdbf.get_resource(Namespace.SPA_IMAGE, 6)
    assert block.data == b"world"
    assert block.size == 5
    assert xdbf.data[block.offset:block.offset + block.size] == b"world"


def test_get_resource_matches_namespace_and_id():
    xdbf = XdbfFile(build_xdbf([(Namespace.SPA_IMAGE, 5, b"hello")]))
    assert xdbf.get_resource(Namespace.SPA_METADATA, 5) is None
    assert xdbf.get_resource(Namespace.SPA_IMAGE, 4) is None


def test_free_space_table_is_skipped():
    xdbf = XdbfFile(build_xdbf([(Namespace.SPA_IMAGE, 1, b"payload")], free_entries=2))
    assert xdbf.get_resource(Namespace.SPA_IMAGE, 1).data == b"payload"


def test_get_string(database):
    assert database.get_string(Language.ENGLISH, 4) == "Second"
    assert database.get_string(Language.ENGLISH, 1) == "First Steps"


def test_get_string_missing(database):
    assert database.get_string(Language.ENGLISH, 42) == ""
    assert database.get_string(Language.GERMAN, 1) == ""


def test_get_achievements(database):
    achievements = database.get_achievements(Language.ENGLISH)
    assert [a.id for a in achievements] == [10, 11]
    first, second = achievements
    assert (first.name, first.unlocked_desc, first.locked_desc) == ("First Steps", "You did it", "Do something")
    assert first.score == 15
    assert first.image == b"\x89PNGimage"
    assert second.name == "Second"
    assert second.image is None


def test_get_achievement_by_id(database):
    achievement = database.get_achievement(Language.ENGLISH, 11)
    assert achievement.locked_desc == "Hidden"
    assert achievement.score == 30


def test_get_achievement_missing(database):
    assert database.get_achievement(Language.ENGLISH, 12) is None


def test_no_achievement_table():
    xdbf = XdbfFile(build_xdbf([(Namespace.SPA_IMAGE, 1, b"x")]))
    assert xdbf.get_achievements(Language.ENGLISH) == []
    assert xdbf.get_achievement(Language.ENGLISH, 1) is None


def test_achievement_text_in_other_language_is_empty(database):
    achievement = database.get_achievement(Language.FRENCH, 10)
    assert achievement.name == ""
    assert achievement.score == 15