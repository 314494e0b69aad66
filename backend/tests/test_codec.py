import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from urchin.errors import DecodeError
from urchin.models import Note, Profile, User
from urchin.services import codec
from urchin.services.codec import DEFAULT_DATE_FORMAT, MESSAGE_DATE_FORMAT

from conftest import note_json


def test_message_and_general_formats_agree():
    message = MESSAGE_DATE_FORMAT.parse("2023-05-01T12:30:00+0000")
    general = DEFAULT_DATE_FORMAT.parse("2023-05-01 12:30:00.000+0000")
    assert message == general
    assert message == datetime(2023, 5, 1, 12, 30, tzinfo=timezone.utc)


def test_offsets_are_applied():
    shifted = MESSAGE_DATE_FORMAT.parse("2023-05-01T14:30:00+0200")
    assert shifted == datetime(2023, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [
    "2023-05-01T12:30:00Z",
    "2023-05-01T12:30:00+00:00",
    "2023-05-01 12:30:00.000+0000",
    "",
    None,
    12345,
])
def test_message_format_is_wire_exact(value):
    with pytest.raises(ValueError):
        MESSAGE_DATE_FORMAT.parse(value)


def test_general_format_keeps_milliseconds():
    value = datetime(2023, 5, 1, 12, 30, 5, 123456, tzinfo=timezone.utc)
    assert DEFAULT_DATE_FORMAT.format(value) == "2023-05-01 12:30:05.123+0000"
    assert DEFAULT_DATE_FORMAT.parse("2023-05-01 12:30:05.123+0000").microsecond == 123000


def test_naive_datetimes_format_as_utc():
    assert MESSAGE_DATE_FORMAT.format(datetime(2023, 5, 1, 12, 30)) == "2023-05-01T12:30:00+0000"


def test_decode_note_with_message_format():
    note = codec.decode(note_json("n1", replies=["r1", "r2"]), Note, MESSAGE_DATE_FORMAT)
    assert isinstance(note, Note)
    assert note.id == "n1"
    assert note.messagetext == "hello"
    assert note.timestamp == datetime(2023, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert note.replies == ["r1", "r2"]


def test_decode_note_with_wrong_format_keeps_fragment():
    payload = note_json("n1")
    with pytest.raises(DecodeError) as info:
        codec.decode(payload, Note, DEFAULT_DATE_FORMAT)
    assert info.value.fragment == payload


def test_date_format_is_per_call():
    message_payload = note_json("m", timestamp="2023-05-01T12:30:00+0000")
    general_payload = note_json("g", timestamp="2023-05-01 12:30:00.000+0000")

    def run(i):
        if i % 2:
            return codec.decode(message_payload, Note, MESSAGE_DATE_FORMAT).timestamp
        return codec.decode(general_payload, Note, DEFAULT_DATE_FORMAT).timestamp

    with ThreadPoolExecutor(max_workers=8) as pool:
        stamps = list(pool.map(run, range(200)))
    assert set(stamps) == {datetime(2023, 5, 1, 12, 30, tzinfo=timezone.utc)}


@pytest.mark.parametrize("payload", [
    "{not json",
    "[]",
    json.dumps({"messagetext": "no id", "timestamp": "2023-05-01T12:30:00+0000"}),
])
def test_malformed_note_is_a_decode_error(payload):
    with pytest.raises(DecodeError):
        codec.decode(payload, Note, MESSAGE_DATE_FORMAT)


def test_decode_user_reads_string_lists():
    payload = json.dumps({
        "userid": "u1",
        "username": "alice",
        "emails": ["a@example.com"],
        "viewableUserIds": ["u2", "u3"],
    })
    user = codec.decode(payload, User)
    assert user.userid == "u1"
    assert user.emails == ["a@example.com"]
    assert user.viewable_user_ids == ["u2", "u3"]
    # 응답에 없던 필드는 설정되지 않음
    assert user.profile_id is None


def test_string_list_must_hold_plain_strings():
    with pytest.raises(DecodeError):
        codec.decode(json.dumps({"userid": "u1", "viewableUserIds": [1, 2]}), User)


def test_encode_skips_bookkeeping_and_string_lists():
    user = User(
        userid="u1",
        username="alice",
        emails=["a@example.com"],
        email_verified=True,
        profile_id="u1",
        viewable_user_ids=["u2"],
    )
    data = json.loads(codec.encode(user))
    assert data == {
        "userid": "u1",
        "username": "alice",
        "emailVerified": True,
        "termsAccepted": None,
    }


def test_encode_note_uses_requested_format():
    note = codec.decode(note_json("n1"), Note, MESSAGE_DATE_FORMAT)
    note.userid = "u1"
    data = json.loads(codec.encode(note, DEFAULT_DATE_FORMAT))
    assert data["timestamp"] == "2023-05-01 12:30:00.000+0000"
    assert data["userid"] == "u1"
    assert "replies" not in data


def test_decode_profile_with_patient():
    payload = json.dumps({
        "fullName": "Alice Example",
        "patient": {"birthday": "1990-01-01", "diagnosisDate": "2000-02-02", "aboutMe": "hi"},
    })
    profile = codec.decode(payload, Profile)
    profile.stamp_owner("u1")
    assert profile.userid == "u1"
    assert profile.full_name == "Alice Example"
    assert profile.patient.userid == "u1"
    assert profile.patient.diagnosis_date == "2000-02-02"


def test_decode_keys():
    assert set(codec.decode_keys('{"alice": 1, "bob": 1}')) == {"alice", "bob"}
    with pytest.raises(DecodeError):
        codec.decode_keys('["alice", "bob"]')
    with pytest.raises(DecodeError):
        codec.decode_keys("nope")


def test_decode_messages_accepts_strings_and_objects():
    body = json.dumps({"messages": [note_json("n1"), json.loads(note_json("n2"))]})
    raw = codec.decode_messages(body)
    assert [json.loads(r)["id"] for r in raw] == ["n1", "n2"]


def test_decode_messages_requires_envelope():
    with pytest.raises(DecodeError):
        codec.decode_messages('{"notes": []}')
    with pytest.raises(DecodeError):
        codec.decode_messages('{"messages": [42]}')


def test_unregistered_type_is_rejected():
    with pytest.raises(TypeError):
        codec.decode("{}", dict)
