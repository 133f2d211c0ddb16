import json

from app.services.generation.extractors import (
    IMAGE_URL_EXTRACTORS,
    SESSION_ID_EXTRACTORS,
    extract_image_url,
    extract_session_id,
    first_match,
)


class TestImageUrl:
    def test_precedence(self):
        body = {"url": "https://c", "storage_path": "https://b", "image_url": "https://a"}
        assert extract_image_url(body) == "https://a"
        del body["image_url"]
        assert extract_image_url(body) == "https://b"
        del body["storage_path"]
        assert extract_image_url(body) == "https://c"

    def test_blank_values_are_skipped(self):
        assert extract_image_url({"image_url": "  ", "url": "https://c"}) == "https://c"

    def test_missing(self):
        assert extract_image_url({"status": "finished"}) is None


class TestSessionId:
    def test_direct_fields_first(self):
        body = {"sessionId": "b", "session_id": "a", "passthrough": json.dumps({"session_id": "z"})}
        assert extract_session_id(body) == "a"

    def test_camel_case(self):
        assert extract_session_id({"sessionId": "b"}) == "b"

    def test_meta(self):
        assert extract_session_id({"meta": {"session_id": "m1"}}) == "m1"
        assert extract_session_id({"meta": {"sessionId": "m2"}}) == "m2"

    def test_passthrough_json_string(self):
        body = {"passthrough": json.dumps({"session_id": "p1", "template_uuid": "t"})}
        assert extract_session_id(body) == "p1"

    def test_passthrough_json_camel_case(self):
        assert extract_session_id({"passthrough": json.dumps({"sessionId": "p2"})}) == "p2"

    def test_passthrough_object(self):
        assert extract_session_id({"passthrough": {"session_id": "p3"}}) == "p3"

    def test_passthrough_raw_string(self):
        assert extract_session_id({"passthrough": "raw-session-id"}) == "raw-session-id"

    def test_passthrough_json_scalar(self):
        assert extract_session_id({"passthrough": '"quoted-id"'}) == "quoted-id"
        assert extract_session_id({"passthrough": "12345"}) == "12345"

    def test_passthrough_object_without_session(self):
        assert extract_session_id({"passthrough": json.dumps({"template_uuid": "t"})}) is None

    def test_nothing_resolvable(self):
        assert extract_session_id({"image_url": "https://a", "meta": "not-a-dict"}) is None

    def test_order_is_declared(self):
        names = [e.__name__ for e in SESSION_ID_EXTRACTORS]
        assert names == [
            "key_session_id",
            "key_sessionId",
            "meta_session_id",
            "meta_sessionId",
            "passthrough_session_id",
        ]
        assert [e.__name__ for e in IMAGE_URL_EXTRACTORS] == ["key_image_url", "key_storage_path", "key_url"]

    def test_first_match_stops_at_first_hit(self):
        calls = []

        def a(body):
            calls.append("a")
            return "x"

        def b(body):
            calls.append("b")
            return "y"

        assert first_match({}, [a, b]) == "x"
        assert calls == ["a"]
