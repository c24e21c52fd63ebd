"""Tests for the code -> message resolver."""

from pathlib import Path

import pytest

from formpipe.codes import CORE_CODES, ERR_NO_SENDER, ERR_SEND_FAILED, ERR_UNEXPECTED, ERR_VALIDATION, OK_SENT
from formpipe.messages import MessageResolver


@pytest.fixture
def resolver():
    return MessageResolver()


class TestDefaults:
    """Test built-in descriptors."""

    def test_all_core_codes_known(self, resolver):
        assert set(CORE_CODES) <= set(resolver.codes())

    @pytest.mark.parametrize(
        ("code", "http"),
        [(OK_SENT, 200), (ERR_VALIDATION, 422), (ERR_NO_SENDER, 500), (ERR_SEND_FAILED, 502), (ERR_UNEXPECTED, 500)],
    )
    def test_http_hints(self, resolver, code, http):
        assert resolver.http_status(code) == http

    def test_unknown_code_resolves_to_itself(self, resolver):
        assert resolver.resolve("NOPE") == "NOPE"
        assert resolver.describe("NOPE").http is None
        assert resolver.http_status("NOPE", 400) == 400


class TestExtend:
    """Test descriptor normalization."""

    def test_plain_string(self, resolver):
        resolver.extend({"X": "Plain."})
        assert resolver.resolve("X") == "Plain."

    @pytest.mark.parametrize("key", ["message", "msg", "errstr", "title"])
    def test_message_aliases(self, resolver, key):
        resolver.extend({"X": {key: "Aliased."}})
        assert resolver.resolve("X") == "Aliased."

    @pytest.mark.parametrize("key", ["http", "status"])
    def test_http_aliases(self, resolver, key):
        resolver.extend({"X": {"message": "m", key: 418}})
        assert resolver.http_status("X") == 418

    def test_override_default(self, resolver):
        resolver.extend({OK_SENT: "Got it!"})
        assert resolver.resolve(OK_SENT) == "Got it!"

    def test_empty_message_falls_back_to_code(self, resolver):
        resolver.extend({"X": {"message": ""}})
        assert resolver.resolve("X") == "X"


class TestFormatting:
    """Test placeholder formatting."""

    def test_placeholders_filled(self):
        resolver = MessageResolver({"X": "Hello {name}, {count} new."})
        assert resolver.resolve("X", {"name": "Ada", "count": 2}) == "Hello Ada, 2 new."

    def test_missing_placeholder_kept(self):
        resolver = MessageResolver({"X": "Hello {name} from {place}."})
        assert resolver.resolve("X", {"name": "Ada"}) == "Hello Ada from {place}."

    def test_broken_template_returned_raw(self):
        resolver = MessageResolver({"X": "Broken {name"})
        assert resolver.resolve("X", {"name": "Ada"}) == "Broken {name"


class TestFromYaml:
    """Test loading descriptors from YAML."""

    def test_messages_section(self, tmp_path: Path):
        path = tmp_path / "messages.yaml"
        path.write_text("messages:\n  X: {msg: From yaml, status: 409}\n")

        resolver = MessageResolver.from_yaml(path)

        assert resolver.resolve("X") == "From yaml"
        assert resolver.http_status("X") == 409
        assert resolver.resolve(OK_SENT) == "Thanks! Your message has been sent."

    def test_flat_mapping(self, tmp_path: Path):
        path = tmp_path / "messages.yaml"
        path.write_text("Y: Flat message\n")

        assert MessageResolver.from_yaml(path).resolve("Y") == "Flat message"
