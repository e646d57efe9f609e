import json

import pytest

from editorlens.daemon.editor import (
    decode_command_arguments,
    editor_quote,
    editor_unquote,
    encode_command_arguments,
    show_error_command,
)


class TestEditorQuote:
    def test_plain(self):
        assert editor_quote("Run test") == "'Run test'"

    def test_single_quotes_doubled(self):
        assert editor_quote("it's") == "'it''s'"

    @pytest.mark.parametrize("text", ["", "a'b", "''", "%{x} §y§ \"z\"", "line\nbreak"])
    def test_roundtrip(self, text):
        assert editor_unquote(editor_quote(text)) == text

    def test_unquote_rejects_bare_word(self):
        with pytest.raises(ValueError):
            editor_unquote("bare")


class TestCommandArguments:
    def test_quote_in_string(self):
        arguments = ['a"b', 42]
        payload = editor_quote(encode_command_arguments(arguments))
        assert decode_command_arguments(editor_unquote(payload)) == ['a"b', 42]

    def test_payload_is_single_json_string(self):
        payload = encode_command_arguments([{"uri": "file:///a.py"}])
        assert isinstance(json.loads(payload), str)
        assert payload.startswith('"') and payload.endswith('"')

    def test_missing_arguments_encode_as_empty_list(self):
        assert decode_command_arguments(encode_command_arguments(None)) == []

    def test_nested_values_with_delimiters(self):
        arguments = [
            {"title": "it's %{here}", "path": "C:\\tmp\\§x§", "nested": [[1, 2.5], {"k": None}]},
            True,
            "",
            ["'", '"', "\\", "{", "}", "[", "]"],
        ]
        payload = editor_quote(encode_command_arguments(arguments))
        assert decode_command_arguments(editor_unquote(payload)) == arguments

    def test_order_preserved(self):
        arguments = [3, 1, 2, "b", "a"]
        assert decode_command_arguments(encode_command_arguments(arguments)) == arguments

    def test_decode_rejects_single_encoding(self):
        with pytest.raises(ValueError):
            decode_command_arguments(json.dumps([1, 2]))

    def test_decode_rejects_non_list(self):
        with pytest.raises(ValueError):
            decode_command_arguments(json.dumps(json.dumps({"a": 1})))


class TestShowErrorCommand:
    def test_message_is_quoted(self):
        assert show_error_command("no code lens in selection") == (
            "lsp-show-error 'no code lens in selection'"
        )

    def test_multiline_message_joined(self):
        assert show_error_command("first\nsecond's") == "lsp-show-error 'first second''s'"
