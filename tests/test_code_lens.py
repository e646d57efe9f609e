import pytest

from editorlens.daemon.editor import (
    CodeLensWithoutCommand,
    NoCodeLensInSelection,
    decode_command_arguments,
    editor_unquote,
)
from editorlens.daemon.handlers.code_lens import (
    editor_code_lens,
    handle_apply_code_lens,
    handle_code_lens,
    lenses_in_range,
    perform_code_lens_command,
    sort_code_lenses,
)
from editorlens.daemon.rpc import ApplyCodeLensParams, CodeLensParams
from editorlens.lsp.protocol import LSPMethodNotSupported, LSPResponseError
from editorlens.lsp.types import Position, Range

from .conftest import BUFFILE, FakeClient, make_lens, open_document

TEXT = "".join(f"line {n}\n" for n in range(10))


def selection(start_line, end_line):
    return Range(
        start=Position(line=start_line, character=0),
        end=Position(line=end_line, character=0),
    )


class TestRequestIssuer:
    @pytest.mark.asyncio
    async def test_missing_capability_sends_nothing(self, ctx, session, meta):
        session.client = FakeClient(capabilities={})

        with pytest.raises(LSPMethodNotSupported) as exc_info:
            await handle_code_lens(ctx, meta, CodeLensParams())

        assert "textDocument/codeLens" in str(exc_info.value)
        assert session.client.requests == []

    @pytest.mark.asyncio
    async def test_sends_request_for_buffer_uri(self, ctx, session, client, meta):
        open_document(session, TEXT)
        client.responses["textDocument/codeLens"] = []

        result = await handle_code_lens(ctx, meta, CodeLensParams())
        await ctx.drain()

        assert result.status == "requested"
        [(method, params)] = client.requests
        assert method == "textDocument/codeLens"
        assert params.model_dump(exclude_none=True) == {
            "textDocument": {"uri": "file:///project/src/app.py"}
        }

    @pytest.mark.asyncio
    async def test_empty_options_object_counts_as_support(self, ctx, session, meta):
        session.client = FakeClient(capabilities={"codeLensProvider": {"resolveProvider": True}})
        session.client.responses["textDocument/codeLens"] = None

        await handle_code_lens(ctx, meta, CodeLensParams())
        await ctx.drain()

        assert session.client.capabilities.code_lens_resolve_provider()
        assert len(session.client.requests) == 1

    @pytest.mark.asyncio
    async def test_response_stored_through_continuation(self, ctx, session, client, editor, meta):
        open_document(session, TEXT, version=4)
        client.responses["textDocument/codeLens"] = [make_lens(5, title="B"), make_lens(0, title="A")]

        await handle_code_lens(ctx, meta, CodeLensParams())
        await ctx.drain()

        titles = [lens.command.title for lens in session.code_lenses[BUFFILE]]
        assert titles == ["A", "B"]
        assert len(editor.commands) == 1

    @pytest.mark.asyncio
    async def test_failed_request_skips_continuation(self, ctx, session, client, editor, meta):
        open_document(session, TEXT)
        client.responses["textDocument/codeLens"] = LSPResponseError(-32603, "boom")

        await handle_code_lens(ctx, meta, CodeLensParams())
        await ctx.drain()

        assert BUFFILE not in session.code_lenses
        assert editor.commands == ["lsp-show-error 'textDocument/codeLens failed: boom'"]


class TestResponseHandler:
    def test_sorted_by_start_line_and_stable(self):
        lenses = [
            make_lens(7, title="x"),
            make_lens(2, title="first on 2"),
            make_lens(0, title="y"),
            make_lens(2, title="second on 2"),
        ]
        titles = [lens.command.title for lens in sort_code_lenses(lenses)]
        assert titles == ["y", "first on 2", "second on 2", "x"]

    def test_sort_keeps_every_entry(self):
        lenses = [make_lens(n % 3, title=str(n)) for n in range(9)]
        result = sort_code_lenses(lenses)
        assert len(result) == len(lenses)
        assert sorted(l.command.title for l in result) == sorted(l.command.title for l in lenses)

    def test_none_becomes_empty_entry(self, ctx, session, meta):
        open_document(session, TEXT)
        editor_code_lens(ctx, meta, None)
        assert session.code_lenses[BUFFILE] == []

    def test_overwrites_previous_entry(self, ctx, session, meta):
        open_document(session, TEXT)
        editor_code_lens(ctx, meta, [make_lens(1), make_lens(2)])
        editor_code_lens(ctx, meta, [make_lens(8)])

        assert [l.range.start.line for l in session.code_lenses[BUFFILE]] == [8]

    def test_closed_document_discards_result(self, ctx, session, editor, meta):
        editor_code_lens(ctx, meta, [make_lens(1)])

        assert BUFFILE not in session.code_lenses
        assert editor.commands == []

    def test_display_command(self, ctx, session, editor, meta):
        open_document(session, TEXT, version=12)
        editor_code_lens(ctx, meta, [make_lens(3), make_lens(0)])

        [(sent_meta, command)] = editor.sent
        assert sent_meta.version == 12
        assert sent_meta.buffile == BUFFILE
        assert sent_meta.client is None
        assert command == (
            "evaluate-commands -buffer '/project/src/app.py' %§"
            "evaluate-commands \"set-option buffer lsp_error_lines 12 "
            "'1|%opt[lsp_code_lens_sign]' '4|%opt[lsp_code_lens_sign]' "
            "'0|%opt[lsp_diagnostic_line_error_sign]'\"§"
        )


class TestLensesInRange:
    def test_scenario_single_match(self):
        lenses = [make_lens(0, title="A"), make_lens(5, title="B")]
        assert [l.command.title for l in lenses_in_range(lenses, selection(3, 6))] == ["B"]

    def test_scenario_both_in_order(self):
        lenses = [make_lens(0, title="A"), make_lens(5, title="B")]
        assert [l.command.title for l in lenses_in_range(lenses, selection(0, 5))] == ["A", "B"]

    def test_multiline_lens_overlaps_from_inside(self):
        lenses = [make_lens(2, 9, title="block")]
        assert lenses_in_range(lenses, selection(4, 4)) == lenses

    def test_exactly_overlapping_lenses(self):
        lenses = [make_lens(n, title=str(n)) for n in range(10)]
        matched = lenses_in_range(lenses, selection(3, 6))
        assert [l.range.start.line for l in matched] == [3, 4, 5, 6]


class TestPerformCodeLensCommand:
    def test_arguments_double_encoded(self):
        command = perform_code_lens_command(
            [make_lens(0, title="Run", command="test.run", arguments=['a"b', 42])]
        )
        assert command == (
            "lsp-perform-code-lens 'Run' "
            "'lsp-execute-command ''test.run'' ''\"[\\\"a\\\\\\\"b\\\",42]\"'''"
        )

    def test_invocation_decodes_back(self):
        arguments = [{"it's": "%{x}"}, ["§", 1]]
        command = perform_code_lens_command(
            [make_lens(0, title="Go", command="go.run", arguments=arguments)]
        )

        invocation = editor_unquote(command.removeprefix("lsp-perform-code-lens 'Go' "))
        prefix = "lsp-execute-command 'go.run' "
        assert invocation.startswith(prefix)
        payload = editor_unquote(invocation.removeprefix(prefix))
        assert decode_command_arguments(payload) == arguments

    def test_missing_arguments(self):
        command = perform_code_lens_command([make_lens(0, title="T", command="c")])
        assert command.endswith("''\"[]\"'''")

    def test_titles_with_quotes(self):
        command = perform_code_lens_command([make_lens(0, title="Don't run")])
        assert command.startswith("lsp-perform-code-lens 'Don''t run' ")

    def test_lens_without_command(self):
        with pytest.raises(CodeLensWithoutCommand, match="line 4"):
            perform_code_lens_command([make_lens(1), make_lens(3, title=None)])


class TestSelectionResolver:
    @pytest.mark.asyncio
    async def test_scenario_match(self, ctx, session, editor, meta):
        open_document(session, TEXT)
        session.code_lenses[BUFFILE] = [make_lens(0, title="A"), make_lens(5, title="B")]

        result = await handle_apply_code_lens(
            ctx, meta, ApplyCodeLensParams(selectionDesc="4.1,7.1")
        )

        assert result.matches == 1
        assert editor.commands == [result.command]
        assert result.command.startswith("lsp-perform-code-lens 'B' ")

    @pytest.mark.asyncio
    async def test_scenario_both(self, ctx, session, editor, meta):
        open_document(session, TEXT)
        session.code_lenses[BUFFILE] = [make_lens(0, title="A"), make_lens(5, title="B")]

        result = await handle_apply_code_lens(
            ctx, meta, ApplyCodeLensParams(selectionDesc="6.3,1.1")
        )

        assert result.matches == 2
        assert result.command.index("'A'") < result.command.index("'B'")

    @pytest.mark.asyncio
    async def test_no_match(self, ctx, session, editor, meta):
        open_document(session, TEXT)
        session.code_lenses[BUFFILE] = [make_lens(0, title="A")]

        with pytest.raises(NoCodeLensInSelection, match="no code lens in selection"):
            await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="3.1,3.1"))
        assert editor.commands == []

    @pytest.mark.asyncio
    async def test_empty_response_then_no_match(self, ctx, session, meta):
        open_document(session, TEXT)
        editor_code_lens(ctx, meta, [])

        with pytest.raises(NoCodeLensInSelection):
            await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="1.1,9.1"))

    @pytest.mark.asyncio
    async def test_unknown_document_is_silent(self, ctx, session, editor, meta):
        session.code_lenses[BUFFILE] = [make_lens(0)]

        result = await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="1.1,1.1"))

        assert result.command is None
        assert editor.commands == []

    @pytest.mark.asyncio
    async def test_no_fetched_lenses_is_silent(self, ctx, session, editor, meta):
        open_document(session, TEXT)

        result = await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="1.1,1.1"))

        assert result.command is None
        assert editor.commands == []

    @pytest.mark.asyncio
    async def test_store_not_modified(self, ctx, session, meta):
        open_document(session, TEXT)
        lenses = [make_lens(0, title="A"), make_lens(5, title="B")]
        session.code_lenses[BUFFILE] = list(lenses)

        await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="6.1,6.1"))

        assert session.code_lenses[BUFFILE] == lenses

    @pytest.mark.asyncio
    async def test_matched_lens_without_command(self, ctx, session, editor, meta):
        open_document(session, TEXT)
        session.code_lenses[BUFFILE] = [make_lens(2, title=None)]

        with pytest.raises(CodeLensWithoutCommand):
            await handle_apply_code_lens(ctx, meta, ApplyCodeLensParams(selectionDesc="3.1,3.1"))
        assert editor.commands == []

    def test_param_alias(self):
        assert ApplyCodeLensParams.model_validate({"selectionDesc": "1.1,1.1"}).selection_desc == "1.1,1.1"
        with pytest.raises(Exception):
            ApplyCodeLensParams.model_validate({})
