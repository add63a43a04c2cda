"""SyncProtocol and OctaveDialect unit tests."""

from __future__ import annotations

import pytest

from octave_debug_mcp.runtime.dialect import OctaveDialect, function_from_path
from octave_debug_mcp.runtime.sync import DEFAULT_NAMESPACE, SyncProtocol


class TestTokens:
    def test_tokens_increase_from_one(self):
        sync = SyncProtocol()
        assert [sync.next_token() for _ in range(3)] == [1, 2, 3]
        assert sync.last_token == 3

    def test_instances_do_not_share_counters(self):
        a = SyncProtocol()
        b = SyncProtocol()
        a.next_token()
        a.next_token()
        assert b.next_token() == 1

    @pytest.mark.parametrize("namespace", ["", "bad ns", 'q"uote', "back\\slash", "pct%d"])
    def test_unsafe_namespace_rejected(self, namespace: str):
        with pytest.raises(ValueError):
            SyncProtocol(namespace=namespace)


class TestMarkers:
    def test_marker_text(self):
        sync = SyncProtocol()
        assert sync.marker_text(7) == f"{DEFAULT_NAMESPACE}::7"

    def test_echo_command(self):
        sync = SyncProtocol(namespace="ns")
        assert sync.echo_command(3) == 'printf("ns::3\\n")'

    def test_matches_exact_marker(self):
        sync = SyncProtocol(namespace="ns")
        assert sync.matches("ns::3", 3)
        assert not sync.matches("ns::3", 4)
        assert not sync.matches("ns::31", 3)
        assert not sync.matches("xns::3", 3)

    def test_matches_after_repeated_prompts(self):
        sync = SyncProtocol(OctaveDialect(prompt="debug> "), namespace="ns")
        assert sync.matches("debug> ns::1", 1)
        assert sync.matches("debug> debug> debug> ns::1", 1)

    def test_is_marker(self):
        sync = SyncProtocol(namespace="ns")
        assert sync.is_marker("debug> ns::12")
        assert not sync.is_marker("ns::")
        assert not sync.is_marker("ans = 2")


class TestPromptStripping:
    def test_strip_any_number_of_prompts(self):
        sync = SyncProtocol(OctaveDialect(prompt="debug> "))
        assert sync.strip_prompt("debug> debug> ans = 2") == "ans = 2"

    def test_prompt_inside_line_kept(self):
        sync = SyncProtocol(OctaveDialect(prompt="debug> "))
        assert sync.strip_prompt("x debug> y") == "x debug> y"

    def test_empty_prompt_strips_nothing(self):
        sync = SyncProtocol(OctaveDialect(prompt=""))
        assert sync.strip_prompt("debug> ans") == "debug> ans"

    def test_clean_trims_whitespace(self):
        sync = SyncProtocol(OctaveDialect(prompt="debug> "))
        assert sync.clean("debug>   ans = 2  ") == "ans = 2"


class TestDialect:
    def test_set_prompt_quotes(self):
        assert OctaveDialect(prompt="it's> ").set_prompt() == "PS1('it''s> ')"

    def test_add_path_quotes(self):
        assert OctaveDialect().add_path("/tmp/o'neil") == "addpath('/tmp/o''neil')"

    def test_which_and_stop(self):
        dialect = OctaveDialect()
        assert dialect.which("sin") == "which sin"
        assert dialect.stop_in("main") == "dbstop in main"
        assert dialect.quit() == "quit"

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/work/src/main.m", "main"),
            ("relative/dir/solve_it.m", "solve_it"),
            ("script", "script"),
        ],
    )
    def test_function_from_path(self, path: str, expected: str):
        assert function_from_path(path) == expected
