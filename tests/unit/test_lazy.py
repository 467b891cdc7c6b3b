"""
Tests for lazy-loading triggers.

This test suite covers:
1. Event triggers (with patterns and TrellisDone)
2. Filetype triggers re-announcing the filetype
3. Command interception, replay and completion
4. Key triggers (replay, command and function right-hand sides)
5. Load predicates
"""

import asyncio
import logging

import pytest

from trellis.core.triggers import TriggerKind
from trellis.plugin.lazy import parse_event, parse_mapping


async def settle(rounds: int = 20) -> None:
    """Let spawned loads and replays run."""
    for _ in range(rounds):
        await asyncio.sleep(0.005)


class TestParsing:
    """Test trigger spec parsing."""

    def test_parse_event(self):
        assert parse_event("InsertEnter") == ("InsertEnter", None)
        assert parse_event("BufRead *.py") == ("BufRead", "*.py")
        assert parse_event("TrellisDone") == ("User", "TrellisDone")

    def test_parse_mapping(self):
        assert parse_mapping("gc") == ("n", "gc", None, {})
        assert parse_mapping(("v", "gc")) == ("v", "gc", None, {})
        assert parse_mapping(["n", "<leader>t", "Tools", {"silent": True}]) == (
            "n",
            "<leader>t",
            "Tools",
            {"silent": True},
        )
        with pytest.raises(ValueError):
            parse_mapping(("n",))


class TestEvents:
    """Test event triggers."""

    @pytest.mark.asyncio
    async def test_event_loads_once(self, manager, host, make_installed):
        plugin = manager.use("x/tools").on(["InsertEnter", "BufRead *.py"])
        make_installed(plugin)
        assert plugin.is_lazy

        host.emit("BufRead", subject="notes.txt")
        await settle()
        assert not plugin.loaded

        host.emit("BufRead", subject="main.py")
        await settle()
        assert plugin.loaded
        assert host.activated == ["tools"]

        host.emit("InsertEnter")
        await settle()
        assert manager.loaded_count == 1

    @pytest.mark.asyncio
    async def test_trellis_done(self, manager, host, make_installed):
        plugin = manager.use("x/late").on("TrellisDone")
        make_installed(plugin)

        host.emit("User", subject="TrellisDone")
        await settle()

        assert plugin.loaded

    @pytest.mark.asyncio
    async def test_pattern_matches_dotted_file_name(self, manager, host, make_installed):
        plugin = manager.use("a/py-tools").on("BufReadPost *.py")
        make_installed(plugin)

        host.emit("BufReadPost", subject="my.module.py")
        await settle()

        assert plugin.loaded


class TestFiletypes:
    """Test filetype triggers."""

    @pytest.mark.asyncio
    async def test_filetype_is_reannounced(self, manager, host, make_installed):
        plugin = manager.use("x/pytools").ft("python")
        make_installed(plugin)
        seen = []

        def after_load():
            host.register(TriggerKind.FILETYPE, "python", seen.append, once=False)

        plugin.config(after_load)

        host.open_file("python", buffer=3)
        await settle()

        assert plugin.loaded
        assert seen == [{"buffer": 3, "filetype": "python", "data": None}]

    @pytest.mark.asyncio
    async def test_other_filetype_ignored(self, manager, host, make_installed):
        plugin = manager.use("x/pytools").ft(["python", "cython"])
        make_installed(plugin)

        host.open_file("rust")
        await settle()

        assert not plugin.loaded
        assert plugin.filetypes == ["python", "cython"]


class TestCommands:
    """Test command triggers."""

    @pytest.mark.asyncio
    async def test_command_replayed_after_load(self, manager, host, make_installed):
        calls = []
        plugin = manager.use("x/tools").cmd("Tools")
        plugin.config(lambda: host.define_command("Tools", calls.append))
        make_installed(plugin)

        host.invoke("Tools", bang=True, args="--all")
        await settle()

        assert plugin.loaded
        assert host.executed == ["Tools! --all"]
        assert len(calls) == 1
        assert calls[0].bang and calls[0].args == "--all"
        assert plugin.user_commands == ["Tools"]

    @pytest.mark.asyncio
    async def test_local_plugin_command(self, manager, host, tmp_path):
        root = tmp_path / "mytool"
        (root / "plugin").mkdir(parents=True)
        (root / "plugin" / "mytool.py").write_text(
            "host.define_command('MyTool', lambda inv: host.variables.update(ran=inv.args))\n"
        )
        manager.use(str(root)).cmd("MyTool")

        host.invoke("MyTool", args="x")
        await settle()

        assert host.variables["ran"] == "x"

    @pytest.mark.asyncio
    async def test_command_missing_after_load(self, manager, host, make_installed, caplog):
        plugin = manager.use("x/tools").cmd("Tools")
        make_installed(plugin)

        with caplog.at_level(logging.WARNING, logger="trellis.plugin.lazy"):
            host.invoke("Tools")
            await settle()

        assert plugin.loaded
        assert host.executed == []
        assert "not defined after loading" in caplog.text

    @pytest.mark.asyncio
    async def test_completion_forces_load(self, manager, host, make_installed):
        plugin = manager.use("x/git").cmd("Git")
        plugin.config(lambda: host.define_command("Git", print, completions=["push", "pull"]))
        make_installed(plugin)

        candidates = await host.request_completion("Git p")

        assert plugin.loaded
        assert candidates == ["pull", "push"]


class TestKeys:
    """Test key triggers."""

    @pytest.mark.asyncio
    async def test_key_replayed(self, manager, host, make_installed):
        pressed = []
        plugin = manager.use("x/comment").keys("gc")
        plugin.config(lambda: host.define_keymap("gc", lambda: pressed.append("gc")))
        make_installed(plugin)

        host.press("gc")
        await settle()

        assert plugin.loaded
        assert host.fed_keys == ["gc"]
        assert pressed == ["gc"]

    @pytest.mark.asyncio
    async def test_key_with_function(self, manager, host, make_installed):
        calls = []
        plugin = manager.use("x/finder").keys(("n", "<leader>f", lambda: calls.append("find")))
        make_installed(plugin)

        host.press("<leader>f")
        await settle()

        assert calls == ["find"]
        assert host.fed_keys == []

    @pytest.mark.asyncio
    async def test_key_with_command(self, manager, host, make_installed):
        plugin = manager.use("x/finder").keys([["n", "<leader>g", "Grep"]])
        plugin.config(lambda: host.define_command("Grep", print))
        make_installed(plugin)

        host.press("<leader>g")
        await settle()

        assert host.executed == ["Grep"]

    @pytest.mark.asyncio
    async def test_key_other_mode_ignored(self, manager, host, make_installed):
        plugin = manager.use("x/comment").keys(("v", "gc"))
        make_installed(plugin)

        host.press("gc", mode="n")
        await settle()
        assert not plugin.loaded

        host.press("gc", mode="v")
        await settle()
        assert plugin.loaded


class TestConditions:
    """Test load predicates."""

    @pytest.mark.asyncio
    async def test_true_condition_loads_with_build(self, manager, make_installed):
        builds = []
        plugin = manager.use("x/tools").run(lambda: builds.append(1))
        plugin.is_lazy = True
        make_installed(plugin)

        plugin.cond(lambda: True)
        await settle()

        assert plugin.loaded
        assert builds == [1]

    @pytest.mark.asyncio
    async def test_false_expression(self, manager, host, make_installed):
        plugin = manager.use("x/tools")
        plugin.cond("has_python")
        await settle()

        assert plugin.is_lazy
        assert not plugin.loaded

    @pytest.mark.asyncio
    async def test_host_expression(self, manager, host, make_installed):
        host.variables["has_python"] = True
        plugin = manager.use("x/tools")
        plugin.is_lazy = True
        make_installed(plugin)

        plugin.cond("has_python")
        await settle()

        assert plugin.loaded

    def test_failing_condition(self, manager, caplog):
        def broken():
            raise RuntimeError("no")

        with caplog.at_level(logging.ERROR, logger="trellis.plugin.lazy"):
            plugin = manager.use("x/tools").cond(broken)

        assert not plugin.loaded
        assert "Failed to evaluate condition" in caplog.text
