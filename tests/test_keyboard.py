"""Tests for key decoding and dispatch."""

import asyncio
import io

import pytest

from porttop.keyboard import KeyboardHandler, parse_key, split_sequences


class TestParseKey:
    """Tests for raw sequence decoding."""

    @pytest.mark.parametrize(
        "sequence, key",
        [
            ("\x03", "ctrl+c"),
            ("\x1b", "escape"),
            ("\x7f", "backspace"),
            ("\b", "backspace"),
            ("\r", "enter"),
            ("\n", "enter"),
            ("\t", "tab"),
            (" ", "space"),
            ("\x1b[A", "up"),
            ("\x1b[B", "down"),
            ("\x1b[C", "right"),
            ("\x1b[D", "left"),
            ("\x1bOP", "f1"),
            ("\x1bOS", "f4"),
            ("\x01", "ctrl+a"),
            ("\x1a", "ctrl+z"),
            ("k", "k"),
            ("K", "K"),
            ("7", "7"),
        ],
    )
    def test_parse(self, sequence, key):
        """Test each sequence maps to its key name."""
        assert parse_key(sequence) == key


class TestSplitSequences:
    """Tests for multi-key reads."""

    def test_arrows_and_letters(self):
        """Test a read holding several keys is split apart."""
        assert split_sequences("\x1b[A\x1b[Bq") == ["\x1b[A", "\x1b[B", "q"]

    def test_lone_escape(self):
        """Test a bare escape followed by text stays a separate key."""
        assert split_sequences("\x1bx") == ["\x1b", "x"]

    def test_digits(self):
        """Test pasted digits become individual keys."""
        assert split_sequences("3000") == ["3", "0", "0", "0"]


class TestDispatch:
    """Tests for handler dispatch."""

    @pytest.mark.asyncio
    async def test_exact_then_wildcard(self):
        """Test the exact handler runs before the wildcard handler."""
        handler = KeyboardHandler(stream=io.StringIO())
        seen: list[str] = []
        handler.on("q", lambda key: seen.append(f"exact:{key}"))
        handler.on("*", lambda key: seen.append(f"any:{key}"))

        await handler.dispatch("q")
        await handler.dispatch("x")

        assert seen == ["exact:q", "any:q", "any:x"]

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self):
        """Test awaitable results are awaited."""
        handler = KeyboardHandler(stream=io.StringIO())
        done = []

        async def on_key(key):
            await asyncio.sleep(0)
            done.append(key)

        handler.on("k", on_key)
        await handler.dispatch("k")

        assert done == ["k"]

    @pytest.mark.asyncio
    async def test_errors_go_to_sink(self):
        """Test a failing handler reports to the sink and later keys still work."""
        errors: list[tuple[str, BaseException]] = []
        handler = KeyboardHandler(stream=io.StringIO(), error_sink=lambda key, exc: errors.append((key, exc)))
        seen = []

        def broken(key):
            raise RuntimeError("broken")

        async def broken_async(key):
            raise ValueError("async broken")

        handler.on("a", broken)
        handler.on("b", broken_async)
        handler.on("c", seen.append)

        await handler.dispatch("a")
        await handler.dispatch("b")
        await handler.dispatch("c")

        assert [(key, type(exc)) for key, exc in errors] == [("a", RuntimeError), ("b", ValueError)]
        assert seen == ["c"]

    @pytest.mark.asyncio
    async def test_off(self):
        """Test a removed handler is no longer called."""
        handler = KeyboardHandler(stream=io.StringIO())
        seen = []
        handler.on("q", seen.append)
        handler.off("q")

        await handler.dispatch("q")
        assert seen == []

    @pytest.mark.asyncio
    async def test_feed_dispatches_each_key(self):
        """Test fed input is decoded and every key is delivered in order."""
        handler = KeyboardHandler(stream=io.StringIO())
        seen = []
        handler.on("*", seen.append)

        handler.feed("\x1b[Ak\r")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert seen == ["up", "k", "enter"]


class TestInterrupt:
    """Tests for ctrl+c."""

    @pytest.mark.asyncio
    async def test_ctrl_c_exits_bypassing_handlers(self):
        """Test ctrl+c restores the terminal and exits without dispatching."""
        restored = []
        handler = KeyboardHandler(stream=io.StringIO(), on_interrupt=lambda: restored.append(True))
        seen = []
        handler.on("*", seen.append)
        handler.on("ctrl+c", seen.append)

        with pytest.raises(SystemExit) as info:
            handler.feed("\x03")
        await asyncio.sleep(0)

        assert info.value.code == 0
        assert restored == [True]
        assert seen == []
