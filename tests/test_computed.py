"""Tests for ComputedField."""

import pytest

from trackx import ComputedField, ObservableValue, autorun


class TestComputedField:
    async def test_basic(self):
        async def answer():
            return 42

        foo = ComputedField(answer)
        assert await foo() == 42
        assert "42" in repr(foo)

    async def test_sync_function(self):
        foo = ComputedField(lambda: "plain")
        assert await foo() == "plain"

    async def test_stops_after_read_outside_computation(self):
        foo = ComputedField(lambda: 1)
        await foo()
        assert not foo.running

    async def test_reactive(self):
        internal = ObservableValue(42)

        async def value():
            return internal.get()

        foo = ComputedField(value)
        changes = []

        async def body(c):
            changes.append(await foo())

        handle = await autorun(body)

        await internal.set(43)
        await handle.flush()
        await internal.set(44)
        await handle.flush()
        await internal.set(44)  # no change
        await handle.flush()
        await internal.set(43)
        await handle.flush()

        assert changes == [42, 43, 44, 43]
        handle.stop()

    async def test_caller_reruns_only_on_result_change(self):
        number = ObservableValue(1)
        parity = ComputedField(lambda: "even" if number.get() % 2 == 0 else "odd")
        runs = []

        async def body(c):
            runs.append(await parity())

        handle = await autorun(body)
        await number.set(3)  # still odd
        assert runs == ["odd"]
        await number.set(4)
        assert runs == ["odd", "even"]
        handle.stop()

    async def test_nested(self):
        internal = ObservableValue(42)
        outside = None
        changes = []

        async def body(c):
            nonlocal outside
            outside = ComputedField(lambda: internal.get())
            changes.append(await outside())

        handle = await autorun(body)
        await internal.set(43)
        await handle.flush()
        handle.stop()

        await internal.set(44)
        await internal.set(45)

        assert await outside() == 45
        assert changes == [42, 43]
        outside.stop()

    async def test_retires_when_unobserved(self):
        internal = ObservableValue(1)
        evaluations = []

        def value():
            evaluations.append(1)
            return internal.get()

        foo = ComputedField(value)

        async def body(c):
            await foo()

        handle = await autorun(body)
        assert foo.running
        handle.stop()

        await internal.set(2)
        assert not foo.running
        assert len(evaluations) == 1  # stopped instead of recomputing
        assert not internal.dependency.has_dependents()

    async def test_keep_running(self):
        internal = ObservableValue(42)
        run = []

        async def value():
            v = internal.get()
            run.append(v)
            return v

        foo = ComputedField(value, keep_running=True)
        await foo()
        assert foo.running
        await foo.flush()
        assert foo.running
        await foo()
        assert foo.running
        assert run == [42]

        await internal.set(7)
        assert run == [42, 7]
        assert await foo() == 7
        foo.stop()
        assert not foo.running

    async def test_custom_equals(self):
        source = ObservableValue(0)
        rows = ComputedField(
            lambda: {"count": source.get() // 10},
            equals=lambda old, new: old == new,
        )
        runs = []

        async def body(c):
            runs.append(await rows())

        handle = await autorun(body)
        await source.set(5)
        assert runs == [{"count": 0}]
        await source.set(15)
        assert runs == [{"count": 0}, {"count": 1}]
        handle.stop()

    async def test_first_evaluation_failure_propagates(self):
        def broken():
            raise KeyError("missing")

        foo = ComputedField(broken)
        with pytest.raises(KeyError):
            await foo()
        assert not foo.running
