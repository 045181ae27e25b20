"""Tests for GraphExecutor runs, checkpoints and failures."""

import pytest

from lessonflow.graph.builder import StateGraph
from lessonflow.graph.edge import END, START
from lessonflow.graph.errors import SuspendWithoutResumeError
from lessonflow.graph.executor import ExecutionStatus, GraphExecutor
from lessonflow.graph.node import Command
from lessonflow.schemas.checkpoint import CheckpointStatus


def build_goto_graph(schema):
    """a jumps straight to c; c ends the run once approved."""

    async def a(state, ctx):
        return Command(goto="c", update={"approved": True, "log": ["a"]})

    async def b(state, ctx):
        return {"log": ["b"]}

    async def c(state, ctx):
        return {"log": ["c"]}

    graph = StateGraph(schema, graph_id="goto")
    graph.add_node("a", a)
    graph.add_node("b", b)
    graph.add_node("c", c)
    graph.add_edge(START, "a")
    graph.add_edge("a", "b")
    graph.add_conditional_edges("c", lambda s: END if s.approved else "b", targets=["b", END])
    return graph.compile()


def build_need_id_graph(schema):
    async def b(state, ctx):
        answer = await ctx.suspend("need-id")
        return {"answer": answer}

    graph = StateGraph(schema, graph_id="need-id")
    graph.add_node("b", b)
    graph.add_edge(START, "b")
    return graph.compile()


@pytest.mark.asyncio
async def test_goto_skips_edges_and_completes(schema, memory_store):
    executor = GraphExecutor(build_goto_graph(schema), memory_store)

    outcome = await executor.start_or_resume("t1")

    assert outcome.status == ExecutionStatus.COMPLETED
    assert outcome.path == ["a", "c"]
    assert outcome.state.approved is True
    assert outcome.state.log == ["a", "c"]

    history = await memory_store.history("t1")
    assert len(history) == 2
    assert history[0].status == CheckpointStatus.RUNNING
    assert history[0].next_node == "c"
    assert history[1].status == CheckpointStatus.COMPLETED
    assert history[1].next_node is None
    assert history[1].parent_checkpoint_id == history[0].checkpoint_id
    assert await executor.get_status("t1") == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_suspend_persists_pre_node_state(schema, memory_store):
    executor = GraphExecutor(build_need_id_graph(schema), memory_store)

    outcome = await executor.start_or_resume("t1", {"count": 7})

    assert outcome.status == ExecutionStatus.SUSPENDED
    assert outcome.interrupt.value == "need-id"
    assert outcome.interrupt.node == "b"

    history = await memory_store.history("t1")
    assert len(history) == 1
    assert history[0].status == CheckpointStatus.SUSPENDED
    assert history[0].next_node == "b"
    assert history[0].state["count"] == 7
    assert history[0].state["answer"] is None
    assert (await executor.get_pending_interrupt("t1")).value == "need-id"
    assert await executor.get_status("t1") == ExecutionStatus.SUSPENDED


@pytest.mark.asyncio
async def test_resume_delivers_value_to_suspended_node(schema, memory_store):
    executor = GraphExecutor(build_need_id_graph(schema), memory_store)
    await executor.start_or_resume("t1")

    outcome = await executor.resume("t1", "id-42")

    assert outcome.status == ExecutionStatus.COMPLETED
    assert outcome.state.answer == "id-42"
    history = await memory_store.history("t1")
    assert len(history) == 2
    assert history[1].parent_checkpoint_id == history[0].checkpoint_id
    assert await executor.get_pending_interrupt("t1") is None


@pytest.mark.asyncio
async def test_resume_through_start_or_resume(schema, memory_store):
    executor = GraphExecutor(build_need_id_graph(schema), memory_store)
    await executor.start_or_resume("t1")

    outcome = await executor.start_or_resume("t1", resume="id-7")
    assert outcome.is_completed
    assert outcome.state.answer == "id-7"


@pytest.mark.asyncio
async def test_resume_without_suspend_raises_and_writes_nothing(schema, memory_store):
    executor = GraphExecutor(build_goto_graph(schema), memory_store)

    with pytest.raises(SuspendWithoutResumeError):
        await executor.resume("fresh", "value")
    assert await memory_store.history("fresh") == []

    await executor.start_or_resume("t1")
    before = len(await memory_store.history("t1"))
    with pytest.raises(SuspendWithoutResumeError):
        await executor.resume("t1", "value")
    with pytest.raises(SuspendWithoutResumeError):
        await executor.start_or_resume("t1", resume="value")
    assert len(await memory_store.history("t1")) == before


@pytest.mark.asyncio
async def test_node_error_writes_failed_checkpoint_and_retry_succeeds(schema, memory_store):
    attempts = []

    async def flaky(state, ctx):
        attempts.append(state.count)
        if len(attempts) == 1:
            raise RuntimeError("model timed out")
        return {"log": ["flaky"]}

    async def first(state, ctx):
        return {"count": state.count + 1}

    graph = StateGraph(schema)
    graph.add_node("first", first)
    graph.add_node("flaky", flaky)
    graph.add_edge(START, "first")
    graph.add_edge("first", "flaky")
    executor = GraphExecutor(graph.compile(), memory_store)

    outcome = await executor.start_or_resume("t1")

    assert outcome.status == ExecutionStatus.FAILED
    assert outcome.error == "model timed out"
    assert outcome.error_type == "RuntimeError"
    latest = await memory_store.latest("t1")
    assert latest.status == CheckpointStatus.FAILED
    assert latest.next_node == "flaky"
    assert latest.state["count"] == 1
    assert latest.state["log"] == []
    assert await executor.get_status("t1") == ExecutionStatus.FAILED

    retry = await executor.start_or_resume("t1")

    assert retry.status == ExecutionStatus.COMPLETED
    assert retry.path == ["flaky"]
    assert retry.state.count == 1
    assert retry.state.log == ["flaky"]
    assert attempts == [1, 1]


@pytest.mark.asyncio
async def test_goto_unknown_node_fails(schema, memory_store):
    async def lost(state, ctx):
        return Command(goto="nowhere")

    graph = StateGraph(schema).add_node("lost", lost).set_entry_point("lost")
    executor = GraphExecutor(graph.compile(), memory_store)

    outcome = await executor.start_or_resume("t1")

    assert outcome.is_failed
    assert outcome.error_type == "ResolutionError"
    latest = await memory_store.latest("t1")
    assert latest.next_node == "lost"


@pytest.mark.asyncio
async def test_invalid_return_type_fails(schema, memory_store):
    async def bad(state, ctx):
        return ["not", "a", "delta"]

    graph = StateGraph(schema).add_node("bad", bad).set_entry_point("bad")
    outcome = await GraphExecutor(graph.compile(), memory_store).start_or_resume("t1")

    assert outcome.is_failed
    assert outcome.error_type == "TypeError"


@pytest.mark.asyncio
async def test_unknown_channel_in_delta_fails(schema, memory_store):
    async def bad(state, ctx):
        return {"not_a_channel": 1}

    graph = StateGraph(schema).add_node("bad", bad).set_entry_point("bad")
    outcome = await GraphExecutor(graph.compile(), memory_store).start_or_resume("t1")

    assert outcome.is_failed
    assert outcome.error_type == "ConfigurationError"


@pytest.mark.asyncio
async def test_max_steps_stops_loops(schema, memory_store):
    async def spin(state, ctx):
        return {"count": state.count + 1}

    graph = StateGraph(schema).add_node("spin", spin).set_entry_point("spin")
    graph.add_edge("spin", "spin")
    executor = GraphExecutor(graph.compile(), memory_store, max_steps=5)

    outcome = await executor.start_or_resume("t1")

    assert outcome.is_failed
    assert outcome.error_type == "GraphRecursionError"
    assert outcome.steps_executed == 5
    assert outcome.state.count == 5


@pytest.mark.asyncio
async def test_routing_is_deterministic(schema, memory_store):
    async def decide(state, ctx):
        return {"count": state.count}

    async def even(state, ctx):
        return {"log": ["even"]}

    async def odd(state, ctx):
        return {"log": ["odd"]}

    graph = StateGraph(schema)
    graph.add_node("decide", decide)
    graph.add_node("even", even)
    graph.add_node("odd", odd)
    graph.add_edge(START, "decide")
    graph.add_conditional_edges(
        "decide", lambda s: "even" if s.count % 2 == 0 else "odd", targets=["even", "odd"]
    )
    executor = GraphExecutor(graph.compile(), memory_store)

    paths = [
        (await executor.start_or_resume(f"t{i}", {"count": 3})).path for i in range(3)
    ]
    assert paths == [["decide", "odd"]] * 3


@pytest.mark.asyncio
async def test_completed_thread_restarts_at_entry(schema, memory_store):
    executor = GraphExecutor(build_goto_graph(schema), memory_store)
    await executor.start_or_resume("t1")

    outcome = await executor.start_or_resume("t1")

    assert outcome.path == ["a", "c"]
    assert outcome.state.log == ["a", "c", "a", "c"]
    assert len(await memory_store.history("t1")) == 4


@pytest.mark.asyncio
async def test_get_state_for_unknown_thread_is_initial(schema, memory_store):
    executor = GraphExecutor(build_goto_graph(schema), memory_store)
    state = await executor.get_state("nobody")
    assert dict(state) == dict(schema.initial())
    assert await executor.get_status("nobody") == ExecutionStatus.IDLE


@pytest.mark.asyncio
async def test_collaborators_reach_nodes_through_context(schema, memory_store):
    seen = {}

    async def inspect_ctx(state, ctx):
        seen.update(thread=ctx.thread_id, node=ctx.node_id, step=ctx.step, llm=ctx.llm)
        return None

    graph = StateGraph(schema).add_node("n", inspect_ctx).set_entry_point("n")
    llm = object()
    await GraphExecutor(graph.compile(), memory_store, llm=llm).start_or_resume("t9")

    assert seen == {"thread": "t9", "node": "n", "step": 0, "llm": llm}


@pytest.mark.asyncio
async def test_in_place_edit_before_suspend_does_not_reach_checkpoint(schema, memory_store):
    seen = []

    async def b(state, ctx):
        seen.append(list(state.log))
        state.log.append("leak")
        answer = await ctx.suspend("need-id")
        return {"answer": answer}

    graph = StateGraph(schema).add_node("b", b).set_entry_point("b")
    executor = GraphExecutor(graph.compile(), memory_store)

    outcome = await executor.start_or_resume("t1")

    assert outcome.is_suspended
    assert outcome.state.log == []
    assert (await memory_store.latest("t1")).state["log"] == []

    resumed = await executor.resume("t1", "id-1")

    assert seen == [[], []]
    assert resumed.state.log == []
    assert resumed.state.answer == "id-1"
