"""Workflow state machine tests."""

import asyncio

import pytest

from promptpilot.config import WorkflowConfig
from promptpilot.constants import COMPLETION_QUERY, MODEL_SWITCH_NOTICE
from promptpilot.continuation import AlwaysContinue
from promptpilot.contracts import OperatorCommand, TransportResult, WorkflowPhase
from promptpilot.engine import WorkflowEngine
from promptpilot.errors import AgentModelError, AlreadyRunning, TransportCommunicationError
from promptpilot.prompts import InMemoryPromptStore
from promptpilot.transports.inmemory import InMemoryChatTransport

PROMPTS = {
    "init": "INIT",
    "checklist": "CHECKLIST",
    "check_agent": "CHECK AGENT",
    "write_tests": "WRITE TESTS",
    "test_progress": "TEST PROGRESS",
    "check_checklist": "CHECK CHECKLIST",
    "continue_iteration": "CONTINUE",
}


def make_transport(responder=None, **kwargs) -> InMemoryChatTransport:
    return InMemoryChatTransport(responder=responder, **kwargs)


def make_engine(transport, publisher=None, **kwargs) -> WorkflowEngine:
    kwargs.setdefault("pause_interval", 0.02)
    kwargs.setdefault("restart_grace", 0)
    return WorkflowEngine(
        transport,
        prompts=InMemoryPromptStore(PROMPTS),
        publisher=publisher,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_single_pass_completes(transport, publisher, fast_config):
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert not engine.is_running()
    assert engine.iteration_count() == 0
    assert transport.messages == [
        "I'll be working in Agent mode for this task.",
        "I'll be using the most capable model available in this priority order: "
        "Claude 3.7 Sonnet > Gemini 2.5 > GPT 4.1.",
        fast_config.task_description,
        "@agent INIT",
        "CHECKLIST",
        "@agent CHECK AGENT",
        "@agent CHECK CHECKLIST",
    ]
    assert transport.selected == ["Claude 3.7 Sonnet"]
    assert engine.run.active_model_index == 0
    assert publisher.phases[0] is WorkflowPhase.INITIALIZING
    assert WorkflowPhase.VERIFYING_CHECKLIST in publisher.phases
    assert publisher.phases[-1] is WorkflowPhase.COMPLETED


@pytest.mark.asyncio
async def test_max_iterations_one_ignores_heuristic(transport):
    engine = make_engine(transport, continuation=AlwaysContinue())
    config = WorkflowConfig(settleScale=0, maxIterations=1)

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert transport.messages.count("@agent CHECK CHECKLIST") == 1
    assert COMPLETION_QUERY not in transport.messages


@pytest.mark.asyncio
async def test_loops_until_iteration_ceiling(transport, publisher):
    engine = make_engine(transport, publisher, continuation=AlwaysContinue())
    config = WorkflowConfig(settleScale=0, maxIterations=3)

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert engine.iteration_count() == 2
    assert transport.messages.count("@agent CHECK CHECKLIST") == 3
    assert transport.messages.count("@agent CONTINUE") == 2
    assert transport.messages.count(COMPLETION_QUERY) == 2
    assert (WorkflowPhase.CONTINUING_ITERATION, "Starting iteration 1") in publisher.history
    assert (
        WorkflowPhase.SENDING_TASK,
        "Sending development checklist (iteration #2)",
    ) in publisher.history


@pytest.mark.asyncio
async def test_keyword_policy_follows_agent_reply():
    replies = iter(["Not yet, two items are still open.", "Yes, everything is done."])

    def responder(text):
        if text == COMPLETION_QUERY:
            return TransportResult.accepted(reply=next(replies))
        return None

    transport = make_transport(responder)
    engine = make_engine(transport)
    config = WorkflowConfig(settleScale=0, maxIterations=5, continuationPolicy="keyword")

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert engine.iteration_count() == 1
    assert transport.messages.count(COMPLETION_QUERY) == 2


@pytest.mark.asyncio
async def test_pause_blocks_next_step_until_resume(gated_transport, publisher, fast_config):
    engine = make_engine(gated_transport, publisher)
    gated_transport.gate.clear()

    task = engine.launch(fast_config)
    await asyncio.wait_for(gated_transport.in_flight.wait(), timeout=1)

    engine.pause()
    assert engine.is_paused()
    assert engine.current_phase() is WorkflowPhase.PAUSED

    # The in-flight send finishes, the following step waits at the checkpoint
    gated_transport.gate.set()
    await asyncio.sleep(0.1)
    assert len(gated_transport.sent) == 1
    assert engine.current_phase() is WorkflowPhase.PAUSED

    engine.resume()
    assert not engine.is_paused()
    assert (WorkflowPhase.INITIALIZING, "Workflow resumed") in publisher.history

    await asyncio.wait_for(task, timeout=2)
    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert len(gated_transport.sent) == 7


@pytest.mark.asyncio
async def test_stop_while_paused_unwinds_to_idle(gated_transport, publisher, fast_config):
    engine = make_engine(gated_transport, publisher, pause_interval=0.05)
    gated_transport.gate.clear()

    task = engine.launch(fast_config)
    await asyncio.wait_for(gated_transport.in_flight.wait(), timeout=1)
    engine.pause()
    gated_transport.gate.set()
    await asyncio.sleep(0.1)

    engine.stop()
    await asyncio.wait_for(task, timeout=0.1)

    assert engine.current_phase() is WorkflowPhase.IDLE
    assert not engine.is_running()
    assert not engine.is_paused()
    assert engine.iteration_count() == 0
    assert len(gated_transport.sent) == 1
    assert WorkflowPhase.ERROR not in publisher.phases
    assert publisher.phases.count(WorkflowPhase.IDLE) == 1


@pytest.mark.asyncio
async def test_commands_are_noops_in_wrong_state(transport, publisher):
    engine = make_engine(transport, publisher)

    engine.stop()
    engine.pause()
    engine.resume()
    engine.stop()

    assert engine.current_phase() is WorkflowPhase.IDLE
    assert not engine.is_running()
    assert publisher.history == []


@pytest.mark.asyncio
async def test_resume_is_noop_when_not_paused(gated_transport, publisher, fast_config):
    engine = make_engine(gated_transport, publisher)
    gated_transport.gate.clear()
    task = engine.launch(fast_config)
    await asyncio.wait_for(gated_transport.in_flight.wait(), timeout=1)

    before = list(publisher.history)
    engine.resume()
    assert publisher.history == before

    engine.pause()
    engine.pause()
    assert publisher.phases.count(WorkflowPhase.PAUSED) == 1

    engine.stop()
    gated_transport.gate.set()
    await asyncio.wait_for(task, timeout=1)
    assert engine.current_phase() is WorkflowPhase.IDLE


@pytest.mark.asyncio
async def test_start_while_running_raises(gated_transport, fast_config):
    engine = make_engine(gated_transport)
    gated_transport.gate.clear()
    task = engine.launch(fast_config)

    with pytest.raises(AlreadyRunning):
        await engine.start(fast_config)

    engine.stop()
    gated_transport.gate.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_restart_resets_iteration(transport):
    engine = make_engine(transport, continuation=AlwaysContinue())
    config = WorkflowConfig(settleScale=0, maxIterations=3)
    await engine.start(config)
    assert engine.iteration_count() == 2

    task = await engine.restart(config)
    assert engine.iteration_count() == 0
    assert engine.is_running()

    await asyncio.wait_for(task, timeout=2)
    assert engine.current_phase() is WorkflowPhase.COMPLETED


@pytest.mark.asyncio
async def test_stale_run_does_not_touch_replacement(gated_transport, publisher, fast_config):
    engine = make_engine(gated_transport, publisher)
    gated_transport.gate.clear()

    old_task = engine.launch(fast_config)
    await asyncio.wait_for(gated_transport.in_flight.wait(), timeout=1)
    old_run = engine.run

    new_task = await engine.restart(fast_config)
    assert engine.run is not old_run
    restart_index = len(publisher.history)

    gated_transport.gate.set()
    await asyncio.wait_for(asyncio.gather(old_task, new_task), timeout=2)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert WorkflowPhase.IDLE not in publisher.phases[restart_index:]
    assert not old_run.running


@pytest.mark.asyncio
async def test_continue_ends_pass_early(publisher):
    engine = None
    advanced = []

    def responder(text):
        if text == "CHECKLIST" and not advanced:
            advanced.append(text)
            engine.continue_()
        return None

    transport = make_transport(responder)
    engine = make_engine(transport, publisher)
    config = WorkflowConfig(settleScale=0, maxIterations=2, continuationPolicy="never")

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert engine.iteration_count() == 1
    # The first pass stopped right after the checklist
    assert transport.messages.count("@agent CHECK AGENT") == 1
    assert transport.messages.count("@agent CONTINUE") == 1
    assert COMPLETION_QUERY not in transport.messages


@pytest.mark.asyncio
async def test_handle_command_play_pause_play(gated_transport, fast_config):
    engine = make_engine(gated_transport)
    gated_transport.gate.clear()

    task = await engine.handle_command("play", fast_config)
    await asyncio.wait_for(gated_transport.in_flight.wait(), timeout=1)
    await engine.handle_command(OperatorCommand.PAUSE)
    assert engine.is_paused()

    assert await engine.handle_command("play") is None
    assert not engine.is_paused()

    await engine.handle_command("stop")
    gated_transport.gate.set()
    await asyncio.wait_for(task, timeout=1)
    assert engine.current_phase() is WorkflowPhase.IDLE

    with pytest.raises(ValueError):
        await engine.handle_command("rewind")


@pytest.mark.asyncio
async def test_background_mode_never_requests_focus(transport):
    engine = make_engine(transport)
    config = WorkflowConfig(settleScale=0, maxIterations=1, backgroundMode=True)

    await engine.start(config)

    assert transport.opened == [False]
    assert transport.sent
    assert all(background for _, background in transport.sent)


@pytest.mark.asyncio
async def test_foreground_mode_focuses_chat_first(transport, fast_config):
    engine = make_engine(transport)

    await engine.start(fast_config)

    assert transport.opened[0] is True
    assert not any(background for _, background in transport.sent)


@pytest.mark.asyncio
async def test_rejected_send_ends_in_error(publisher, fast_config):
    def responder(text):
        if text.startswith("I'll be working"):
            return TransportResult.rejected("chat input disabled")
        return None

    transport = make_transport(responder)
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.ERROR
    assert not engine.is_running()
    messages = [m for p, m in publisher.history if p is WorkflowPhase.ERROR]
    assert len(messages) == 1
    assert messages[0].startswith("Setup failed")
    assert "chat input disabled" in messages[0]


@pytest.mark.asyncio
async def test_missing_prompt_ends_in_error(transport, publisher, fast_config):
    engine = WorkflowEngine(
        transport, prompts=InMemoryPromptStore({}), publisher=publisher
    )

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.ERROR
    assert "init" in publisher.message
    errors = [m for p, m in publisher.history if p is WorkflowPhase.ERROR]
    assert len(errors) == 1
    assert errors[0].startswith("Development workflow error")


@pytest.mark.asyncio
async def test_config_source_is_read_at_each_phase(transport):
    calls = []

    def source():
        calls.append(1)
        return WorkflowConfig(settleScale=0, maxIterations=2, continuationPolicy="always")

    engine = make_engine(transport, config_source=source)
    await engine.start()

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    # start, initialization and two development passes
    assert len(calls) == 4



class FakeGit:
    def __init__(self, name="feature/pilot-1"):
        self.name = name
        self.calls = 0

    async def create_and_checkout_branch(self):
        self.calls += 1
        return self.name


@pytest.mark.asyncio
async def test_branch_created_when_enabled(transport, publisher):
    git = FakeGit()
    engine = make_engine(transport, publisher, git=git)
    config = WorkflowConfig(settleScale=0, maxIterations=1, initCreateBranch=True)

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert git.calls == 1
    assert WorkflowPhase.CREATING_BRANCH in publisher.phases
    assert (
        "Created new branch 'feature/pilot-1' for this feature. "
        "Please click Continue when ready."
    ) in transport.messages


@pytest.mark.asyncio
async def test_branch_step_skipped_when_disabled(transport, publisher, fast_config):
    git = FakeGit()
    engine = make_engine(transport, publisher, git=git)

    await engine.start(fast_config)

    assert git.calls == 0
    assert WorkflowPhase.CREATING_BRANCH not in publisher.phases


@pytest.mark.asyncio
async def test_branch_without_git_fails_setup(transport, publisher):
    engine = make_engine(transport, publisher)
    config = WorkflowConfig(settleScale=0, maxIterations=1, initCreateBranch=True)

    await engine.start(config)

    assert engine.current_phase() is WorkflowPhase.ERROR
    errors = [m for p, m in publisher.history if p is WorkflowPhase.ERROR]
    assert errors[0].startswith("Setup failed")


@pytest.mark.asyncio
async def test_test_writing_steps_follow_flag(transport):
    engine = make_engine(transport)
    config = WorkflowConfig(settleScale=0, maxIterations=1, needToWriteTest=True)

    await engine.start(config)

    assert transport.messages[-4:] == [
        "@agent CHECK AGENT",
        "@agent WRITE TESTS",
        "@agent TEST PROGRESS",
        "@agent CHECK CHECKLIST",
    ]


@pytest.mark.asyncio
async def test_model_failure_switches_to_next_model(publisher, fast_config):
    failed = []

    def responder(text):
        if text == "CHECKLIST" and not failed:
            failed.append(text)
            raise AgentModelError("model overloaded")
        return None

    transport = make_transport(responder)
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert engine.run.active_model_index == 1
    assert transport.selected == ["Claude 3.7 Sonnet", "Gemini 2.5"]
    notice = MODEL_SWITCH_NOTICE.format(model="Gemini 2.5")
    index = transport.messages.index(notice)
    assert transport.messages[index + 1] == "CHECKLIST"


@pytest.mark.asyncio
async def test_all_models_failing_ends_in_error(publisher, fast_config):
    def responder(text):
        if text == "CHECKLIST":
            raise AgentModelError("model overloaded")
        return None

    transport = make_transport(
        responder, unavailable_models=["Gemini 2.5", "GPT 4.1"]
    )
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.ERROR
    assert transport.selected == ["Claude 3.7 Sonnet", "Gemini 2.5", "GPT 4.1"]
    assert "All preferred models failed" in publisher.message


@pytest.mark.asyncio
async def test_no_accepted_model_keeps_default(publisher, fast_config):
    transport = make_transport(
        unavailable_models=["Claude 3.7 Sonnet", "Gemini 2.5", "GPT 4.1"]
    )
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    assert engine.run.active_model_index is None


class BridgeDownDuringFallback(InMemoryChatTransport):
    async def select_model(self, name: str) -> TransportResult:
        if self.selected:
            raise TransportCommunicationError("bridge down")
        return await super().select_model(name)


@pytest.mark.asyncio
async def test_transport_outage_during_fallback_keeps_its_message(publisher, fast_config):
    def responder(text):
        if text == "CHECKLIST":
            raise AgentModelError("model overloaded")
        return None

    transport = BridgeDownDuringFallback(responder=responder)
    engine = make_engine(transport, publisher)

    await engine.start(fast_config)

    assert engine.current_phase() is WorkflowPhase.ERROR
    assert "bridge down" in publisher.message
    assert "All preferred models failed" not in publisher.message
    assert publisher.phases.count(WorkflowPhase.ERROR) == 1


@pytest.mark.asyncio
async def test_config_change_mid_run_reaches_listeners(transport):
    configs = [WorkflowConfig(settleScale=0, maxIterations=2, continuationPolicy="always")]
    seen = []

    def source():
        return configs[-1]

    def responder(text):
        if text == "CHECKLIST" and len(configs) == 1:
            configs.append(
                WorkflowConfig(
                    settleScale=0,
                    maxIterations=2,
                    continuationPolicy="always",
                    idleTimeoutSeconds=90,
                )
            )
        return None

    transport.responder = responder
    engine = make_engine(transport, config_source=source)
    engine.add_config_listener(seen.append)

    await engine.start()

    assert engine.current_phase() is WorkflowPhase.COMPLETED
    # once at start, once when the second pass picked up the new snapshot
    assert [c.idle_timeout_seconds for c in seen] == [30, 90]
    assert engine.run.config.idle_timeout_seconds == 90
