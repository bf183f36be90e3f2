"""Tests for the research agents and ResearchCoordinator (fan-out, dossier, synthesis)."""

import asyncio
import itertools
import json

import pytest

from conftest import (
    AUDITOR,
    DETECTIVE,
    INSIDER,
    NORMALIZE,
    STATISTICIAN,
    SYNTHESIS,
    FakeProvider,
    scripted,
)
from nanobook.config import Credentials
from nanobook.errors import (
    GenerationFailedError,
    PipelineCancelledError,
    ProviderNotConfiguredError,
    SynthesisFailedError,
)
from nanobook.models import AgentStatus, ResearchRecord
from nanobook.progress import CancellationToken
from nanobook.providers.registry import ProviderRegistry
from nanobook.research.agents import (
    AGENT_CLASSES,
    AuditorAgent,
    DetectiveAgent,
    build_default_agents,
)
from nanobook.research.coordinator import ResearchCoordinator, build_dossier, parse_research_record

AGENT_MARKERS = {
    "Detective": DETECTIVE,
    "Auditor": AUDITOR,
    "Insider": INSIDER,
    "Statistician": STATISTICIAN,
}


def _agent_routes(failing=()):
    """Normal agent reports, with the named agents raising a transport error instead."""
    routes = {}
    for name, marker in AGENT_MARKERS.items():
        if name in failing:
            routes[marker] = GenerationFailedError(f"{name} transport down", provider_id="google")
        else:
            routes[marker] = f"{name} findings: people lost money."
    return routes


def _coordinator(fake_registry, routes):
    provider = FakeProvider(scripted(routes))
    return ResearchCoordinator(fake_registry(provider)), provider


def _synthesis_prompt(provider):
    prompts = provider.prompts_containing(SYNTHESIS)
    assert len(prompts) == 1
    return prompts[0]


class TestResearchAgents:

    def test_prompts_carry_topic_and_persona(self, fake_registry):
        provider = FakeProvider(lambda prompt, options: "report")
        registry = fake_registry(provider)
        agents = build_default_agents(registry, "gemini-2.5-flash")
        assert [type(a) for a in agents] == list(AGENT_CLASSES)

        for agent in agents:
            asyncio.run(agent.run("Dropshipping"))
        for (_, prompt, options), agent in zip(provider.calls, agents):
            assert '"Dropshipping"' in prompt
            assert options.system_prompt == agent.system_prompt
            assert not options.json_mode

    def test_failure_marker(self, fake_registry):
        provider = FakeProvider(lambda p, o: GenerationFailedError("down"))
        agent = AuditorAgent(fake_registry(provider), "gemini-2.5-flash")
        report = asyncio.run(agent.run("Dropshipping"))
        assert report == "[Auditor Error] Audit failed. Proceeding with estimated figures."

    def test_empty_report(self, fake_registry):
        provider = FakeProvider(lambda p, o: "   ")
        agent = DetectiveAgent(fake_registry(provider), "gemini-2.5-flash")
        assert asyncio.run(agent.run("Dropshipping")) == "[Detective found no evidence]"

    def test_reasoning_block_stripped(self, fake_registry):
        provider = FakeProvider(lambda p, o: "<think>plan the report</think>\nPeople lost $5k.")
        agent = DetectiveAgent(fake_registry(provider), "gemini-2.5-flash")
        assert asyncio.run(agent.run("Dropshipping")) == "People lost $5k."

    def test_unconfigured_provider_becomes_marker(self):
        agent = DetectiveAgent(ProviderRegistry(Credentials()), "gemini-2.5-flash")
        assert asyncio.run(agent.run("x")).startswith("[Detective Error]")


class TestExecute:

    def test_happy_path(self, fake_registry, research_dict):
        """All four agents report; synthesis JSON comes back as the record."""
        routes = {SYNTHESIS: json.dumps(research_dict), **_agent_routes()}
        coordinator, provider = _coordinator(fake_registry, routes)

        record = asyncio.run(coordinator.execute("Dropshipping"))

        assert isinstance(record, ResearchRecord)
        assert record.ethical_rating == 4
        assert len(record.market_stats) == 1
        assert len(record.case_studies) == 1
        assert record.to_json_dict() == research_dict
        assert len(provider.calls) == 5

        synthesis_options = provider.calls[-1][2]
        assert synthesis_options.json_mode
        assert synthesis_options.temperature == 0.2

    def test_auditor_transport_error(self, fake_registry, research_dict):
        """A failing agent's placeholder reaches the dossier and its state ends FAILED."""
        routes = {SYNTHESIS: json.dumps(research_dict), **_agent_routes(failing=("Auditor",))}
        coordinator, provider = _coordinator(fake_registry, routes)
        snapshots = []

        record = asyncio.run(coordinator.execute("Dropshipping", on_progress=snapshots.append))

        assert record.ethical_rating == 4
        prompt = _synthesis_prompt(provider)
        assert "AUDITOR REPORT: [Auditor Error] Audit failed. Proceeding with estimated figures." in prompt

        final = {s.name: s.status for s in snapshots[-1]}
        assert final == {
            "Detective": AgentStatus.COMPLETED,
            "Auditor": AgentStatus.FAILED,
            "Insider": AgentStatus.COMPLETED,
            "Statistician": AgentStatus.COMPLETED,
        }

    @pytest.mark.parametrize("failing", [
        subset
        for size in range(len(AGENT_MARKERS) + 1)
        for subset in itertools.combinations(AGENT_MARKERS, size)
    ])
    def test_any_subset_of_agents_may_fail(self, fake_registry, research_dict, failing):
        routes = {SYNTHESIS: json.dumps(research_dict), **_agent_routes(failing=failing)}
        coordinator, provider = _coordinator(fake_registry, routes)

        record = asyncio.run(coordinator.execute("Dropshipping"))

        assert isinstance(record, ResearchRecord)
        prompt = _synthesis_prompt(provider)
        for name in AGENT_MARKERS:
            if name in failing:
                assert f"[{name} Error]" in prompt
            else:
                assert f"{name} findings" in prompt

    def test_crashed_agent_gets_system_placeholder(self, fake_registry, research_dict):
        class CrashingDetective(DetectiveAgent):
            async def run(self, topic):
                raise RuntimeError("segfault in persona")

        provider = FakeProvider(scripted({SYNTHESIS: json.dumps(research_dict), **_agent_routes()}))
        registry = fake_registry(provider)
        agents = build_default_agents(registry, "gemini-2.5-flash")
        agents[0] = CrashingDetective(registry, "gemini-2.5-flash")
        coordinator = ResearchCoordinator(registry, agents=agents)
        snapshots = []

        asyncio.run(coordinator.execute("Dropshipping", on_progress=snapshots.append))

        assert "DETECTIVE REPORT: [System Error] Agent Detective crashed." in _synthesis_prompt(provider)
        detective = snapshots[-1][0]
        assert detective.status == AgentStatus.FAILED
        assert "segfault in persona" in detective.message

    def test_dossier_order_ignores_completion_order(self, fake_registry, research_dict):
        delays = {"Detective": 0.04, "Auditor": 0.0, "Insider": 0.02, "Statistician": 0.01}
        routes = {SYNTHESIS: json.dumps(research_dict)}
        for name, marker in AGENT_MARKERS.items():
            routes[marker] = (lambda n: lambda prompt: asyncio.sleep(delays[n], result=f"{n} report"))(name)
        coordinator, provider = _coordinator(fake_registry, routes)

        asyncio.run(coordinator.execute("Dropshipping"))

        prompt = _synthesis_prompt(provider)
        positions = [prompt.index(f"{label} REPORT: {name} report")
                     for label, name in zip(("DETECTIVE", "AUDITOR", "INSIDER", "STATISTICIAN"), AGENT_MARKERS)]
        assert positions == sorted(positions)

    def test_snapshots_are_copies(self, fake_registry, research_dict):
        routes = {SYNTHESIS: json.dumps(research_dict), **_agent_routes()}
        coordinator, _ = _coordinator(fake_registry, routes)
        snapshots = []

        asyncio.run(coordinator.execute("Dropshipping", on_progress=snapshots.append))

        assert all(s.status == AgentStatus.PENDING for s in snapshots[0])
        assert all(s.status == AgentStatus.COMPLETED for s in snapshots[-1])
        # initial emission plus RUNNING and finished for each agent
        assert len(snapshots) == 1 + 2 * len(AGENT_MARKERS)

    def test_throwing_observer_is_ignored(self, fake_registry, research_dict):
        routes = {SYNTHESIS: json.dumps(research_dict), **_agent_routes()}
        coordinator, _ = _coordinator(fake_registry, routes)

        def observer(payload):
            raise RuntimeError("UI went away")

        record = asyncio.run(coordinator.execute("Dropshipping", on_progress=observer))
        assert record.ethical_rating == 4

    def test_truncated_synthesis_is_repaired(self, fake_registry, research_dict):
        truncated = json.dumps(research_dict)[:-3]
        coordinator, _ = _coordinator(fake_registry, {SYNTHESIS: truncated, **_agent_routes()})

        record = asyncio.run(coordinator.execute("Dropshipping"))
        assert record.affiliates[0].notes == "Paid to gurus"

    def test_fenced_synthesis(self, fake_registry, research_dict):
        fenced = f"Here is the record:\n```json\n{json.dumps(research_dict)}\n```"
        coordinator, _ = _coordinator(fake_registry, {SYNTHESIS: fenced, **_agent_routes()})
        assert asyncio.run(coordinator.execute("Dropshipping")).summary == research_dict["summary"]

    def test_cancelled_before_start(self, fake_registry):
        coordinator, provider = _coordinator(fake_registry, _agent_routes())
        token = CancellationToken()
        token.cancel()
        with pytest.raises(PipelineCancelledError):
            asyncio.run(coordinator.execute("Dropshipping", cancel_token=token))
        assert provider.calls == []


class TestSynthesisFailure:

    def test_unparseable_synthesis_is_fatal(self, fake_registry):
        routes = {SYNTHESIS: "I'm sorry, I cannot produce that report.", **_agent_routes()}
        coordinator, _ = _coordinator(fake_registry, routes)
        with pytest.raises(SynthesisFailedError):
            asyncio.run(coordinator.execute("Dropshipping"))

    def test_invalid_record_is_fatal(self, fake_registry, research_dict):
        del research_dict["summary"]
        coordinator, _ = _coordinator(fake_registry, {SYNTHESIS: json.dumps(research_dict), **_agent_routes()})
        with pytest.raises(SynthesisFailedError, match="summary"):
            asyncio.run(coordinator.execute("Dropshipping"))

    def test_synthesis_call_failure_is_fatal(self, fake_registry):
        routes = {SYNTHESIS: GenerationFailedError("quota exceeded"), **_agent_routes()}
        coordinator, _ = _coordinator(fake_registry, routes)
        with pytest.raises(SynthesisFailedError) as exc:
            asyncio.run(coordinator.execute("Dropshipping"))
        assert isinstance(exc.value.__cause__, GenerationFailedError)

    def test_unexpected_provider_error_is_fatal(self, fake_registry):
        routes = {SYNTHESIS: RuntimeError("provider bug"), **_agent_routes()}
        coordinator, _ = _coordinator(fake_registry, routes)
        with pytest.raises(SynthesisFailedError, match="provider bug") as exc:
            asyncio.run(coordinator.execute("Dropshipping"))
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_infinite_rating_is_fatal(self, fake_registry, research_dict):
        research_dict["ethicalRating"] = "RATING"
        text = json.dumps(research_dict).replace('"RATING"', "1e999")
        coordinator, _ = _coordinator(fake_registry, {SYNTHESIS: text, **_agent_routes()})
        with pytest.raises(SynthesisFailedError, match="ethicalRating"):
            asyncio.run(coordinator.execute("Dropshipping"))

    def test_unconfigured_provider_is_configuration_error(self):
        coordinator = ResearchCoordinator(ProviderRegistry(Credentials()))
        with pytest.raises(ProviderNotConfiguredError):
            asyncio.run(coordinator.execute("Dropshipping"))

    def test_parse_research_record_helper(self, research_dict):
        record = parse_research_record("```\n" + json.dumps(research_dict) + "\n```")
        assert record.profit_potential == "Low"
        with pytest.raises(SynthesisFailedError):
            parse_research_record("")


class TestNormalizeLog:

    def test_raw_notes_become_record(self, fake_registry):
        interpreted = json.dumps({
            "summary": "Notes say print-on-demand margins are thin.",
            "ethicalRating": "6",
            "profitPotential": "Medium",
        })
        provider = FakeProvider(scripted({NORMALIZE: interpreted}))
        coordinator = ResearchCoordinator(fake_registry(provider))

        record = asyncio.run(coordinator.normalize_log("random notes: margins thin, etsy fees 6.5%"))

        assert record.summary == "Notes say print-on-demand margins are thin."
        assert record.ethical_rating == 6
        assert record.market_stats == []
        assert record.hidden_costs == []
        assert record.case_studies == []
        assert record.affiliates == []
        # no agents, one call
        assert len(provider.calls) == 1
        assert "etsy fees 6.5%" in provider.calls[0][1]

    def test_input_truncated(self, fake_registry, research_dict):
        provider = FakeProvider(scripted({NORMALIZE: json.dumps(research_dict)}))
        coordinator = ResearchCoordinator(fake_registry(provider))

        asyncio.run(coordinator.normalize_log("x" * 25000))

        prompt = provider.calls[0][1]
        assert "x" * 20000 in prompt
        assert "x" * 20001 not in prompt

    def test_unparseable_normalization_is_fatal(self, fake_registry):
        provider = FakeProvider(scripted({NORMALIZE: "no idea"}))
        coordinator = ResearchCoordinator(fake_registry(provider))
        with pytest.raises(SynthesisFailedError):
            asyncio.run(coordinator.normalize_log("notes"))


class TestBuildDossier:

    def test_labels_in_order(self):
        dossier = build_dossier(["d", "a", "i", "s"])
        assert dossier == "DETECTIVE REPORT: d\nAUDITOR REPORT: a\nINSIDER REPORT: i\nSTATISTICIAN REPORT: s"
