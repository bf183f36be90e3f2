"""
ResearchCoordinator: agent fan-out, dossier assembly, and synthesis into one
validated ResearchRecord.

Agents run concurrently and are joined with settle semantics: an agent that
fails internally contributes its own "[<Name> Error]" marker, and an agent
that raises contributes "[System Error] Agent <Name> crashed." Neither stops
the investigation. Synthesis is the one step with no fallback; any failure
there raises SynthesisFailedError and no partial record is returned.
"""

import asyncio
import dataclasses
import logging
from typing import List, Optional, Sequence

from nanobook.config import NORMALIZE_MAX_CHARS, RESEARCH_MODEL
from nanobook.errors import (
    ConfigurationError,
    PipelineCancelledError,
    SchemaValidationError,
    SynthesisFailedError,
    UnparseableOutputError,
)
from nanobook.json_extract import extract_json, safe_json_parse
from nanobook.models import AgentState, AgentStatus, ResearchRecord
from nanobook.progress import CancellationToken, ProgressObserver, check_cancelled, notify
from nanobook.providers.base import GenerationOptions
from nanobook.providers.registry import ProviderRegistry
from nanobook.research.agents import ResearchAgent, build_default_agents
from nanobook.schema import validate

logger = logging.getLogger(__name__)

SYNTHESIS_TEMPERATURE = 0.2

RESEARCH_SYSTEM_PROMPT = """You are the Y-It Deep Forensic Engine. You are NOT a creative writer. You are an investigator.

**OBJECTIVE:**
Perform a ruthlessly thorough investigation into the User's "Side Hustle" topic.

**PROTOCOL:**
1. **Real Stats:** Find the *actual* failure rates (look for "success rate", "quit rate", "median earnings"). Ignore guru claims.
2. **Reddit/Forums:** Look for "scam", "regret", "lost money", and "failed" combined with the topic on Reddit, Quora, and Trustpilot.
3. **Affiliates:** Identify the specific software/tools that pay the highest commissions to influencers promoting this hustle.
4. **Dates:** Prioritize data from 2024 and 2025."""

NORMALIZER_SYSTEM_PROMPT = (
    "You are a Data Normalizer. You convert messy text into strict JSON for the Y-It Engine."
)

RESEARCH_JSON_SHAPE = """Return ONLY a JSON object with exactly these fields:
{
  "summary": "string",
  "ethicalRating": 1-10 integer,
  "profitPotential": "string",
  "marketStats": [{"label": "string", "value": "string", "context": "string"}],
  "hiddenCosts": [{"label": "string", "value": "string", "context": "string"}],
  "caseStudies": [{"name": "string", "type": "WINNER" | "LOSER", "background": "string",
                   "strategy": "string", "outcome": "string", "revenue": "string"}],
  "affiliates": [{"program": "string", "potential": "string", "type": "PARTICIPANT" | "WRITER",
                  "commission": "string", "notes": "string"}]
}"""

DOSSIER_LABELS = ("DETECTIVE", "AUDITOR", "INSIDER", "STATISTICIAN")


def build_dossier(reports: Sequence[str]) -> str:
    """Label reports by role in fixed order."""
    return "\n".join(
        f"{label} REPORT: {report}" for label, report in zip(DOSSIER_LABELS, reports)
    )


def parse_research_record(text: str, stage: str = "synthesis") -> ResearchRecord:
    """Extract, repair if needed, and validate a research record; SynthesisFailedError otherwise."""
    try:
        data = extract_json(text)
    except UnparseableOutputError:
        # truncated output: close open brackets and retry
        data = safe_json_parse(text)
        if data is None:
            raise SynthesisFailedError(
                f"Research {stage} returned unparseable output: {(text or '')[:200]!r}"
            )
        logger.warning("Research %s output needed bracket repair", stage)

    try:
        return validate("research", data)
    except SchemaValidationError as e:
        raise SynthesisFailedError(
            f"Failed to validate research data structure: {'; '.join(e.violations[:5])}"
        ) from e


class ResearchCoordinator:
    def __init__(self, registry: ProviderRegistry, model_id: str = RESEARCH_MODEL,
                 agents: Optional[List[ResearchAgent]] = None):
        self.registry = registry
        self.model_id = model_id
        self.agents = agents if agents is not None else build_default_agents(registry, model_id)

    @staticmethod
    def _emit(states: List[AgentState], on_progress: Optional[ProgressObserver]) -> None:
        notify(on_progress, [dataclasses.replace(s) for s in states])

    async def _run_agent(self, index: int, topic: str, states: List[AgentState],
                         on_progress: Optional[ProgressObserver]) -> str:
        agent = self.agents[index]
        states[index].status = AgentStatus.RUNNING
        self._emit(states, on_progress)
        try:
            report = await agent.run(topic)
        except Exception as e:
            logger.error("%s agent crashed: %s", agent.name, e)
            states[index].status = AgentStatus.FAILED
            states[index].message = f"{type(e).__name__}: {e}"
            self._emit(states, on_progress)
            raise

        if report.startswith(f"[{agent.name} Error]"):
            states[index].status = AgentStatus.FAILED
            states[index].message = report
        else:
            states[index].status = AgentStatus.COMPLETED
        self._emit(states, on_progress)
        return report

    async def _synthesize(self, prompt: str, system_prompt: str, stage: str) -> ResearchRecord:
        # configuration errors propagate as-is so callers can tell them apart
        provider = await self.registry.provider_for_model(self.model_id)
        try:
            text = await provider.generate_text(
                self.model_id,
                prompt,
                GenerationOptions(
                    system_prompt=system_prompt, json_mode=True, temperature=SYNTHESIS_TEMPERATURE,
                ),
            )
        except (ConfigurationError, PipelineCancelledError):
            raise
        except Exception as e:
            raise SynthesisFailedError(f"Research {stage} call failed: {e}") from e
        return parse_research_record(text, stage)

    async def execute(self, topic: str, on_progress: Optional[ProgressObserver] = None,
                      cancel_token: Optional[CancellationToken] = None) -> ResearchRecord:
        check_cancelled(cancel_token)
        states = [AgentState(name=a.name) for a in self.agents]
        self._emit(states, on_progress)

        results = await asyncio.gather(
            *[self._run_agent(i, topic, states, on_progress) for i in range(len(self.agents))],
            return_exceptions=True,
        )
        check_cancelled(cancel_token)

        reports = []
        for agent, result in zip(self.agents, results):
            if isinstance(result, BaseException):
                reports.append(f"[System Error] Agent {agent.name} crashed.")
            else:
                reports.append(result)

        failed = sum(1 for s in states if s.status == AgentStatus.FAILED)
        logger.info("Research agents finished: %d/%d succeeded", len(states) - failed, len(states))

        dossier = build_dossier(reports)
        prompt = (
            f'Analyze the following FORENSIC DOSSIER on "{topic}".\n'
            "Synthesize the conflicting reports into a single, cohesive research record.\n"
            "If reports are missing or contain errors, estimate conservatively based on the topic context.\n\n"
            f"FORENSIC DOSSIER:\n{dossier}\n\n"
            f"{RESEARCH_JSON_SHAPE}"
        )
        record = await self._synthesize(prompt, RESEARCH_SYSTEM_PROMPT, "synthesis")
        logger.info("Research synthesis complete: ethicalRating=%d, %d stats, %d case studies",
                    record.ethical_rating, len(record.market_stats), len(record.case_studies))
        return record

    async def normalize_log(self, raw_text: str,
                            cancel_token: Optional[CancellationToken] = None) -> ResearchRecord:
        """Structure arbitrary research notes into a ResearchRecord without running the agents."""
        check_cancelled(cancel_token)
        notes = (raw_text or "")[:NORMALIZE_MAX_CHARS]
        if len(raw_text or "") > NORMALIZE_MAX_CHARS:
            logger.info("Raw research truncated from %d to %d chars", len(raw_text), NORMALIZE_MAX_CHARS)
        prompt = (
            "Task: Convert the following RAW RESEARCH NOTES into a structured Y-It Forensic Report JSON.\n\n"
            f"INPUT TEXT:\n{notes}\n\n"
            "INSTRUCTIONS:\n"
            "1. Extract specific facts, numbers, and warnings.\n"
            '2. If data is missing (e.g. no "Ethical Rating"), estimate it based on the sentiment of the text.\n'
            "3. Map unstructured text to the required JSON fields.\n\n"
            f"{RESEARCH_JSON_SHAPE}"
        )
        return await self._synthesize(prompt, NORMALIZER_SYSTEM_PROMPT, "normalization")
