"""
The four research agents.

Each agent makes one free-text generation call with a fixed persona and
returns a report. ``run`` never raises for a failed call: it returns a
bracketed "[<Name> Error] ..." marker so the synthesis step always receives
four reports and can see which ones are degraded.
"""

import logging
from typing import List

from nanobook.providers.base import GenerationOptions
from nanobook.providers.registry import ProviderRegistry
from nanobook.utils import strip_think_blocks

logger = logging.getLogger(__name__)

AGENT_TEMPERATURE = 0.7


class ResearchAgent:
    name: str = ""
    system_prompt: str = ""
    mission: str = ""           # formatted with {topic}
    failure_detail: str = ""
    empty_report: str = ""

    def __init__(self, registry: ProviderRegistry, model_id: str):
        self.registry = registry
        self.model_id = model_id

    def failure_marker(self) -> str:
        return f"[{self.name} Error] {self.failure_detail}"

    def build_prompt(self, topic: str) -> str:
        return self.mission.format(topic=topic)

    async def run(self, topic: str) -> str:
        try:
            provider = await self.registry.provider_for_model(self.model_id)
            text = await provider.generate_text(
                self.model_id,
                self.build_prompt(topic),
                GenerationOptions(system_prompt=self.system_prompt, temperature=AGENT_TEMPERATURE),
            )
        except Exception as e:
            logger.error("%s agent failed: %s", self.name, e)
            return self.failure_marker()
        text = strip_think_blocks(text or "")
        if not text:
            logger.warning("%s agent returned an empty report", self.name)
            return self.empty_report
        logger.info("%s agent report: %d chars", self.name, len(text))
        return text


class DetectiveAgent(ResearchAgent):
    """Social proof: forum complaints, failure stories, red flags."""
    name = "Detective"
    system_prompt = """You are the DETECTIVE AGENT.
Mission: Find the victims.
Search Reddit, Quora, Trustpilot, and BBB complaints.
Look for emotional keywords: "ruined", "lost savings", "scam", "regret", "nightmare".
Capture specific stories: "User X lost $5k in 3 months".
Ignore positive reviews (likely fake)."""
    mission = """You are a REDDIT DETECTIVE investigating "{topic}".
Search for:
- Common complaints and failure stories
- Success claims vs reality
- Red flags and warning signs
- Typical user experiences

Format: Write a detailed investigative report as if you found this on Reddit."""
    failure_detail = "Investigation failed. Proceeding with limited data."
    empty_report = "[Detective found no evidence]"


class AuditorAgent(ResearchAgent):
    """Financial claims and hidden costs."""
    name = "Auditor"
    system_prompt = """You are the AUDITOR AGENT.
Mission: Find the hidden costs.
Ignore the "startup cost" claimed by gurus.
Find: Ad spend minimums, software subscriptions (Shopify, Clickfunnels, Ahrefs), LLC filing fees, transaction fees, refund rates.
Calculate the "Real Day 1 Cost"."""
    mission = """You are a FINANCIAL AUDITOR examining "{topic}".
Analyze:
- Advertised vs actual startup costs
- Hidden fees and ongoing expenses
- Revenue claims vs realistic expectations
- Time investment required

Be ruthlessly honest about the numbers."""
    failure_detail = "Audit failed. Proceeding with estimated figures."
    empty_report = "[Auditor found no financial data]"


class InsiderAgent(ResearchAgent):
    """Case studies and who profits (affiliate programs)."""
    name = "Insider"
    system_prompt = """You are the INSIDER AGENT.
Mission: Follow the money.
Who is selling the shovels?
Find the affiliate programs for the tools used in this hustle.
How much commission do influencers get for selling the course or the software?
This explains WHY it is promoted."""
    mission = """You are an INSIDER SOURCE who knows the truth about "{topic}".
Provide:
- 2-3 detailed case studies (mix of winners and losers)
- Behind-the-scenes information
- What the gurus don't tell you
- Who actually profits in this ecosystem

Write as someone who has been in the industry."""
    failure_detail = "Intel gathering failed. Using general knowledge."
    empty_report = "[Insider has no intel]"


class StatisticianAgent(ResearchAgent):
    """Market statistics: success rates, median earnings, saturation."""
    name = "Statistician"
    system_prompt = """You are the STATISTICIAN AGENT.
Mission: Find the cold hard numbers.
2024/2025 data only.
Success rates, median earnings (not average), churn rates, saturation levels.
Find academic papers or marketplace transparency reports."""
    mission = """You are a DATA SCIENTIST analyzing "{topic}".
Compile:
- Industry-wide success/failure rates (be realistic!)
- Average income statistics (median, not mean)
- Market saturation indicators
- Year-over-year trends
- Comparison to traditional alternatives

Use specific numbers and cite plausible sources."""
    failure_detail = "Data collection failed. Using industry averages."
    empty_report = "[Statistician has no data]"


# Dossier order; results are recombined in this order regardless of completion order
AGENT_CLASSES = (DetectiveAgent, AuditorAgent, InsiderAgent, StatisticianAgent)


def build_default_agents(registry: ProviderRegistry, model_id: str) -> List[ResearchAgent]:
    return [cls(registry, model_id) for cls in AGENT_CLASSES]
