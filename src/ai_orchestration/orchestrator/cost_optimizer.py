"""Provider/model selection balancing cost, quality and latency."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ai_orchestration.config.settings import RateLimitConfig
from ai_orchestration.exceptions import NoEligibleProviderError
from ai_orchestration.utils.token_counter import CHARS_PER_TOKEN, TokenManager

logger = structlog.get_logger(__name__)

COST_WEIGHT = 40
QUALITY_WEIGHT = 40
LATENCY_WEIGHT = 20
PREFERENCE_BONUS = 10

# provider -> model -> quality (0-1), typical latency (ms), features
PROVIDER_PROFILES: Dict[str, Dict[str, dict]] = {
    "openai": {
        "gpt-4": {"quality": 0.95, "latency": 2000, "features": ("chat", "code", "reasoning")},
        "gpt-3.5-turbo": {"quality": 0.85, "latency": 1000, "features": ("chat", "code")},
    },
    "anthropic": {
        "claude-3-opus": {
            "quality": 0.96,
            "latency": 2500,
            "features": ("chat", "code", "reasoning", "long-context"),
        },
        "claude-3-sonnet": {"quality": 0.9, "latency": 1500, "features": ("chat", "code", "long-context")},
    },
    "google": {
        "gemini-pro": {"quality": 0.88, "latency": 1200, "features": ("chat", "code", "multimodal")},
    },
}


class OptimizationRequirements(BaseModel):
    """Caller constraints for provider selection."""

    max_cost: Optional[float] = Field(default=None, gt=0, description="USD budget for the request")
    min_quality: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_latency: Optional[float] = Field(default=None, gt=0, description="Milliseconds")
    required_features: List[str] = Field(default_factory=list)
    preferred_providers: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class TaskAnalysis:
    complexity: float
    estimated_tokens: int
    required_features: frozenset


@dataclass(frozen=True)
class ProviderOption:
    """A candidate provider/model pair with its estimates."""

    provider: str
    model: str
    estimated_cost: float
    estimated_latency: float
    quality_score: float
    features: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class ScoredOption:
    option: ProviderOption
    score: float
    disqualified_reason: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return self.disqualified_reason is None


class CostOptimizer:
    """Scores every profiled model against the task and requirements."""

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        rate_limits: Optional[Dict[str, RateLimitConfig]] = None,
        profiles: Optional[Dict[str, Dict[str, dict]]] = None,
    ):
        self.token_manager = token_manager or TokenManager()
        self.rate_limits = rate_limits or {}
        self.profiles = profiles or PROVIDER_PROFILES

    @staticmethod
    def analyze_task(task: str, required_features: Optional[List[str]] = None) -> TaskAnalysis:
        length = len(task)
        if length > 1000:
            complexity = 0.8
        elif length > 500:
            complexity = 0.6
        else:
            complexity = 0.4

        # Doubled to account for the response
        estimated_tokens = math.ceil(length / CHARS_PER_TOKEN) * 2

        features = {"chat"}
        if "code" in task or "function" in task:
            features.add("code")
        if "analyze" in task or "reason" in task:
            features.add("reasoning")
        if length > 4000:
            features.add("long-context")
        features.update(required_features or ())

        return TaskAnalysis(complexity, estimated_tokens, frozenset(features))

    def candidates(self, analysis: TaskAnalysis) -> List[ProviderOption]:
        options = []
        for provider, models in self.profiles.items():
            for model, profile in models.items():
                features = frozenset(profile["features"])
                if not analysis.required_features <= features:
                    continue
                options.append(
                    ProviderOption(
                        provider=provider,
                        model=model,
                        estimated_cost=self.token_manager.estimate_cost(
                            analysis.estimated_tokens, model, "output"
                        ),
                        estimated_latency=profile["latency"],
                        quality_score=profile["quality"],
                        features=features,
                    )
                )
        return options

    def _disqualify(
        self,
        option: ProviderOption,
        requirements: OptimizationRequirements,
        analysis: TaskAnalysis,
    ) -> Optional[str]:
        if requirements.max_cost is not None and option.estimated_cost > requirements.max_cost:
            return "over budget"
        if requirements.min_quality is not None and option.quality_score < requirements.min_quality:
            return "below quality threshold"
        if requirements.max_latency is not None and option.estimated_latency > requirements.max_latency:
            return "too slow"
        limit = self.rate_limits.get(option.provider)
        if limit and limit.tokens_per_minute is not None and analysis.estimated_tokens > limit.tokens_per_minute:
            return "exceeds provider token budget"
        return None

    @staticmethod
    def score(option: ProviderOption, requirements: OptimizationRequirements) -> float:
        if requirements.max_cost:
            cost_score = (1 - option.estimated_cost / requirements.max_cost) * COST_WEIGHT
        else:
            cost_score = max(0.0, COST_WEIGHT - option.estimated_cost * 10)

        quality_score = option.quality_score * QUALITY_WEIGHT

        if requirements.max_latency:
            latency_score = (1 - option.estimated_latency / requirements.max_latency) * LATENCY_WEIGHT
        else:
            latency_score = max(0.0, LATENCY_WEIGHT - option.estimated_latency / 1000)

        bonus = PREFERENCE_BONUS if option.provider in requirements.preferred_providers else 0
        return cost_score + quality_score + latency_score + bonus

    def rank_providers(
        self, task: str, requirements: Optional[OptimizationRequirements] = None
    ) -> List[ScoredOption]:
        """Every candidate with its score, best first; disqualified ones score 0."""
        requirements = requirements or OptimizationRequirements()
        analysis = self.analyze_task(task, requirements.required_features)

        scored = []
        for option in self.candidates(analysis):
            reason = self._disqualify(option, requirements, analysis)
            score = 0.0 if reason else self.score(option, requirements)
            scored.append(ScoredOption(option=option, score=score, disqualified_reason=reason))

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored

    def select_optimal_provider(
        self, task: str, requirements: Optional[OptimizationRequirements] = None
    ) -> ProviderOption:
        """Best eligible candidate.

        Raises:
            NoEligibleProviderError: every candidate was filtered out or disqualified.
        """
        ranked = self.rank_providers(task, requirements)
        eligible = [s for s in ranked if s.eligible]
        if not eligible:
            reasons = {f"{s.option.provider}/{s.option.model}": s.disqualified_reason for s in ranked}
            logger.warning("No eligible provider", reasons=reasons)
            raise NoEligibleProviderError(reasons=reasons)

        best = eligible[0]
        logger.info(
            "Provider selected",
            provider=best.option.provider,
            model=best.option.model,
            score=round(best.score, 2),
            estimated_cost=best.option.estimated_cost,
        )
        return best.option
