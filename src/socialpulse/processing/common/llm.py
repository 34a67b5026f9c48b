"""Generative backend adapter built on PydanticAI.

The synthesis engine only needs a narrow text-in/text-out contract
(``GenerativeBackend``). The default implementation runs a plain-text
PydanticAI agent against:
- Anthropic (Claude) - default
- OpenAI-compatible APIs
"""

from typing import Literal, Protocol

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from socialpulse.config import get_settings
from socialpulse.core.exceptions import LLMError
from socialpulse.core.logging import get_logger

logger = get_logger(__name__)

Quality = Literal["low", "medium", "high", "deep"]
Provider = Literal["anthropic", "openai"]

_SMART_TIERS: frozenset[str] = frozenset({"high", "deep"})

GENERATION_SYSTEM_PROMPT = """You are a financial social-media analyst.
Follow the user's output instructions exactly. When asked for JSON, return a single
JSON object and nothing else."""


class GenerationRequest(BaseModel):
    """One call to the generative backend."""

    prompt: str
    tickers: list[str] = Field(default_factory=list)
    quality: Quality = "medium"
    provider: Provider | None = None
    model: str | None = None


class GenerationResult(BaseModel):
    """Raw backend text plus usage accounting."""

    text: str
    tokens_in: int = 0
    tokens_out: int = 0
    models_used: list[str] = Field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.tokens_in + self.tokens_out


class GenerativeBackend(Protocol):
    """Narrow contract the synthesis engine depends on."""

    async def generate(self, request: GenerationRequest) -> GenerationResult: ...


def create_model(
    smart: bool = False,
    model_name: str | None = None,
    provider: Provider | None = None,
) -> str | Model:
    """Create a PydanticAI model based on configuration.

    Args:
        smart: Use the smart/capable model (llm_model_smart) for complex tasks.
               Default uses llm_model for faster/cheaper tasks.
        model_name: Explicit model name, overriding the configured tier model.
        provider: Explicit provider, overriding ``llm_provider``.

    Returns:
        Model string for Anthropic (e.g., "anthropic:claude-3-5-haiku-20241022")
        or OpenAIChatModel instance for OpenAI-compatible APIs.
    """
    settings = get_settings()
    name = model_name or (settings.llm_model_smart if smart else settings.llm_model)

    if (provider or settings.llm_provider) == "anthropic":
        model_str = f"anthropic:{name}"
        logger.debug("Using Anthropic model", model=model_str, smart=smart)
        return model_str

    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None

    if settings.openai_base_url:
        openai_provider = OpenAIProvider(base_url=settings.openai_base_url, api_key=api_key)
        logger.debug(
            "Using OpenAI-compatible model",
            model=name,
            base_url=settings.openai_base_url,
            smart=smart,
        )
    else:
        openai_provider = OpenAIProvider(api_key=api_key)
        logger.debug("Using OpenAI model", model=name, smart=smart)

    return OpenAIChatModel(name, provider=openai_provider)


def resolve_quality(model: str | None, quality: Quality | None = None) -> Quality:
    """Pick a quality tier: an explicit tier wins, else infer from the model name."""
    if quality is not None:
        return quality
    if not model:
        return "medium"

    name = model.lower()
    if any(token in name for token in ("lite", "mini", "nano")):
        return "low"
    if any(token in name for token in ("pro", "opus", "gpt-5")):
        return "high"
    if any(token in name for token in ("flash", "haiku", "sonnet")):
        return "medium"
    return "medium"


def model_credit_cost(model: str | None) -> int:
    """Credits charged for one analysis with ``model``."""
    if not model:
        return 1
    name = model.lower()
    if "pro" in name or "gpt-5" in name:
        return 5
    if "gemini-3-flash" in name:
        return 2
    return 1


class PydanticAIBackend:
    """``GenerativeBackend`` that runs a plain-text PydanticAI agent."""

    def __init__(self, system_prompt: str = GENERATION_SYSTEM_PROMPT) -> None:
        self._system_prompt = system_prompt
        self._agents: dict[tuple[bool, str | None, str | None], Agent[None, str]] = {}

    def _get_agent(
        self, smart: bool, model_name: str | None, provider: Provider | None
    ) -> Agent[None, str]:
        """Get or create the agent for a model selection."""
        key = (smart, model_name, provider)
        if key not in self._agents:
            model = create_model(smart=smart, model_name=model_name, provider=provider)
            self._agents[key] = Agent(model, output_type=str, system_prompt=self._system_prompt)
        return self._agents[key]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        settings = get_settings()
        smart = request.quality in _SMART_TIERS
        model_name = request.model or (settings.llm_model_smart if smart else settings.llm_model)
        agent = self._get_agent(smart, request.model, request.provider)

        try:
            result = await agent.run(request.prompt)
        except Exception as e:
            raise LLMError(f"Generation failed with {model_name}: {e}") from e

        usage = result.usage()
        logger.debug(
            "Generation complete",
            model=model_name,
            tickers=request.tickers,
            quality=request.quality,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        return GenerationResult(
            text=result.output,
            tokens_in=usage.input_tokens or 0,
            tokens_out=usage.output_tokens or 0,
            models_used=[model_name],
        )
