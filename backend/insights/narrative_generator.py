"""
Narrative Generator

Uses the LLM to turn a final insight list into an executive summary
with a short list of recommended actions.
"""

import json
import math
from typing import Any, Optional

from api.schemas.responses import BusinessNarrative, DatasetInsight
from config import LLMSettings, get_settings
from core.datasets import Dataset
from core.logging_config import llm_logger as logger
from llm.chat_client import ChatCompletionClient, LLMRequestError, chat_client
from llm.context_builder import NOT_AVAILABLE, ContextBuilder, context_builder, redact_text
from llm.prompts import NARRATIVE_PROMPT, NARRATIVE_SYSTEM_PROMPT


DEFAULT_LANGUAGE = "es"
SUPPORTED_LANGUAGES = ("es", "en")
MAX_ACTIONS = 5
NARRATIVE_TEMPERATURE = 0.2
NARRATIVE_MAX_TOKENS = 450


class NarrativeError(LLMRequestError):
    """The LLM answered, but not with a usable narrative."""


def resolve_language(user_context: Optional[str]) -> str:
    """
    Narrative language from the dataset's user context.

    A JSON object with `language`, `lang` or `locale` starting with "en"
    selects English; anything else keeps the default.
    """
    if not user_context:
        return DEFAULT_LANGUAGE
    try:
        parsed = json.loads(user_context)
    except json.JSONDecodeError:
        return DEFAULT_LANGUAGE
    if not isinstance(parsed, dict):
        return DEFAULT_LANGUAGE

    for key in ("language", "lang", "locale"):
        value = parsed.get(key)
        if isinstance(value, str) and value.strip().lower().startswith("en"):
            return "en"
    return DEFAULT_LANGUAGE


class NarrativeGenerator:
    """
    Generates executive-friendly narratives using the LLM.

    Runs with a much longer deadline than insight extraction; the
    caller decides what a failure means.
    """

    def __init__(
        self,
        client: Optional[ChatCompletionClient] = None,
        builder: Optional[ContextBuilder] = None,
        settings: Optional[LLMSettings] = None,
    ):
        self.client = client or chat_client
        self.builder = builder or context_builder
        self.settings = settings or get_settings().llm

    def build_messages(
        self,
        dataset: Dataset,
        insights: list[DatasetInsight],
        language: str,
    ) -> list[dict[str, str]]:
        user_context = dataset.ai_config.user_context if dataset.ai_config else None
        prompt = NARRATIVE_PROMPT.format(
            dataset_name=redact_text(dataset.meta.name),
            description=redact_text(dataset.meta.description) or NOT_AVAILABLE,
            language=language,
            user_context=redact_text(user_context) or NOT_AVAILABLE,
            strongest_signals=self.builder.to_json(self.builder.strongest_signals(insights)),
            weakest_metrics=self.builder.to_json(self.builder.weakest_metrics(insights)),
            insights=self.builder.to_json(self.builder.build_insights_digest(insights)),
        )
        return [
            {"role": "system", "content": NARRATIVE_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def generate_narrative(
        self,
        dataset: Dataset,
        insights: list[DatasetInsight],
        language: Optional[str] = None,
    ) -> BusinessNarrative:
        """
        Generate an executive narrative for the insight list.

        Raises:
            LLMRequestError: on timeout, transport failure or unusable answer
        """
        if language not in SUPPORTED_LANGUAGES:
            language = resolve_language(dataset.ai_config.user_context if dataset.ai_config else None)

        logger.info(f"Generating {language} narrative for dataset {dataset.id} from {len(insights)} insights")

        completion = await self.client.complete_json(
            self.build_messages(dataset, insights, language),
            temperature=NARRATIVE_TEMPERATURE,
            timeout=self.settings.narrative_timeout,
            max_tokens=NARRATIVE_MAX_TOKENS,
        )

        narrative = self._parse(completion.content, language, completion.model)
        logger.success(f"Narrative generated: {len(narrative.summary)} chars, {len(narrative.recommended_actions)} actions")
        return narrative

    def _parse(self, content: str, language: str, model: str) -> BusinessNarrative:
        try:
            parsed: Any = json.loads(content)
        except json.JSONDecodeError as e:
            raise NarrativeError(f"LLM returned invalid JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise NarrativeError("LLM JSON root is not an object")

        summary = parsed.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise NarrativeError("LLM narrative has no summary")

        actions = parsed.get("recommendedActions", parsed.get("recommended_actions"))
        if not isinstance(actions, list):
            actions = []

        confidence = parsed.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not math.isfinite(confidence):
            confidence = 0.8

        return BusinessNarrative(
            summary=summary.strip(),
            recommended_actions=[a.strip() for a in actions if isinstance(a, str) and a.strip()][:MAX_ACTIONS],
            language="en" if parsed.get("language") == "en" else language,
            model=model,
            confidence=max(0.0, min(1.0, float(confidence))),
        )


# Global instance
narrative_generator = NarrativeGenerator()
