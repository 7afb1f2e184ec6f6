"""
Scoring oracle adapter.

Asks an LLM where a comment sits on one dimension and turns the answer into
a bounded (stance, confidence, explanation) triple. Every way the call can
go wrong (transport error, timeout, malformed JSON, wrong field types)
degrades to a neutral score for that dimension only.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import anthropic
from pydantic import ValidationError

from psv_python_backend.config import ANTHROPIC_API_KEY, PSV_ONLINE_MODEL
from psv_python_backend.models import DeliberationDimension
from psv_python_backend.schemas import StanceScore
from psv_python_backend.services.local_llm_client import extract_json_from_text, local_chat_completion
from psv_python_backend.services.oracle_config import get_env_oracle_defaults
from psv_python_backend.services.prompt_manager import get_prompt_manager

logger = logging.getLogger(__name__)

STANCE_PROMPT = "stance_scoring"
PARSE_FAILURE_EXPLANATION = "Failed to parse scoring oracle response"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def neutral_score(explanation: str) -> Dict[str, Any]:
    return {"stance_value": 0.0, "confidence": 0.0, "explanation": explanation}


def parse_oracle_response(response_text: Optional[str]) -> Dict[str, Any]:
    """
    Validate raw oracle text into a clamped score.

    Returns the neutral score when no JSON object can be found or when any
    of ``stance_value``/``confidence``/``explanation`` is missing, mistyped
    or too large to represent as a float.
    """
    try:
        parsed = extract_json_from_text(response_text)
        if not isinstance(parsed, dict):
            raise ValueError("Oracle response is not a JSON object")
        score = StanceScore.model_validate(parsed)
    except (ValueError, OverflowError, ValidationError) as e:
        logger.error("Error parsing oracle response: %s (text=%r)", e, (response_text or "")[:200])
        return neutral_score(PARSE_FAILURE_EXPLANATION)

    return {
        "stance_value": clamp(score.stance_value, -1.0, 1.0),
        "confidence": clamp(score.confidence, 0.0, 1.0),
        "explanation": score.explanation,
    }


class StanceOracle:
    """Scores comment text against a single dimension"""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        prompt_manager=None,
        anthropic_client=None,
    ):
        self.config = config or get_env_oracle_defaults()
        self.prompt_manager = prompt_manager or get_prompt_manager()
        self.client = anthropic_client

    @property
    def timeout_seconds(self) -> float:
        return float(self.config.get("timeout_seconds", 30))

    def build_prompt(self, comment_text: str, dimension: DeliberationDimension) -> str:
        return self.prompt_manager.render_prompt(
            STANCE_PROMPT,
            {
                "dimension_name": dimension.dimension_name,
                "dimension_description": dimension.dimension_description,
                "scale_negative_label": dimension.scale_negative_label,
                "scale_positive_label": dimension.scale_positive_label,
                "comment_text": comment_text,
            },
        )

    async def score(self, comment_text: str, dimension: DeliberationDimension) -> Dict[str, Any]:
        """
        Score one comment on one dimension.

        Returns:
            {
                "stance_value": -1.0..1.0,
                "confidence": 0.0..1.0,
                "explanation": str,
                "raw_response": dict,
                "processing_time_ms": int
            }
        """
        start_time = time.perf_counter()

        try:
            prompt = self.build_prompt(comment_text, dimension)
            completion = await asyncio.wait_for(
                self._complete(prompt),
                timeout=self.timeout_seconds,
            )
            result = parse_oracle_response(completion.get("content"))
            raw_response = {
                "full_response": completion.get("content"),
                "model": completion.get("model"),
                "prompt_tokens": completion.get("prompt_tokens"),
                "completion_tokens": completion.get("completion_tokens"),
                "total_tokens": completion.get("total_tokens"),
            }
        except asyncio.TimeoutError:
            logger.warning(
                "Scoring oracle timed out after %.1fs on dimension %s",
                self.timeout_seconds, dimension.id,
            )
            message = f"Scoring oracle timed out after {self.timeout_seconds:g}s"
            result = neutral_score(message)
            raw_response = {"error": message}
        except Exception as e:
            logger.error(
                "Error analyzing stance on dimension %s (comment length %d): %s",
                dimension.id, len(comment_text or ""), e,
            )
            result = neutral_score(f"Error during analysis: {e}")
            raw_response = {"error": str(e)}

        result["raw_response"] = raw_response
        result["processing_time_ms"] = int((time.perf_counter() - start_time) * 1000)
        return result

    async def _complete(self, prompt: str) -> Dict[str, Any]:
        metadata = self.prompt_manager.get_prompt_metadata(STANCE_PROMPT)
        temperature = metadata["temperature"]
        max_tokens = metadata["max_tokens"]

        if self.config.get("mode") == "online":
            return await self._complete_online(prompt, metadata["system"], temperature, max_tokens)

        messages = [
            {"role": "system", "content": metadata["system"]},
            {"role": "user", "content": prompt},
        ]
        return await local_chat_completion(
            self.config,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def _complete_online(self, prompt: str, system: str,
                               temperature: float, max_tokens: int) -> Dict[str, Any]:
        if self.client is None:
            if not ANTHROPIC_API_KEY:
                raise ValueError("ANTHROPIC_API_KEY not found in environment")
            self.client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)

        model = self.config.get("online_model", PSV_ONLINE_MODEL)
        message = await self.client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        usage = getattr(message, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        return {
            "content": message.content[0].text,
            "model": model,
            "prompt_tokens": input_tokens,
            "completion_tokens": output_tokens,
            "total_tokens": (input_tokens or 0) + (output_tokens or 0) if usage else None,
        }
