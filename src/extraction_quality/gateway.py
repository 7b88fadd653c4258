"""
Bedrock Gateway - text completions from Amazon Bedrock InvokeModel.
Supports OpenAI-compatible third-party models and Claude request formats.
A failed call raises GatewayError; nothing is retried.
"""

import json
import logging
import time
from typing import Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import config
from .models import ModelCompletion

logger = logging.getLogger(__name__)

# Pricing per 1K tokens, derived from the model catalogue
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    info["id"]: {
        "input": info["input_cost_per_1m"] / 1000,
        "output": info["output_cost_per_1m"] / 1000,
    }
    for info in config.AVAILABLE_MODELS.values()
}
MODEL_PRICING.update({
    "anthropic.claude-3-haiku-20240307-v1:0": {"input": 0.00025, "output": 0.00125},
    "anthropic.claude-3-sonnet-20240229-v1:0": {"input": 0.003, "output": 0.015},
})

# Default pricing for unknown models
DEFAULT_PRICING = {"input": 0.001, "output": 0.002}

# Model families served with the OpenAI-compatible chat format
OPENAI_COMPATIBLE_PREFIXES = (
    "openai.",
    "moonshot.",
    "deepseek.",
    "minimax.",
    "qwen.",
    "mistral.",
    "google.",
    "meta.llama4",
)

# Models that emit reasoning before the answer unless told not to
THINKING_PATTERNS = (
    "openai.gpt-oss",
    "kimi-k2-thinking",
    "deepseek.r1",
)


class GatewayError(Exception):
    """Raised when a model call fails."""
    pass


def resolve_model_id(model: str) -> str:
    """Map a catalogue key ("gemma-27b") to its Bedrock model ID; IDs pass through."""
    info = config.AVAILABLE_MODELS.get(model)
    return info["id"] if info else model


class BedrockGateway:
    """
    Wrapper for Bedrock InvokeModel with cost and latency tracking.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client=None,
    ):
        """
        Initialize the gateway.

        Args:
            region: AWS region (AWS_REGION by default)
            max_tokens: Max output tokens per completion
            temperature: Sampling temperature (low for structured output)
            client: Pre-built bedrock-runtime client
        """
        self.client = client or boto3.client("bedrock-runtime", region_name=region or config.AWS_REGION)
        self.max_tokens = max_tokens or config.BEDROCK_MAX_TOKENS
        self.temperature = config.BEDROCK_TEMPERATURE if temperature is None else temperature

    def complete(self, model: str, system_prompt: str, user_prompt: str) -> ModelCompletion:
        """
        Request one completion.

        Args:
            model: Catalogue key or Bedrock model ID
            system_prompt: System prompt (may be empty)
            user_prompt: User prompt

        Returns:
            ModelCompletion with text, token usage, cost and latency

        Raises:
            GatewayError: If Bedrock rejects the call or the connection fails
        """
        model_id = resolve_model_id(model)
        body = self._build_request_body(model_id, user_prompt, system_prompt)

        start = time.time()
        try:
            response = self.client.invoke_model(
                modelId=model_id,
                body=json.dumps(body),
                contentType="application/json",
                accept="application/json",
            )
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            logger.warning(f"Bedrock call failed for {model_id} ({error_code}): {e}")
            raise GatewayError(f"{model_id}: {error_code or 'ClientError'}: {e}") from e
        except BotoCoreError as e:
            logger.warning(f"Bedrock connection failed for {model_id}: {e}")
            raise GatewayError(f"{model_id}: {e}") from e
        except ValueError as e:
            raise GatewayError(f"{model_id}: response body is not JSON: {e}") from e

        latency_ms = (time.time() - start) * 1000
        text, input_tokens, output_tokens = self._parse_response(model_id, response_body)

        return ModelCompletion(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self._calculate_cost(model_id, input_tokens, output_tokens),
            latency_ms=latency_ms,
        )

    def _is_openai_compatible(self, model_id: str) -> bool:
        return model_id.startswith(OPENAI_COMPATIBLE_PREFIXES)

    def _is_thinking_model(self, model_id: str) -> bool:
        return any(pattern in model_id for pattern in THINKING_PATTERNS)

    def _build_request_body(self, model_id: str, prompt: str, system: Optional[str]) -> Dict:
        """Build request body based on model type."""

        if self._is_openai_compatible(model_id):
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})

            body = {
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "messages": messages,
            }

            # Direct JSON output from reasoning models
            if self._is_thinking_model(model_id):
                body["include_reasoning"] = False

            return body

        elif model_id.startswith("anthropic.claude"):
            body = {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system:
                body["system"] = system
            return body

        else:
            full_prompt = f"{system}\n\n{prompt}" if system else prompt
            return {
                "prompt": full_prompt,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
            }

    def _parse_response(self, model_id: str, response_body: Dict) -> Tuple[str, int, int]:
        """Parse response based on model type. Returns (text, input_tokens, output_tokens)."""

        if self._is_openai_compatible(model_id):
            choices = response_body.get("choices") or [{}]
            text = choices[0].get("message", {}).get("content", "") or ""
            usage = response_body.get("usage", {})
            input_tokens = usage.get("prompt_tokens", 0)
            output_tokens = usage.get("completion_tokens", 0)

        elif model_id.startswith("anthropic.claude"):
            content = response_body.get("content", [])
            text = content[0].get("text", "") if content else ""
            usage = response_body.get("usage", {})
            input_tokens = usage.get("input_tokens", 0)
            output_tokens = usage.get("output_tokens", 0)

        else:
            text = response_body.get("completion", str(response_body))
            # Estimate tokens if not provided
            input_tokens = response_body.get("input_tokens", len(text.split()) * 2)
            output_tokens = response_body.get("output_tokens", len(text.split()))

        return text, input_tokens, output_tokens

    def _calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost based on model pricing."""
        pricing = MODEL_PRICING.get(model_id, DEFAULT_PRICING)
        input_cost = (input_tokens / 1000) * pricing["input"]
        output_cost = (output_tokens / 1000) * pricing["output"]
        return input_cost + output_cost
