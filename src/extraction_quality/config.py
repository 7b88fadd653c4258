"""
Environment-driven settings for extraction quality evaluation.
"""

import os
from typing import Dict

# Model gateway
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
BEDROCK_MAX_TOKENS = int(os.environ.get("BEDROCK_MAX_TOKENS", "4000"))
BEDROCK_TEMPERATURE = float(os.environ.get("BEDROCK_TEMPERATURE", "0.1"))
MAX_CONCURRENT_MODELS = int(os.environ.get("MAX_CONCURRENT_MODELS", "8"))
MAX_DOCUMENT_CHARS = int(os.environ.get("MAX_DOCUMENT_CHARS", "48000"))  # ~12000 tokens

# Consensus value normalization
NUMERIC_CANONICALIZATION = os.environ.get("NUMERIC_CANONICALIZATION", "true").lower() == "true"

# Supported output formats
JSON = "json"
JSONL = "jsonl"
OUTPUT_FORMATS = (JSON, JSONL)

# Model catalogue (per 1M tokens pricing)
AVAILABLE_MODELS: Dict[str, Dict] = {
    "gpt-oss": {
        "id": "openai.gpt-oss-120b-1:0",
        "name": "OpenAI GPT-OSS 120B",
        "input_cost_per_1m": 0.15,
        "output_cost_per_1m": 0.60,
    },
    "minimax-m2": {
        "id": "minimax.minimax-m2",
        "name": "MiniMax M2",
        "input_cost_per_1m": 0.30,
        "output_cost_per_1m": 1.20,
    },
    "qwen3-235b": {
        "id": "qwen.qwen3-vl-235b-a22b",
        "name": "Qwen3 235B",
        "input_cost_per_1m": 0.22,
        "output_cost_per_1m": 0.88,
    },
    "mistral-large": {
        "id": "mistral.mistral-large-3-675b-instruct",
        "name": "Mistral Large 675B",
        "input_cost_per_1m": 2.00,
        "output_cost_per_1m": 6.00,
    },
    "gemma-27b": {
        "id": "google.gemma-3-27b-it",
        "name": "Gemma 3 27B",
        "input_cost_per_1m": 0.23,
        "output_cost_per_1m": 0.38,
    },
}
