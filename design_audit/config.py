"""Design audit configuration constants: single source of truth for secrets and endpoints."""

import os

# Server binding: used by entrypoint / uvicorn
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Figma REST API: Personal Access Token for design file access
FIGMA_TOKEN = os.getenv("FIGMA_TOKEN", "")

# Anthropic Messages API: vision model used for component analysis
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_API_URL = os.getenv("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages")
ANTHROPIC_VERSION = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
