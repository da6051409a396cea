"""List the Gemini models the configured API key can use for drafting."""

import asyncio
import os
import sys

# Load .env BEFORE importing anything else (override system env vars)
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

from dotenv import load_dotenv

load_dotenv(os.path.join(ROOT, ".env"), override=True)

from mailbot.core.config import settings
from mailbot.core.llm.clients import list_generation_models


async def main() -> int:
    if not settings.google_ai_api_key:
        print("GOOGLE_AI_API_KEY is not set.")
        return 1

    print("🔍 Looking up models available to this API key...")
    try:
        names = await list_generation_models()
    except Exception as e:
        print(f"❌ Lookup failed: {e}")
        return 1

    if not names:
        print("⚠️ No text generation models found. Check the project settings.")
        return 1

    print(f"{'-'*48}")
    for name in sorted(names):
        marker = "  <- DRAFT_MODEL" if name == settings.draft_model else ""
        print(f"- {name}{marker}")
    print(f"{'-'*48}")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
