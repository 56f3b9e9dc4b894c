# agents/llm_client.py
import logging

import google.generativeai as genai

import config

logger = logging.getLogger(__name__)

_configured = False


def _ensure_configured():
    global _configured
    if _configured:
        return
    if not config.GEMINI_API_KEY:
        raise ValueError("GEMINI_API_KEY is missing in .env file")
    genai.configure(api_key=config.GEMINI_API_KEY)
    _configured = True


async def generate(prompt: str, model: str = None, max_tokens: int = None) -> str:
    """
    Narrative generation function backed by Gemini.
    Takes the full prompt text and returns the raw model text.
    """
    _ensure_configured()
    model_name = model or config.GEMINI_MODEL
    logger.info(f"Calling Gemini model {model_name} ({len(prompt)} prompt chars)")

    llm = genai.GenerativeModel(model_name)
    response = await llm.generate_content_async(
        prompt,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens or config.LLM_MAX_TOKENS,
            temperature=0.0,
        ),
    )

    return response.text.strip()
