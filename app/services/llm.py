# app/services/llm.py
import json
import logging
import re
from typing import Any, Dict, List

import requests
from requests.exceptions import RequestException

from app.core.config import settings

logger = logging.getLogger(__name__)

DEPTH_MAX_TOKENS = {
    "quick": 800,
    "standard": 1200,
    "deep": 2000,
}

STYLE_INSTRUCTIONS = {
    "bullet": "Format the summary as bullet points (• prefix each point)",
    "paragraph": "Write as flowing paragraphs",
    "executive": "Write a formal executive summary with key takeaways",
}

RESEARCH_SYSTEM_PROMPT = """You are a research assistant. Analyze the query and provide structured research findings.
Return a JSON object with these fields:
- summary: A concise summary of your findings (2-4 sentences)
- keyPoints: Array of 3-5 key insights as strings
- insights: Actionable recommendations or deeper analysis (1-2 sentences)
- relatedTopics: Array of 3-5 related topics to explore
- confidence: A number 0.0-1.0 indicating how confident you are in the findings

Respond ONLY with valid JSON, no markdown or explanation."""

SUMMARIZE_SYSTEM_PROMPT = """You are a text summarization assistant.
Summarize the provided text in the requested style.
Return a JSON object with these fields:
- summary: The summarized text in the requested style
- keyPoints: Array of 3-5 main takeaways as strings
- sentenceCount: Number of sentences in the original text

Respond ONLY with valid JSON, no markdown or explanation."""

# Longest text excerpt sent to the model
MAX_PROMPT_CHARS = 8000

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")


def split_sentences(text: str) -> List[str]:
    """Split text into sentences, falling back to the whole text."""
    return _SENTENCE_RE.findall(text) or [text]


def chat_completion_json(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
) -> Dict[str, Any]:
    """
    Run a chat completion in JSON mode against the configured LLM API.

    Returns:
        The parsed JSON object produced by the model

    Raises:
        RequestException: If the HTTP request to the LLM API fails
        ValueError: If the response is malformed or not a JSON object
    """
    api_url = str(settings.LLM_API_URL)
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.LLM_API_KEY}",
    }
    request_body = {
        "model": settings.LLM_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }

    response = requests.post(
        api_url, json=request_body, headers=headers, timeout=settings.LLM_TIMEOUT_SECONDS
    )
    response.raise_for_status()

    try:
        content = response.json()["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ValueError(f"Unexpected completion response structure: {e}")

    if not isinstance(content, str):
        raise ValueError("Completion response has no message content")

    result = json.loads(content)
    if not isinstance(result, dict):
        raise ValueError(f"Model returned {type(result).__name__}, expected a JSON object")
    return result


def perform_research(query: str, depth: str = "quick") -> Dict[str, Any]:
    """
    Research a query with the LLM.

    Args:
        query: Research question or topic
        depth: 'quick', 'standard' or 'deep'; controls the response length

    Returns:
        Dict with summary, keyPoints, insights, relatedTopics and confidence.
        If the LLM is unavailable a degraded result with an 'error' field is returned.
    """
    max_tokens = DEPTH_MAX_TOKENS.get(depth, DEPTH_MAX_TOKENS["quick"])
    user_prompt = f'Research query: "{query}"\nDepth: {depth}\n\nProvide comprehensive research findings.'

    try:
        response = chat_completion_json(RESEARCH_SYSTEM_PROMPT, user_prompt, max_tokens, 0.7)
    except (RequestException, ValueError) as e:
        logger.error(f"LLM research request failed: {e}")
        return {
            "summary": f'Research on "{query}" could not be completed due to an API error.',
            "keyPoints": ["API temporarily unavailable"],
            "insights": "Please try again later.",
            "relatedTopics": [],
            "confidence": 0.0,
            "error": "AI service temporarily unavailable",
        }

    return {
        "summary": response.get("summary") or "Research completed.",
        "keyPoints": response.get("keyPoints") or [],
        "insights": response.get("insights") or "",
        "relatedTopics": response.get("relatedTopics") or [],
        "confidence": response.get("confidence") or 0.8,
        "model": settings.LLM_MODEL,
    }


def perform_summarization(text: str, style: str = "bullet") -> Dict[str, Any]:
    """
    Summarize text with the LLM.

    Falls back to extracting the leading sentences when the LLM is unavailable.
    """
    instructions = STYLE_INSTRUCTIONS.get(style, STYLE_INSTRUCTIONS["bullet"])
    user_prompt = (
        f'Text to summarize:\n"""\n{text[:MAX_PROMPT_CHARS]}\n"""\n\n'
        f"Style: {style}\nInstructions: {instructions}"
    )

    try:
        response = chat_completion_json(SUMMARIZE_SYSTEM_PROMPT, user_prompt, 1000, 0.5)
    except (RequestException, ValueError) as e:
        logger.error(f"LLM summarization request failed: {e}")
        sentences = split_sentences(text)
        return {
            "summary": " ".join(sentences[:3]),
            "keyPoints": [s.strip()[:100] for s in sentences[:5]],
            "sentenceCount": len(sentences),
            "error": "AI service temporarily unavailable - basic extraction used",
        }

    return {
        "summary": response.get("summary") or "Summary unavailable.",
        "keyPoints": response.get("keyPoints") or [],
        "sentenceCount": response.get("sentenceCount") or len(re.split(r"[.!?]+", text)),
        "model": settings.LLM_MODEL,
    }
