# app/api/endpoints/research.py
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import logging
import time

from app.services.llm import perform_research, perform_summarization
from app.api.models.research import ResearchRequest, SummarizeRequest
from app.x402.middleware import mark_handler_entered

logger = logging.getLogger(__name__)

router = APIRouter()


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@router.post("/research")
def research(request: Request, body: ResearchRequest):
    """
    AI-powered research assistant.

    Submit a question or topic and get structured research with key insights.
    Requires an x402 payment when the payment gate is enabled.
    """
    start_time = time.monotonic()
    payment = mark_handler_entered(request)
    query = body.query

    if not query or not isinstance(query, str):
        return _bad_request("Missing or invalid 'query' parameter")

    if len(query) < 2 or len(query) > 500:
        return _bad_request("Query must be between 2 and 500 characters")

    logger.info(f"Research request (depth={body.depth}, payer={payment.payer if payment else None})")
    result = perform_research(query, body.depth)

    return {
        "success": True,
        "query": query,
        "depth": body.depth,
        **result,
        "processingTimeMs": _elapsed_ms(start_time),
    }


@router.post("/summarize")
def summarize(request: Request, body: SummarizeRequest):
    """
    Summarize any text into key points and a concise overview.
    """
    start_time = time.monotonic()
    payment = mark_handler_entered(request)
    text = body.text

    if not text or not isinstance(text, str):
        return _bad_request("Missing or invalid 'text' parameter")

    if len(text) < 100 or len(text) > 10000:
        return _bad_request("Text must be between 100 and 10000 characters")

    logger.info(f"Summarize request (style={body.style}, payer={payment.payer if payment else None})")
    result = perform_summarization(text, body.style)

    return {
        "success": True,
        "style": body.style,
        **result,
        "wordCount": {
            "original": len(text.split()),
            "summary": len(str(result.get("summary", "")).split()),
        },
        "processingTimeMs": _elapsed_ms(start_time),
    }
