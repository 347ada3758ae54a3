# tests/test_research_api.py
import pytest
from unittest.mock import patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.endpoints import research

# Endpoints without the payment gate
app = FastAPI()
app.include_router(research.router)
client = TestClient(app)

LONG_TEXT = "The x402 protocol lets servers charge per request. " * 5

RESEARCH_RESULT = {
    "summary": "x402 is an open payment protocol.",
    "keyPoints": ["HTTP native"],
    "insights": "Useful for agents.",
    "relatedTopics": ["micropayments"],
    "confidence": 0.85,
    "model": "llama-3.3-70b-versatile",
}


class TestResearchEndpoint:
    """Test suite for POST /research."""

    @patch("app.api.endpoints.research.perform_research")
    def test_research_success(self, mock_research):
        mock_research.return_value = dict(RESEARCH_RESULT)

        response = client.post("/research", json={"query": "What is x402?", "depth": "standard"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["query"] == "What is x402?"
        assert data["depth"] == "standard"
        assert data["summary"] == "x402 is an open payment protocol."
        assert isinstance(data["processingTimeMs"], int)
        mock_research.assert_called_once_with("What is x402?", "standard")

    @patch("app.api.endpoints.research.perform_research")
    def test_default_depth(self, mock_research):
        mock_research.return_value = dict(RESEARCH_RESULT)

        response = client.post("/research", json={"query": "What is x402?"})

        assert response.json()["depth"] == "quick"

    @pytest.mark.parametrize("payload", [{}, {"query": ""}, {"query": 42}])
    @patch("app.api.endpoints.research.perform_research")
    def test_missing_query(self, mock_research, payload):
        response = client.post("/research", json=payload)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing or invalid 'query' parameter"}
        mock_research.assert_not_called()

    @pytest.mark.parametrize("query", ["x", "q" * 501])
    @patch("app.api.endpoints.research.perform_research")
    def test_query_length_limits(self, mock_research, query):
        response = client.post("/research", json={"query": query})

        assert response.status_code == 400
        assert "between 2 and 500" in response.json()["error"]
        mock_research.assert_not_called()


class TestSummarizeEndpoint:
    """Test suite for POST /summarize."""

    @patch("app.api.endpoints.research.perform_summarization")
    def test_summarize_success(self, mock_summarize):
        mock_summarize.return_value = {
            "summary": "x402 charges per request.",
            "keyPoints": ["per request"],
            "sentenceCount": 5,
        }

        response = client.post("/summarize", json={"text": LONG_TEXT, "style": "paragraph"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["style"] == "paragraph"
        assert data["wordCount"] == {"original": 40, "summary": 4}
        mock_summarize.assert_called_once_with(LONG_TEXT, "paragraph")

    @patch("app.api.endpoints.research.perform_summarization")
    def test_text_too_short(self, mock_summarize):
        response = client.post("/summarize", json={"text": "too short"})

        assert response.status_code == 400
        assert "between 100 and 10000" in response.json()["error"]
        mock_summarize.assert_not_called()

    @patch("app.api.endpoints.research.perform_summarization")
    def test_missing_text(self, mock_summarize):
        response = client.post("/summarize", json={"style": "bullet"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing or invalid 'text' parameter"
