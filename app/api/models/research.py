# app/api/models/research.py
from pydantic import BaseModel, Field
from typing import Any, List, Optional


class ResearchRequest(BaseModel):
    """
    Request body for POST /research. Length limits are checked by the
    endpoint so that bad input is answered with a 400.
    """
    query: Optional[Any] = Field(None, description="Research question or topic (2-500 characters)")
    depth: str = Field("quick", description="Research depth: 'quick', 'standard' or 'deep'")


class SummarizeRequest(BaseModel):
    """
    Request body for POST /summarize.
    """
    text: Optional[Any] = Field(None, description="Text to summarize (100-10000 characters)")
    style: str = Field("bullet", description="Summary style: 'bullet', 'paragraph' or 'executive'")


class EndpointInfo(BaseModel):
    path: str
    method: str
    price: str
    amount: str
    description: str


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    protocol: str
    aiModel: str
    facilitator: str
    timestamp: str
    network: str
    endpoints: List[EndpointInfo]
