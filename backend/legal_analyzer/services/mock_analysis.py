"""
Deterministic synthetic upstream response for development and test runs.
Detects a handful of common clause kinds by keyword and builds an
upstream-shaped payload from the sentences that contain them.
"""

import re
from typing import Any, Dict, List, Optional

from ..models.schemas import PROCESSING_METHOD

# (type, category, confidence, keyword pattern)
CLAUSE_DETECTORS = [
    ("payment_terms", "Payment", 0.95, r"payment|pay|invoice"),
    ("termination_clause", "Termination", 0.88, r"terminat|\bend\b"),
    ("liability_limitation", "Liability", 0.92, r"liabilit|damages|liable"),
    ("confidentiality_agreement", "Confidentiality", 0.90, r"confidential|non-disclosure"),
    ("intellectual_property", "Intellectual Property", 0.93, r"intellectual property|copyright"),
]

RISK_TEMPLATES = {
    "payment_terms": {
        "title": "Payment Delay Risk",
        "description": "Payment terms may impact cash flow",
        "severity": "Medium",
        "category": "financial",
        "mitigation": "Consider shorter payment terms or early payment discounts",
        "confidence": 0.75,
    },
    "liability_limitation": {
        "title": "Liability Exposure",
        "description": "Liability limitations may not provide adequate protection",
        "severity": "High",
        "category": "legal",
        "mitigation": "Review liability caps and ensure adequate insurance coverage",
        "confidence": 0.82,
    },
}

MOCK_PROCESSING_TIME_MS = 2500
MOCK_CONFIDENCE = 0.82


def _find_sentence(text: str, keywords: str) -> Optional[Dict[str, Any]]:
    pattern = re.compile(r"[^.!?]*(?:%s)[^.!?]*(?:[.!?]|$)" % keywords, re.IGNORECASE)
    match = pattern.search(text)
    if not match:
        return None

    raw = match.group(0)
    sentence = raw.strip()
    if not sentence:
        return None

    start = match.start() + (len(raw) - len(raw.lstrip()))
    return {"text": sentence, "start": start, "end": start + len(sentence)}


def generate_mock_response(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Build a synthetic upstream response from the request text.

    Args:
        payload: The request body that would have been sent upstream

    Returns:
        Upstream-shaped analysis dictionary (same output for the same text)
    """
    text = ""
    if isinstance(payload, dict) and isinstance(payload.get("text"), str):
        text = payload["text"]

    clauses: List[Dict[str, Any]] = []
    for clause_type, category, confidence, keywords in CLAUSE_DETECTORS:
        found = _find_sentence(text, keywords)
        if found is None:
            continue
        clauses.append({
            "id": f"api_clause_{len(clauses) + 1}",
            "text": found["text"],
            "type": clause_type,
            "category": category,
            "confidence": confidence,
            "startPosition": found["start"],
            "endPosition": found["end"],
        })

    risks = []
    for clause in clauses:
        template = RISK_TEMPLATES.get(clause["type"])
        if template:
            risks.append({
                "id": f"api_risk_{len(risks) + 1}",
                "affectedClauses": [clause["id"]],
                **template
            })

    recommendations = [
        {
            "id": f"api_rec_{index + 1}",
            "title": f"Address {risk['title']}",
            "description": risk["mitigation"],
            "priority": "High" if risk["severity"] == "High" else "Medium",
            "category": risk["category"],
            "actionRequired": True,
        }
        for index, risk in enumerate(risks)
    ]

    return {
        "summary": {
            "title": "API Analyzed Contract",
            "documentType": "contract",
            "totalClauses": len(clauses),
            "riskScore": min(len(risks) * 25, 100) if risks else 20,
            "processingTime": MOCK_PROCESSING_TIME_MS,
            "confidence": MOCK_CONFIDENCE,
        },
        "clauses": clauses,
        "risks": risks,
        "recommendations": recommendations,
        "metadata": {
            "processingMethod": PROCESSING_METHOD,
            "modelUsed": "external_api",
            "processingTime": MOCK_PROCESSING_TIME_MS,
            "tokenUsage": 0,
            "confidence": MOCK_CONFIDENCE,
        },
    }


def generate_mock_health() -> Dict[str, Any]:
    """Synthetic GET /health body."""
    return {"status": "healthy", "service": "mock", "mode": "test"}
