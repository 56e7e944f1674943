"""
External Classifier - LLM fallback for contacts the rule chain can't place.

Sends the contact's title, employer, industry and recent work history to
Claude and validates the JSON answer before accepting it. Every failure
(timeout, API error, malformed or out-of-schema answer) comes back as a
ClassifierOutcome carrying a ClassifierError; nothing is raised to the caller.
"""

import asyncio
import json
import re
from typing import Literal, Optional

import anthropic
from anthropic import AsyncAnthropic
from pydantic import BaseModel, Field, ValidationError

from config.logging import logger
from config.settings import settings
from intelligence.categorizer import (
    MAX_PROMPT_WORK_HISTORY,
    Categorization,
    ClassifierOutcome,
    ContactSnapshot,
)
from intelligence.models import Category, CategorySource

CATEGORIZATION_PROMPT = """Categorize this contact for a sales and fundraising tool.

CONTACT:
Name: {full_name}
Current Title: {title}
Current Company: {company}
Industry: {industry}

WORK HISTORY:
{work_history}

CATEGORIES:
1. vc - Works at a venture capital firm, PE firm, or makes institutional investments
2. angel - Individual investor, advisor, successful entrepreneur who invests personally
3. sales_prospect - Decision maker at a company that could buy trust & safety, fraud, identity or security software
4. irrelevant - Not relevant for sales or fundraising (individual contributor, unrelated industry, student, etc.)

Respond with JSON only:
{{
  "category": "<one of: vc, angel, sales_prospect, irrelevant>",
  "confidence": <0.0-1.0>,
  "reason": "<one sentence>"
}}"""

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


class ClassifierResponse(BaseModel):
    """Schema the classifier's answer must satisfy."""
    category: Literal["vc", "angel", "sales_prospect", "irrelevant"]
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


def format_work_history(contact: ContactSnapshot) -> str:
    lines = []
    for job in contact.work_history[:MAX_PROMPT_WORK_HISTORY]:
        current = " (current)" if job.is_current else ""
        lines.append(
            f"- {job.title or 'Unknown title'} at {job.company_name} "
            f"({job.industry or 'Unknown industry'}){current}"
        )
    return "\n".join(lines) or "No work history available"


def build_prompt(contact: ContactSnapshot) -> str:
    return CATEGORIZATION_PROMPT.format(
        full_name=contact.full_name,
        title=contact.title or "Unknown",
        company=contact.company or "Unknown",
        industry=contact.industry or "Unknown",
        work_history=format_work_history(contact),
    )


def parse_classifier_response(raw_text: str) -> ClassifierOutcome:
    """Parse and validate the model's answer."""
    text = (raw_text or "").strip()

    # Handle potential markdown code blocks
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()

    match = JSON_OBJECT_PATTERN.search(text)
    if not match:
        return ClassifierOutcome.failure("invalid_response", f"no JSON object in response: {text[:200]!r}")

    try:
        parsed = ClassifierResponse.model_validate(json.loads(match.group(0)))
    except json.JSONDecodeError as e:
        return ClassifierOutcome.failure("invalid_response", f"malformed JSON: {e}")
    except ValidationError as e:
        return ClassifierOutcome.failure("invalid_response", f"schema violation: {e.errors()[0]['msg']}")

    return ClassifierOutcome(
        categorization=Categorization(
            category=Category(parsed.category),
            confidence=parsed.confidence,
            reason=parsed.reason or "External classification",
            source=CategorySource.EXTERNAL_CLASSIFIER,
        )
    )


class AnthropicClassifier:
    """
    Claude-backed external classifier.

    The SDK retries transient failures with backoff; asyncio.wait_for caps
    the whole call including retries.

    Usage:
        classifier = AnthropicClassifier.from_settings()
        outcome = await classifier.classify(snapshot)
    """

    def __init__(
        self,
        client: Optional[AsyncAnthropic] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        max_tokens: int = 300,
    ):
        self.model = model or settings.CLASSIFIER_MODEL
        self.timeout_seconds = timeout_seconds or settings.CLASSIFIER_TIMEOUT_SECONDS
        self.max_retries = settings.CLASSIFIER_MAX_RETRIES if max_retries is None else max_retries
        self.max_tokens = max_tokens
        self.client = client or AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )

    @classmethod
    def from_settings(cls) -> Optional["AnthropicClassifier"]:
        """Build a classifier, or None when no API key is configured."""
        if not settings.ANTHROPIC_API_KEY:
            logger.warning("ANTHROPIC_API_KEY not set, external classifier disabled")
            return None
        return cls()

    @property
    def call_budget_seconds(self) -> float:
        return self.timeout_seconds * (self.max_retries + 1)

    async def classify(self, contact: ContactSnapshot) -> ClassifierOutcome:
        prompt = build_prompt(contact)
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self.call_budget_seconds,
            )
        except (asyncio.TimeoutError, anthropic.APITimeoutError) as e:
            logger.warning(f"Classifier timed out for {contact.full_name}")
            return ClassifierOutcome.failure("timeout", str(e) or "classifier call timed out")
        except anthropic.APIConnectionError as e:
            logger.warning(f"Classifier unreachable for {contact.full_name}: {e}")
            return ClassifierOutcome.failure("unavailable", str(e))
        except anthropic.APIError as e:
            logger.warning(f"Classifier API error for {contact.full_name}: {e}")
            return ClassifierOutcome.failure("api_error", str(e))

        text_blocks = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not text_blocks:
            return ClassifierOutcome.failure("invalid_response", "no text in classifier response")

        outcome = parse_classifier_response(text_blocks[0])
        if not outcome.ok:
            logger.warning(f"Rejected classifier answer for {contact.full_name}: {outcome.error}")
        return outcome
