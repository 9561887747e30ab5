"""
Notation — soulsmith
Human-facing labels for axioms, produced by an external text-generation
backend (any OpenAI-compatible /v1/chat/completions server).

Replies come back as a tagged GenerationResult instead of raw text, so the
caller never has to sniff strings to tell a good answer from a broken one:
  OK          usable text
  MALFORMED   the server answered but not in the requested shape
  UNAVAILABLE the server could not be reached
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import httpx

from compressor import Axiom

logger = logging.getLogger(__name__)

# ── Prompts ──────────────────────────────────────────────────────────────────

NOTATION_PROMPT = """Express this principle in compact notation with:
1. An emoji indicator that captures the essence (e.g. 🎯 for focus, 💎 for truth, 🛡️ for safety)
2. A single CJK character anchor (e.g. 誠 for honesty, 安 for safety, 明 for clarity)
3. Mathematical notation if there's a relationship (e.g. "A > B" for priority, "¬X" for negation)

Principle: "{text}"

If there is no clear mathematical relationship, use a brief 2-3 word summary instead.

Respond with JSON:
{{"notation": "<emoji> <CJK>: <math or brief summary>"}}"""

CORRECTIVE_PROMPT = """Your previous reply could not be used: {problem}.
Respond again with ONLY a JSON object of the form {{"notation": "<emoji> <CJK>: <summary>"}}."""

MAX_NOTATION_LEN = 100


class GenerationUnavailable(Exception):
    """The text-generation backend is unreachable."""


class GenerationStatus(Enum):
    OK = "ok"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"


@dataclass
class GenerationResult:
    status: GenerationStatus
    text: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is GenerationStatus.OK


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> GenerationResult: ...


# ── Client ────────────────────────────────────────────────────────────────────

class LLMClient:
    """
    Synchronous chat-completions client. Malformed replies are retried with
    a corrective follow-up message up to `max_retries` times; transport
    failures are reported as UNAVAILABLE straight away.
    """

    def __init__(
        self,
        llm_url: str = "http://localhost:8080",
        model: str = "qwen3-14b",
        result_key: str = "notation",
        max_retries: int = 2,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.llm_url = llm_url.rstrip("/")
        self.model = model
        self.result_key = result_key
        self.max_retries = max_retries
        self.timeout = timeout
        self._client = client

    def _chat(self, client: httpx.Client, messages: list[dict]) -> str:
        response = client.post(
            f"{self.llm_url}/v1/chat/completions",
            json={
                "model": self.model,
                "messages": messages,
                "max_tokens": 100,
                "temperature": 0.1,
                "response_format": {"type": "json_object"},
            },
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"] or ""

    def _parse(self, content: str) -> tuple[Optional[str], str]:
        """Returns (text, problem). Exactly one of the two is meaningful."""
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            return None, "reply was not valid JSON"
        if not isinstance(parsed, dict):
            return None, "reply was not a JSON object"
        value = parsed.get(self.result_key)
        if not isinstance(value, str) or not value.strip():
            return None, f'missing or empty "{self.result_key}" field'
        return value.strip(), ""

    def generate(self, prompt: str) -> GenerationResult:
        messages = [{"role": "user", "content": prompt + " /no_think"}]
        client = self._client or httpx.Client(timeout=self.timeout)
        problem = ""
        try:
            for attempt in range(self.max_retries + 1):
                try:
                    content = self._chat(client, messages)
                except httpx.HTTPError as e:
                    logger.warning("Generation backend error: %s", e)
                    return GenerationResult(GenerationStatus.UNAVAILABLE, error=str(e))
                except (KeyError, IndexError, TypeError, ValueError) as e:
                    content, problem = "", f"unexpected response shape ({e})"
                else:
                    text, problem = self._parse(content)
                    if text is not None:
                        return GenerationResult(GenerationStatus.OK, text=text)

                logger.debug("Generation attempt %d malformed: %s", attempt + 1, problem)
                messages = messages + [
                    {"role": "assistant", "content": content},
                    {"role": "user", "content": CORRECTIVE_PROMPT.format(problem=problem)},
                ]
        finally:
            if self._client is None:
                client.close()

        return GenerationResult(GenerationStatus.MALFORMED, error=problem)


# ── Notation ──────────────────────────────────────────────────────────────────

def fallback_notation(text: str) -> str:
    return f"📌 理: {text[:30]}"


def generate_notated_form(generator: TextGenerator, text: str) -> str:
    """
    Notated label for one principle text. A malformed reply degrades to the
    fallback label; an unreachable backend aborts with GenerationUnavailable.
    """
    result = generator.generate(NOTATION_PROMPT.format(text=text))
    if result.status is GenerationStatus.UNAVAILABLE:
        raise GenerationUnavailable(result.error or "text generation unavailable")
    if result.status is GenerationStatus.MALFORMED:
        logger.warning("Notation malformed (%s); using fallback", result.error)
        return fallback_notation(text)
    return result.text[:MAX_NOTATION_LEN]


def annotate_axioms(generator: TextGenerator, axioms: list[Axiom]) -> int:
    """Fill axiom.notated in place. Returns how many used the fallback label."""
    fallbacks = 0
    for axiom in axioms:
        axiom.notated = generate_notated_form(generator, axiom.text)
        if axiom.notated == fallback_notation(axiom.text):
            fallbacks += 1
    return fallbacks
