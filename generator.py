# backend/generator.py

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import requests

from errors import UpstreamTimeout, UpstreamUnavailable
from models import new_id, utcnow

logger = logging.getLogger(__name__)

History = Sequence[Dict[str, str]]


@dataclass
class GeneratedReply:
    id: str
    message: str
    timestamp: datetime
    model: str


CANNED_RESPONSES = [
    "That's a great question! Let me think about it for a moment.",
    "Thanks for sharing that. Here's how I see it: it depends on a few details, "
    "so tell me more about what you're trying to achieve.",
    "Interesting! There are several ways to approach this. A good first step is "
    "to break the problem into smaller pieces.",
    "I understand. Could you give me a bit more context so I can help better?",
    "Good point. In short, the answer is usually to start simple and iterate.",
    "I'm a placeholder assistant for now, but I'm happy to keep the conversation going!",
]

CONTEXT_PREFIXES = [
    "Building on what we discussed, ",
    "Following up on our conversation, ",
    "Keeping your earlier messages in mind, ",
]


class StubResponseGenerator:
    """Canned responder with a randomized delay.

    Stands in for a real model. It never fails.
    """

    def __init__(
        self,
        model: str = "stub-echo-1",
        min_delay: float = 0.5,
        max_delay: float = 2.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model = model
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self.rng = rng or random.Random()
        self.sleep = sleep

    def _random_delay(self) -> float:
        return self.rng.uniform(self.min_delay, self.max_delay)

    def _add_context(self, reply: str, history: History) -> str:
        # The newest entry is the message being answered
        if len(history) <= 1:
            return reply
        prefix = self.rng.choice(CONTEXT_PREFIXES)
        if reply.startswith(("I ", "I'")):
            return prefix + reply
        return prefix + reply[0].lower() + reply[1:]

    def generate(self, message: str, history: History) -> GeneratedReply:
        delay = self._random_delay()
        if delay > 0:
            self.sleep(delay)
        reply = self._add_context(self.rng.choice(CANNED_RESPONSES), history)
        return GeneratedReply(id=new_id(), message=reply, timestamp=utcnow(), model=self.model)


class HTTPResponseGenerator:
    """Calls an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "llama3-70b-8192",
        temperature: float = 0.5,
        timeout: float = 30.0,
    ):
        if not api_key:
            raise RuntimeError("LLM_API_KEY must be set when GENERATOR_BACKEND=http")
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        }
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    def generate(self, message: str, history: History) -> GeneratedReply:
        messages: List[Dict[str, str]] = [
            {"role": m["role"], "content": m["content"]} for m in history
        ]
        # History normally ends with the message being answered
        if not messages or messages[-1] != {"role": "user", "content": message}:
            messages.append({"role": "user", "content": message})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature
        }
        try:
            r = requests.post(self.url, headers=self.headers, json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.exceptions.Timeout:
            raise UpstreamTimeout("Response generator timed out")
        except requests.exceptions.HTTPError as e:
            detail = r.text or str(e)
            raise UpstreamUnavailable("Response generator error", details=detail)
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable("Response generator unavailable", details=str(e))

        try:
            data = r.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise UpstreamUnavailable(
                "Response generator returned an unexpected payload", details=r.text or None
            )
        return GeneratedReply(
            id=data.get("id") or new_id(),
            message=text,
            timestamp=utcnow(),
            model=data.get("model") or self.model,
        )


def build_generator(settings):
    if settings.generator_backend == "http":
        return HTTPResponseGenerator(
            settings.llm_api_key,
            base_url=settings.llm_api_url,
            model=settings.generator_model,
            timeout=settings.generator_timeout_seconds,
        )
    if settings.generator_backend != "stub":
        raise RuntimeError(f"Unknown GENERATOR_BACKEND: {settings.generator_backend}")
    return StubResponseGenerator(
        model=settings.generator_model,
        min_delay=settings.generator_min_delay_seconds,
        max_delay=settings.generator_max_delay_seconds,
    )
