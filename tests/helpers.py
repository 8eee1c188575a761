"""Test doubles and helpers shared across test modules."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Union

import pytest

from src.llm.client import LLMClient, LLMResponse


class ScriptedLLMClient(LLMClient):
    """
    LLM client that replays scripted responses in order.

    Each entry is a string (returned as content) or an exception (raised).
    The last entry repeats once the script is exhausted.
    """

    def __init__(self, responses: List[Union[str, Exception]]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        self.calls.append(
            {
                "prompt": prompt,
                "system": system,
                "history": history or [],
                "json_mode": json_mode,
            }
        )
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return LLMResponse(content=response, model="scripted")


def reply(
    message: str = "Thanks!",
    should_advance: bool = False,
    data: Optional[Dict[str, Any]] = None,
    confidence: int = 90,
) -> str:
    """JSON body of a structured generation reply."""
    return json.dumps(
        {
            "message": message,
            "data": data or {},
            "shouldAdvance": should_advance,
            "confidence": confidence,
        }
    )


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(interval)
