# llm_client.py
import json
import logging
from typing import Any, Dict, Optional

import httpx

from config import PERPLEXITY_BASE

log = logging.getLogger("llm_client")


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the first balanced {...} block found in free text, or return None."""
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            c = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
                continue
            if c == '"':
                in_string = True
            elif c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    try:
                        obj = json.loads(text[start:i + 1])
                    except ValueError:
                        break
                    return obj if isinstance(obj, dict) else None
        start = text.find("{", start + 1)
    return None


class TextGenerator:
    """Chat-completions client. Every failure resolves to None, never an exception."""

    def __init__(self, api_key: Optional[str], base_url: str = PERPLEXITY_BASE, model: str = "sonar",
                 timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def __aenter__(self) -> "TextGenerator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self._client.aclose()

    async def complete(self, system: str, prompt: str, max_tokens: int = 500,
                       temperature: float = 0.1) -> Optional[str]:
        if not self.available:
            return None
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        try:
            r = await self._client.post("/chat/completions", json=body)
        except httpx.HTTPError as e:
            log.warning("completion request failed: %r", e)
            return None
        if r.status_code != 200:
            log.warning("completion HTTP %s", r.status_code)
            return None
        try:
            content = r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            log.warning("completion payload malformed")
            return None
        return content.strip() if isinstance(content, str) else None

    async def complete_json(self, system: str, prompt: str, max_tokens: int = 500,
                            temperature: float = 0.1) -> Optional[Dict[str, Any]]:
        text = await self.complete(system, prompt, max_tokens=max_tokens, temperature=temperature)
        if text is None:
            return None
        data = extract_json_object(text)
        if data is None:
            log.warning("could not parse JSON from completion: %.80s", text)
        return data
