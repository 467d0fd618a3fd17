"""Prompt assembly and chat-response parsing for grounded answers."""

from __future__ import annotations

import json
from typing import List, Sequence

from devforge.errors import MalformedResponse
from devforge.ollama import OllamaClient
from devforge.retrieval import ContextBlock

SYSTEM_PROMPT = " ".join([
    "You are DevForge, a local-first repo assistant.",
    "Answer using only the provided context. If unsure, say you don't know.",
    "Cite sources in the format [path:start-end].",
])

BLOCK_SEPARATOR = "\n\n----\n\n"


def format_context(blocks: Sequence[ContextBlock]) -> str:
    return BLOCK_SEPARATOR.join(f"# Source: {b.citation}\n{b.text}" for b in blocks)


def build_prompt(question: str, blocks: Sequence[ContextBlock]) -> str:
    return f"{SYSTEM_PROMPT}\n\n# Question\n{question}\n\n# Context\n{format_context(blocks)}\n\n# Answer"


def parse_chat_body(body: str) -> str:
    """Join message.content from a single JSON object or JSON lines, in order."""
    try:
        fragments = [json.loads(body)]
    except ValueError:
        fragments = []
        for line in body.splitlines():
            try:
                fragments.append(json.loads(line))
            except ValueError:
                continue
    if not fragments:
        raise MalformedResponse("chat response contained no JSON")

    parts: List[str] = []
    for data in fragments:
        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            parts.append(content)
    return "".join(parts)


def answer_question(client: OllamaClient, model: str, question: str, blocks: Sequence[ContextBlock],
                    max_tokens: int = 512) -> str:
    messages = [{"role": "user", "content": build_prompt(question, blocks)}]
    return parse_chat_body(client.chat(model, messages, num_predict=max_tokens)).strip()
