import json
import logging
from typing import Any, Dict, List, Optional

from core.prompts import (EXTRACT_SYSTEM, STRUCTURED_SYSTEM,
                          build_extract_prompt, build_structured_prompt)
from infrastructure.llm import CompletionClient, parse_json_reply

logger = logging.getLogger(__name__)


class DomSubAgent:
    """Action-model sub-agent that reads page text and session transcripts."""

    def __init__(self, llm: CompletionClient, timeout: Optional[float] = None) -> None:
        self.llm = llm
        self.timeout = timeout

    def answer(self, instruction: str, lines: List[str]) -> str:
        """
        instruction: what to pull out of the page, in plain language.
        lines: page text already passed through ``clean_page_text``.
        """
        text = self.llm.complete(
            EXTRACT_SYSTEM,
            build_extract_prompt(instruction, "\n".join(lines)),
            timeout=self.timeout,
            max_tokens=2048,
        )
        logger.info("[EXTRACT] Content: %s", text)
        return text

    def structure(self, transcript: List[Dict], schema: Dict) -> Any:
        payload = json.dumps(transcript, ensure_ascii=False, default=str)
        reply = self.llm.complete(
            STRUCTURED_SYSTEM,
            build_structured_prompt(payload, schema),
            timeout=self.timeout,
            max_tokens=4096,
        )
        return parse_json_reply(reply)
