import copy
import json
import logging
from typing import Dict, List, Optional

import anthropic
from rich.console import Console

from agent.dispatcher import ActionDispatcher
from agent.dom_sub_agent import DomSubAgent
from core import catalog
from core.errors import ActionFailed, TimedOut, TrajectoryError
from core.models import ActionResult, AgentConfig, TrajectoryResult
from core.prompts import build_task_prompt

MAX_TOKENS = 4096


def strip_screenshots(messages: List[Dict]) -> List[Dict]:
    """Copy of the transcript without image payloads in tool results."""
    cleaned = copy.deepcopy(messages)
    for msg in cleaned:
        content = msg.get("content")
        if msg.get("role") != "user" or not isinstance(content, list):
            continue
        for blk in content:
            if isinstance(blk, dict) and blk.get("type") == "tool_result" and isinstance(blk.get("content"), list):
                blk["content"] = [part for part in blk["content"] if part.get("type") != "image"]
    return cleaned


class BrowserAgent:
    def __init__(
        self,
        config: AgentConfig,
        dispatcher: ActionDispatcher,
        dom_agent: Optional[DomSubAgent] = None,
        client: Optional[anthropic.Anthropic] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.dom_agent = dom_agent
        self.client = client or anthropic.Anthropic(api_key=config.anthropic_api_key)
        self.console = console or Console()
        self.tools = catalog.anthropic_tools()

    def _serialize_blocks(self, blocks) -> List[Dict]:
        serialized: List[Dict] = []
        for block in blocks:
            if block.type == "text":
                serialized.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                serialized.append(
                    {
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.input,
                    }
                )
        return serialized

    def _tool_result_block(self, tool_use_id: str, result: ActionResult) -> Dict:
        block = {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": [part.to_anthropic() for part in result.content],
        }
        if not result.success:
            block["is_error"] = True
        return block

    def _log(self, msg: str) -> None:
        self.console.print(msg, markup=False, highlight=False)
        logging.info(msg)

    def _stream_step(self, messages: List[Dict]):
        """One model turn; text deltas go straight to the console."""
        try:
            with self.client.messages.stream(
                model=self.config.trajectory_model,
                max_tokens=MAX_TOKENS,
                system=self.config.system_prompt,
                messages=messages,
                tools=self.tools,
            ) as stream:
                for text in stream.text_stream:
                    self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)
                return stream.get_final_message()
        except anthropic.APIError as exc:
            raise TrajectoryError(f"Trajectory model request failed: {exc}") from exc

    def run(self, query: Optional[str] = None) -> TrajectoryResult:
        query = query or self.config.query
        messages: List[Dict] = [{"role": "user", "content": build_task_prompt(query, self.config.schema)}]
        logging.info("QUERY %s", query)
        final_text = ""
        steps = 0

        for steps in range(1, self.config.max_steps + 1):
            response = self._stream_step(messages)
            messages.append({"role": "assistant", "content": self._serialize_blocks(response.content)})
            text = "".join(blk.text for blk in response.content if blk.type == "text").strip()
            if text:
                final_text = text
                logging.info("ASSISTANT %s", text)

            tool_results = []
            for block in response.content:
                if block.type != "tool_use":
                    continue
                self.console.print()
                result = self.dispatcher.dispatch(block.name, block.input, call_id=block.id)
                tool_results.append(self._tool_result_block(block.id, result))

            if tool_results:
                messages.append({"role": "user", "content": tool_results})
                continue

            if response.stop_reason != "end_turn":
                logging.info("Stopped with stop_reason=%s", response.stop_reason)
            break
        else:
            self._log(f"\nMax steps ({self.config.max_steps}) reached without a final answer.")

        self._log("\n\n\n---FINISHED---")
        transcript = strip_screenshots(messages)
        structured = None
        if self.config.schema and self.dom_agent is not None:
            structured = self._structured_output(transcript)
        return TrajectoryResult(text=final_text, messages=transcript, steps=steps, structured_output=structured)

    def _structured_output(self, transcript: List[Dict]):
        self._log("Generating structured output...")
        try:
            structured = self.dom_agent.structure(transcript, self.config.schema)
        except (ActionFailed, TimedOut) as exc:
            self._log(f"⚠️  Structured output failed: {exc}")
            return None
        self._log("Structured output: " + json.dumps(structured, ensure_ascii=False, indent=2))
        return structured
