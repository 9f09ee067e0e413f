import base64
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass
class AgentConfig:
    query: str
    trajectory_model: str
    action_model: str
    session_path: Path
    headless: bool
    max_steps: int
    start_url: str
    system_prompt: str
    action_provider: str = "openai"
    cua_model: Optional[str] = None
    schema: Optional[Dict] = None
    screenshot_dir: Optional[Path] = None
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    action_timeout: float = 10.0
    navigate_timeout: float = 10.0
    agent_max_steps: int = 2
    agent_timeout: float = 60.0
    debug: bool = False


class ToolCallState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class ContentBlock:
    type: str
    text: Optional[str] = None
    data: Optional[str] = None
    media_type: Optional[str] = None

    @classmethod
    def image(cls, raw: bytes, media_type: str = "image/png") -> "ContentBlock":
        return cls("image", data=base64.b64encode(raw).decode("ascii"), media_type=media_type)

    def to_anthropic(self) -> Dict:
        if self.type == "image":
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
            }
        return {"type": "text", "text": self.text or ""}


@dataclass(frozen=True)
class ActionResult:
    tool: str
    success: bool
    payload: Union[str, bytes]
    state: ToolCallState = ToolCallState.DONE
    error_type: Optional[str] = None
    data: Any = None
    content: Tuple[ContentBlock, ...] = ()

    @property
    def message(self) -> str:
        if isinstance(self.payload, bytes):
            return f"<{len(self.payload)} bytes>"
        return self.payload


@dataclass
class ToolCall:
    name: str
    params: Dict
    id: Optional[str] = None
    state: ToolCallState = ToolCallState.PENDING


@dataclass
class DistilledElement:
    id: int
    agent_id: str
    tag: str
    role: Optional[str]
    input_type: Optional[str]
    text: str
    placeholder: Optional[str]
    aria_label: Optional[str]
    href: Optional[str]
    location: str

    @property
    def selector(self) -> str:
        return f'[data-agent-id="{self.agent_id}"]'


@dataclass
class Observation:
    description: str
    selector: str
    method: str
    arguments: List[str] = field(default_factory=list)


@dataclass
class TrajectoryResult:
    text: str
    messages: List[Dict]
    steps: int
    structured_output: Optional[Any] = None
