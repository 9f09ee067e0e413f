"""Fixed catalog of browser tools exposed to the trajectory model.

Each tool pairs a pydantic parameter model (validated strictly, serialized to
the model as JSON schema) with the name of the ``ToolExecutor`` method that
runs it and a formatter producing the tool-result content blocks.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.errors import InvalidParameters
from core.models import ActionResult, ContentBlock


class ToolParams(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True)


class NoParams(ToolParams):
    pass


class WaitParams(ToolParams):
    seconds: float = Field(gt=0, allow_inf_nan=False, description="The number of seconds to wait")


class NavigateParams(ToolParams):
    url: str = Field(min_length=1, description="The URL to navigate to")


class ActParams(ToolParams):
    action: str = Field(
        min_length=1,
        description=(
            "The action to perform. Should be as atomic and specific as possible, i.e. 'Click the sign in "
            "button' or 'Type 'hello' into the search input'. AVOID actions that are more than one step, "
            "i.e. 'Order me pizza' or 'Send an email to Paul asking him to call me'. The instruction should "
            "have a strong correlation to the text on the page. If unsure, use observe before using act."
        ),
    )
    variables: Optional[Dict[str, Any]] = Field(
        default=None,
        description=(
            "Variables used in the action template. ONLY use variables if you're dealing with sensitive data "
            "or dynamic content. When using variables, you MUST reference the key in the action as %key%. "
            'For example: {"action": "Fill in the password with %password%", "variables": {"password": "123456"}}'
        ),
    )
    has_iframe: bool = Field(
        alias="hasIframe",
        description="Whether the page contains an iframe. Use the detect_iframe tool to check.",
    )


class ExtractParams(ToolParams):
    search_instruction: Optional[str] = Field(
        default=None,
        alias="searchInstruction",
        description=(
            "If you want to extract specific data from the page, describe what you want to extract here in a "
            "sentence or two. Otherwise, leave blank."
        ),
    )


class ObserveParams(ToolParams):
    instruction: str = Field(
        min_length=1,
        description=(
            "Instruction for observation (e.g., 'find the login button'). This instruction must be extremely "
            "specific."
        ),
    )


Formatter = Callable[[ActionResult], List[ContentBlock]]


def text_content(result: ActionResult) -> List[ContentBlock]:
    return [ContentBlock("text", text=result.message)]


def extract_content(result: ActionResult) -> List[ContentBlock]:
    if not result.success:
        return text_content(result)
    return [ContentBlock("text", text=f"Extracted content:\n{result.payload}")]


def observe_content(result: ActionResult) -> List[ContentBlock]:
    if not result.success:
        return text_content(result)
    return [ContentBlock("text", text=f"Observations: {result.payload}")]


def image_content(result: ActionResult) -> List[ContentBlock]:
    if not result.success or not isinstance(result.payload, bytes):
        return text_content(result)
    return [ContentBlock.image(result.payload)]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    params: Type[ToolParams]
    handler: str
    formatter: Formatter = text_content

    def input_schema(self) -> Dict:
        schema = self.params.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def to_anthropic(self) -> Dict:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema()}


TOOL_CATALOG: Tuple[ToolSpec, ...] = (
    ToolSpec(
        name="close",
        description="End the browser session",
        params=NoParams,
        handler="close",
    ),
    ToolSpec(
        name="wait",
        description=(
            "Wait for a specific amount of time. Useful when you need to wait for a page to load or for an "
            "element to be visible."
        ),
        params=WaitParams,
        handler="wait",
    ),
    ToolSpec(
        name="back",
        description="Go back to the previous page",
        params=NoParams,
        handler="back",
    ),
    ToolSpec(
        name="navigate",
        description=(
            "Navigate to a URL in the browser. Only use this tool with URLs you're confident will work and stay "
            "up to date. Otherwise use https://google.com as the starting point"
        ),
        params=NavigateParams,
        handler="navigate",
    ),
    ToolSpec(
        name="detect_iframe",
        description="Check if the page contains an iframe that act cannot reach directly",
        params=NoParams,
        handler="detect_iframe",
    ),
    ToolSpec(
        name="scroll",
        description="Scroll one viewport height down",
        params=NoParams,
        handler="scroll",
    ),
    ToolSpec(
        name="act",
        description=(
            "Performs an action on a web page element. Act actions should be as atomic and specific as possible, "
            "i.e. \"Click the sign in button\" or \"Type 'hello' into the search input\". When deciding to scroll, "
            "include a percentage of the page to scroll. For example, \"Scroll 50% of the page\" or \"Scroll to "
            "the bottom of the page\". AVOID actions that are more than one step, i.e. \"Order me pizza\" or "
            "\"Send an email to Paul asking him to call me\"."
        ),
        params=ActParams,
        handler="act",
    ),
    ToolSpec(
        name="extract",
        description="Extracts text from the current page.",
        params=ExtractParams,
        handler="extract",
        formatter=extract_content,
    ),
    ToolSpec(
        name="observe",
        description=(
            "Observes elements on the web page. Use this tool to observe elements that you can later use in an "
            "action. Use observe instead of extract when dealing with actionable (interactable) elements rather "
            "than text. More often than not, you'll want to use extract instead of observe when dealing with "
            "scraping or extracting structured text."
        ),
        params=ObserveParams,
        handler="observe",
        formatter=observe_content,
    ),
    ToolSpec(
        name="screenshot",
        description=(
            "Takes a screenshot of the current page. Use this tool to learn where you are on the page when "
            "controlling the browser. Only use this tool when the other tools are not sufficient to get the "
            "information you need."
        ),
        params=NoParams,
        handler="screenshot",
        formatter=image_content,
    ),
)

_BY_NAME: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_CATALOG}


def get_tool(name: str) -> ToolSpec:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise InvalidParameters(name, f"Unknown tool '{name}'") from None


def validate(name: str, arguments: Optional[Dict]) -> ToolParams:
    spec = get_tool(name)
    if arguments is not None and not isinstance(arguments, dict):
        raise InvalidParameters(name, "arguments must be an object")
    try:
        return spec.params.model_validate(arguments or {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidParameters(name, details) from exc


def anthropic_tools() -> List[Dict]:
    return [spec.to_anthropic() for spec in TOOL_CATALOG]
