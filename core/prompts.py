import json
from typing import Dict, Optional

SYSTEM_PROMPT = (
    "You are a helpful assistant that can browse the web. You are given a prompt and you may need "
    "to browse the web to find the answer. You may not need to browse the web at all; you may "
    "already know the answer. Do not ask follow up questions; I trust your judgement."
)


def build_task_prompt(query: str, schema: Optional[Dict] = None) -> str:
    lines = [
        "You are a helpful assistant that can browse the web.",
        "You are given the following prompt:",
        query,
    ]
    if schema:
        lines.append(
            "Answer the prompt and be sure to contain a detailed response that covers at least "
            f"the following requested data: {json.dumps(schema)}"
        )
    lines += [
        "You may need to browse the web to find the answer.",
        "You may not need to browse the web at all; you may already know the answer.",
        "Do not ask follow up questions; I trust your judgement.",
    ]
    return "\n".join(lines)


EXTRACT_SYSTEM = "You are a helpful assistant that can extract data from a web page."


def build_extract_prompt(instruction: str, content: str) -> str:
    return (
        f"You want to extract the following data from the page: {instruction}.\n"
        "Extract the data from the page. If there is insufficient information, make it very clear "
        "that you are unable to adequately extract the requested data.\n"
        "If multiple pieces of information are requested, extract as much as you can without "
        "assuming or making up information.\n"
        "The page content is as follows:\n"
        f"{content}"
    )


STRUCTURED_SYSTEM = (
    "You turn the transcript of a web browsing session into JSON. "
    "Reply with a single JSON value and nothing else."
)


def build_structured_prompt(transcript: str, schema: Dict) -> str:
    return (
        "You are given the following data of a web browsing session:\n"
        f"{transcript}\n"
        f"Extract the requested data as JSON matching this schema: {json.dumps(schema)}\n"
        "If there is insufficient information, make it very clear that you are unable to "
        "adequately extract the requested data.\n"
        "If multiple pieces of information are requested, extract as much as you can without "
        "assuming or making up information."
    )


ACT_SYSTEM = (
    "You ground one browser action on a list of interactive page elements. "
    "Reply with a single JSON object and nothing else."
)


def build_act_prompt(action: str, elements_json: str, variable_names) -> str:
    variables = ", ".join(f"%{name}%" for name in variable_names) or "none"
    return (
        f"Action to perform: {action}\n\n"
        f"Interactive elements (JSON):\n{elements_json}\n\n"
        "Reply with {\"element_id\": <id or null>, \"method\": <one of click, fill, press, select, "
        "scroll>, \"argument\": <text to fill, key to press, option to select, or percent of the "
        "page to scroll>}.\n"
        "Use element_id null only for scroll. If no element matches, reply {\"element_id\": null, "
        "\"method\": \"none\", \"argument\": \"\"}.\n"
        f"Available variables (keep the placeholder literally in argument): {variables}"
    )


OBSERVE_SYSTEM = (
    "You find page elements matching a description. Reply with a single JSON array and nothing else."
)


def build_observe_prompt(instruction: str, elements_json: str) -> str:
    return (
        f"Find the elements matching: {instruction}\n\n"
        f"Interactive elements (JSON):\n{elements_json}\n\n"
        "Reply with a JSON array of {\"element_id\": <id>, \"description\": <short description>, "
        "\"method\": <click, fill, press or select>, \"arguments\": [<strings>]}. "
        "Reply [] when nothing matches."
    )


def build_cua_instructions(url: str) -> str:
    return (
        "You are a helpful assistant that can use a web browser.\n"
        f"You are currently on the following page: {url}.\n"
        "Do not ask follow up questions, the user will trust your judgement.\n"
        "You see a screenshot of the viewport. Perform the requested action with the "
        "computer_action tool using pixel coordinates from the screenshot. "
        "Use type \"done\" once the action is complete."
    )
