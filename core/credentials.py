"""Credential lookup for the trajectory and action models.

Keys come from the config, then the environment mapping, then an interactive
prompt. They are kept on the returned ``AgentConfig`` only.
"""

import dataclasses
from typing import Callable, Mapping, Optional

from rich.console import Console

from core.errors import MissingCredentials
from core.models import AgentConfig

AskFn = Callable[[str], str]

_KEYS = {
    "anthropic_api_key": (
        "ANTHROPIC_API_KEY",
        "No Anthropic API key found. ",
        "We use Anthropic Claude to power the agent's reasoning and tool choice.\n\n",
        "Please enter your Anthropic API key: ",
    ),
    "openai_api_key": (
        "OPENAI_API_KEY",
        "No OpenAI API key found. ",
        "We use OpenAI to power the agent's action execution (act/extract/observe).\n\n",
        "Please enter your OpenAI API key: ",
    ),
}


def required_keys(config: AgentConfig):
    keys = ["anthropic_api_key"]
    if config.action_provider == "openai":
        keys.append("openai_api_key")
    return keys


def console_ask(console: Optional[Console] = None) -> AskFn:
    console = console or Console()

    def ask(prompt: str) -> str:
        return console.input(prompt, password=True)

    return ask


def resolve_api_keys(
    config: AgentConfig,
    env: Mapping[str, str],
    ask: AskFn,
    console: Optional[Console] = None,
) -> AgentConfig:
    updates = {}
    prompted = False
    for field_name in required_keys(config):
        if getattr(config, field_name):
            continue
        env_name, missing, purpose, question = _KEYS[field_name]
        value = env.get(env_name)
        if not value:
            value = ask(f"[yellow]{missing}[/yellow][grey50]{purpose}[/grey50][cyan]{question}[/cyan]").strip()
            prompted = True
        if not value:
            raise MissingCredentials(f"{env_name} is not set.")
        updates[field_name] = value

    if prompted and console is not None:
        console.print("\nAPI keys have been set for this session.")
        console.print("To persist these keys, add them to your .env file.")
    return dataclasses.replace(config, **updates)
