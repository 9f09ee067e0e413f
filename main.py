import argparse
import json
import logging
import os
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import List, Optional

import anthropic
from dotenv import load_dotenv
from playwright.sync_api import Error as PlaywrightError
from rich.console import Console

from agent.browser_agent import BrowserAgent
from agent.dispatcher import ActionDispatcher
from agent.dom_sub_agent import DomSubAgent
from core.config import (ACT_TIMEOUT, ACTION_PROVIDERS, AGENT_MAX_STEPS,
                         AGENT_TIMEOUT, DEFAULT_ACTION_MODEL,
                         DEFAULT_ACTION_PROVIDER, DEFAULT_MAX_STEPS,
                         DEFAULT_MODEL, DEFAULT_SESSION_PATH,
                         DEFAULT_START_URL, NAVIGATE_TIMEOUT, setup_logging)
from core.credentials import console_ask, resolve_api_keys
from core.errors import BrowserAgentError
from core.models import AgentConfig
from core.prompts import SYSTEM_PROMPT
from infrastructure.automation import AutomationEngine
from infrastructure.browser_session import BrowserSession
from infrastructure.llm import create_completion_client
from infrastructure.resolvers import DirectResolver, VisualAgentResolver
from infrastructure.tools import ToolExecutor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LLM tool-calling browser agent")
    parser.add_argument("query", nargs="?", help="Natural language query; prompted for when omitted")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Anthropic model driving the trajectory")
    parser.add_argument("--action-model", default=DEFAULT_ACTION_MODEL, help="Model for act/observe/extract")
    parser.add_argument(
        "--action-provider",
        choices=ACTION_PROVIDERS,
        default=DEFAULT_ACTION_PROVIDER,
        help="Provider of the action model",
    )
    parser.add_argument("--cua-model", default=None, help="Anthropic vision model for the iframe fallback")
    parser.add_argument("--max-steps", type=int, default=DEFAULT_MAX_STEPS, help="Max trajectory steps")
    parser.add_argument("--headless", action="store_true", help="Run Playwright in headless mode")
    parser.add_argument("--session-path", default=DEFAULT_SESSION_PATH, help="Persistent user data dir")
    parser.add_argument("--start-url", default=DEFAULT_START_URL, help="Page opened before the first step")
    parser.add_argument("--schema", default=None, help="JSON schema file for structured output")
    parser.add_argument("--screenshot-dir", default=None, help="Also save screenshots here")
    parser.add_argument("--system-prompt", default=SYSTEM_PROMPT, help="System prompt for the trajectory model")
    parser.add_argument("--debug", action="store_true", help="Debug logging to log.txt")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> AgentConfig:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.max_steps < 1:
        parser.error("--max-steps must be at least 1")

    schema = None
    if args.schema:
        try:
            schema = json.loads(Path(args.schema).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            parser.error(f"cannot read schema {args.schema}: {exc}")

    return AgentConfig(
        query=args.query or "",
        trajectory_model=args.model,
        action_model=args.action_model,
        action_provider=args.action_provider,
        cua_model=args.cua_model,
        session_path=Path(args.session_path),
        headless=args.headless,
        max_steps=args.max_steps,
        start_url=args.start_url,
        system_prompt=args.system_prompt,
        schema=schema,
        screenshot_dir=Path(args.screenshot_dir) if args.screenshot_dir else None,
        action_timeout=ACT_TIMEOUT,
        navigate_timeout=NAVIGATE_TIMEOUT,
        agent_max_steps=AGENT_MAX_STEPS,
        agent_timeout=AGENT_TIMEOUT,
        debug=args.debug,
    )


def build_agent(config: AgentConfig, session: BrowserSession, console: Console) -> BrowserAgent:
    trajectory_client = anthropic.Anthropic(api_key=config.anthropic_api_key)
    action_llm = create_completion_client(config.action_provider, config.action_model, config)
    engine = AutomationEngine(session, action_llm)
    dom_agent = DomSubAgent(action_llm, timeout=config.agent_timeout)
    visual = VisualAgentResolver(
        session,
        trajectory_client,
        config.cua_model or config.trajectory_model,
        max_steps=config.agent_max_steps,
        request_timeout=config.agent_timeout,
    )
    executor = ToolExecutor(
        session,
        engine,
        DirectResolver(engine),
        visual,
        dom_agent=dom_agent,
        screenshot_dir=config.screenshot_dir,
        act_timeout=config.action_timeout,
        navigate_timeout=config.navigate_timeout,
    )
    dispatcher = ActionDispatcher(
        session, executor, echo=lambda line: console.print(line, markup=False, highlight=False)
    )
    return BrowserAgent(config, dispatcher, dom_agent, client=trajectory_client, console=console)


def run(config: AgentConfig, console: Console) -> int:
    console.print("🤘 Welcome to the [yellow]browser agent[/yellow]! 🤘")
    config = resolve_api_keys(config, os.environ, console_ask(console), console=console)

    if not config.query:
        config.query = console.input("[yellow]\n\nEnter your query: [/yellow]").strip()
    if not config.query:
        console.print("[red]No query given.[/red]")
        return 1

    with ExitStack() as stack:
        with console.status("Loading...", spinner="line"):
            session = stack.enter_context(BrowserSession(config.session_path, config.headless))
            try:
                session.page.goto(config.start_url, timeout=config.navigate_timeout * 1000)
            except PlaywrightError as exc:
                logger.warning("Could not open start page %s: %s", config.start_url, exc)
        agent = build_agent(config, session, console)
        agent.run(config.query)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    config = parse_args(argv)
    setup_logging(debug=config.debug)
    console = Console()
    try:
        return run(config, console)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    except (BrowserAgentError, PlaywrightError) as exc:
        logger.error("✗ Run failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
