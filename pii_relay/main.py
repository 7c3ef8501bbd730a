"""
Main entry point — parse args, load config, build the agents, run the chat loop.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
import uuid

from .config.settings import Config, load_config
from .core.agent import Agent
from .core.delegation import AgentDirectory
from .core.detection import create_detector
from .core.errors import PIIRelayError
from .core.providers.base import ProviderFactory
from .core.structured_logger import setup_structured_logging
from .core.token_store import TokenStore
from .core.tokenizer import PIITokenizer
from .tools.delegate_tool import build_triage_agent

# Register providers
from .core.providers import openai_provider  # noqa: F401

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pii-relay",
        description="Tool-calling assistant that never sends raw PII to the model provider",
    )
    parser.add_argument("-c", "--config", help="Path to config YAML file", default=None)
    parser.add_argument("-m", "--model", help="Model / deployment name", default=None)
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    return parser.parse_args(argv)


def build_conversation(config: Config, provider=None, detector=None) -> tuple[Agent, AgentDirectory]:
    """Wire one conversation: a shared Token Store, worker agents and a triage agent."""
    provider = provider or ProviderFactory.create(config.raw)
    detector = detector or create_detector(config)
    store = TokenStore(conversation_id=str(uuid.uuid4()))
    tokenizer = PIITokenizer(
        detector,
        store,
        excluded_entities=config.get("detection.excluded_entities", None),
    )

    agent_kwargs = dict(
        deployment=config.get("llm.model", "gpt-4o"),
        max_iterations=config.get("agent.max_iterations", 25),
        max_delegation_depth=config.get("agent.max_delegation_depth", 8),
        on_status=print_status,
    )

    directory = AgentDirectory()
    for entry in config.get("agents", []) or []:
        directory.register(Agent(
            name=entry["name"],
            provider=provider,
            tokenizer=tokenizer,
            instructions=entry.get("instructions", ""),
            **agent_kwargs,
        ))

    triage = build_triage_agent(provider, tokenizer, directory, **agent_kwargs)
    logger.info(f"Conversation {store.conversation_id} agents={directory.names}")
    return triage, directory


def print_status(agent_name: str, text: str) -> None:
    print(f"{agent_name} > {text}")


async def chat_loop(triage: Agent, directory: AgentDirectory) -> None:
    workers = [name for name in directory.names if name != triage.name]
    print(f"Available assistants: {', '.join(workers)}")
    print("Type 'exit' to quit.")

    while True:
        try:
            prompt = await asyncio.to_thread(input, "> ")
        except EOFError:
            print()
            return
        prompt = prompt.strip()
        if not prompt:
            continue
        if prompt.lower() == "exit":
            print("Goodbye!")
            return

        try:
            answer = await triage.ask(prompt)
        except PIIRelayError as e:
            logger.warning("Turn failed", extra={"log_extra": e.to_dict()})
            print(f"Error: {e}", file=sys.stderr)
            continue
        except Exception as e:
            logger.exception("Unexpected error while processing request")
            print(f"Error processing request: {type(e).__name__}: {e}", file=sys.stderr)
            continue
        print(f"{triage.name} > {answer}")


def main(argv=None) -> None:
    args = parse_args(argv)

    if args.verbose >= 2:
        log_level = "DEBUG"
    elif args.verbose >= 1:
        log_level = "INFO"
    else:
        log_level = "WARNING"
    setup_structured_logging(level=log_level)

    try:
        config = load_config(args.config)
        if args.model:
            config.set("llm.model", args.model)
        triage, directory = build_conversation(config)
    except PIIRelayError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(chat_loop(triage, directory))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
