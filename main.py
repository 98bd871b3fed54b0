"""Genesis - interactive console.

Invoke operations by name with JSON parameters for one subject:

    remember {"content": "Prefers async communication", "nodeType": "insight", "tags": ["comms"]}
    recall {"query": "communication style"}
    status
"""

import asyncio
import json
import os

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from src.genesis.config import load_config
from src.genesis.log import configure_logging
from src.genesis.memory import MemoryManager
from src.genesis.protocol import OperationRegistry, create_default_registry
from src.genesis.subconscious import SessionEvent, SubconsciousProcessor


console = Console()


def print_welcome(manager: MemoryManager, registry: OperationRegistry, subject_id: str):
    """Print welcome message."""
    info = manager.embedding.get_provider_info()

    console.print(Panel.fit(
        "[bold blue]Genesis[/bold blue] - Semantic Memory Graph\n"
        f"Subject: {subject_id}\n"
        f"Storage: {type(manager.backend).__name__}\n"
        f"Embedding: {info['model']} ({info['dimension']}d)",
        title="Welcome"
    ))
    console.print(f"[dim]Operations: {', '.join(registry.list_operations())}[/dim]")
    console.print(
        "\n[dim]Usage: <operation> [json]. Commands: 'ops' for schemas, "
        "'subject <id>' to switch, 'session' to run the subconscious, 'quit' to exit[/dim]\n"
    )


def print_operations(registry: OperationRegistry):
    table = Table(title="Operations")
    table.add_column("Name", style="cyan")
    table.add_column("Required")
    table.add_column("Description")
    for definition in registry.get_definitions():
        fn = definition["function"]
        required = ", ".join(fn["parameters"].get("required", [])) or "-"
        table.add_row(fn["name"], required, fn["description"].splitlines()[0])
    console.print(table)


def print_json(data):
    console.print(Syntax(json.dumps(data, indent=2, default=str), "json", theme="ansi_dark"))


async def run_session(processor: SubconsciousProcessor, subject_id: str):
    """Collect a session event and hand it to the subconscious processor."""
    summary = Prompt.ask("[bold]Session summary[/bold]")
    tags = [t.strip() for t in Prompt.ask("Tags (comma separated)", default="").split(",") if t.strip()]
    decisions = []
    while True:
        decision = Prompt.ask("Decision (empty to finish)", default="")
        if not decision.strip():
            break
        decisions.append(decision.strip())

    run = await processor.process(subject_id, SessionEvent(summary, tags, decisions, actor="console"))
    print_json(run.to_dict())


async def run_interactive(manager: MemoryManager, registry: OperationRegistry, processor: SubconsciousProcessor, subject_id: str):
    """Run interactive session."""
    while True:
        try:
            user_input = Prompt.ask(f"[bold green]{subject_id}[/bold green]")

            if not user_input.strip():
                continue

            name, _, raw = user_input.strip().partition(" ")
            cmd = name.lower()

            if cmd in ("quit", "exit"):
                console.print("[dim]Goodbye![/dim]")
                break

            if cmd == "ops":
                print_operations(registry)
                continue

            if cmd == "subject":
                if raw.strip():
                    subject_id = raw.strip()
                console.print(f"[dim]Subject: {subject_id}[/dim]")
                continue

            if cmd == "session":
                await run_session(processor, subject_id)
                continue

            try:
                params = json.loads(raw) if raw.strip() else {}
            except json.JSONDecodeError as e:
                console.print(f"[red]Invalid JSON: {e}[/red]")
                continue

            result = await registry.execute(subject_id, cmd, params)
            if result.success:
                print_json(result.output)
            else:
                console.print(f"[red]{result.to_message()}[/red]")
                if result.error.get("details"):
                    print_json(result.error["details"])

        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted. Type 'quit' to exit.[/dim]")


async def main():
    """Main entry point."""
    config = load_config()
    configure_logging(config.log_level)

    manager = MemoryManager(config.memory)
    await manager.initialize()
    registry = create_default_registry(manager)
    processor = SubconsciousProcessor(registry, config.subconscious)

    subject_id = os.getenv("SUBJECT_ID", "default")
    try:
        print_welcome(manager, registry, subject_id)
        await run_interactive(manager, registry, processor, subject_id)
    finally:
        await manager.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
