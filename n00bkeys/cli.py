"""
n00bkeys CLI

Command-line interface for asking questions with environment context and
managing conversation history and settings.

Usage:
    n00bkeys ask "how do I undo the last commit?"   # Single question
    n00bkeys ask --new "..."                        # Single question, fresh conversation
    n00bkeys chat                                   # Interactive REPL mode
    n00bkeys history list                           # List saved conversations
    n00bkeys history show 1                         # Show a conversation
    n00bkeys history delete 1                       # Delete a conversation
    n00bkeys history clear                          # Delete all conversations
    n00bkeys config show                            # Show resolved settings
    n00bkeys config set preprompt "I use tmux"      # Write to the selected scope
    n00bkeys config scope project                   # Switch the selected scope
"""

import logging
import sys
from typing import Any, NoReturn

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from n00bkeys.config import get_settings
from n00bkeys.conversations import (
    ContextWindowBuilder,
    ConversationService,
    ConversationStore,
)
from n00bkeys.errors import AbsentValueError, StateError
from n00bkeys.llm import create_query_service
from n00bkeys.models import SCOPES, ConfigDocument
from n00bkeys.pipeline import ChatSession
from n00bkeys.prompt import PromptBuilder
from n00bkeys.settings_resolver import SETTING_SOURCES, ConfigResolver
from n00bkeys.settings_store import ConfigStore

console = Console()

SECRET_KEYS = {"api_key"}
EXIT_WORDS = {"exit", "quit", "bye", "q", ":q"}


def configure_cli_logging(debug: bool = False) -> None:
    if debug:
        get_settings().logging.configure("DEBUG")
        return
    for logger_name in ("n00bkeys", "httpx", "openai"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


# ============================================================================
# CLI State Management
# ============================================================================


class CLIState:
    """Lazily build the services one CLI invocation needs."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Forget built services (useful when HOME or settings change in tests)."""
        self._config_store: ConfigStore | None = None
        self._resolver: ConfigResolver | None = None
        self._conversations: ConversationService | None = None

    @property
    def config_store(self) -> ConfigStore:
        if self._config_store is None:
            self._config_store = ConfigStore()
        return self._config_store

    @property
    def resolver(self) -> ConfigResolver:
        if self._resolver is None:
            self._resolver = ConfigResolver(self.config_store)
        return self._resolver

    @property
    def conversations(self) -> ConversationService:
        if self._conversations is None:
            settings = get_settings()
            self._conversations = ConversationService(
                ConversationStore(settings.storage.history_path),
                max_conversations=settings.history.max_items,
                history_enabled=settings.history.enabled,
                restore_mode=settings.history.restore_conversation,
                last_conversation_path=settings.storage.last_conversation_path,
            )
        return self._conversations

    def create_session(self) -> ChatSession:
        """
        Build a chat session over the active conversation.

        Raises:
            AbsentValueError: If no API key is configured
        """
        settings = get_settings()
        return ChatSession(
            conversations=self.conversations,
            prompts=PromptBuilder(self.resolver, settings),
            query_service=create_query_service(self.resolver, settings),
            window=ContextWindowBuilder(settings.history.max_conversation_turns),
        )


state = CLIState()


# ============================================================================
# Helper Functions
# ============================================================================


def _fail(error: StateError) -> NoReturn:
    console.print(f"[red]Error: {error.message}[/red]")
    if isinstance(error, AbsentValueError) and error.key == "api_key":
        console.print(
            "[yellow]Set OPENAI_API_KEY or run: n00bkeys config set api_key <key>[/yellow]"
        )
    sys.exit(1)


def _mask(key: str, value: Any) -> str:
    text = str(value)
    if key not in SECRET_KEYS:
        return text
    if len(text) <= 8:
        return "****"
    return f"{text[:3]}...{text[-4:]}"


def _should_exit_chat(query: str) -> bool:
    return query.strip().lower() in EXIT_WORDS


def _open_session(new_conversation: bool, resume: int | None) -> ChatSession:
    try:
        session = state.create_session()
        if new_conversation:
            session.conversations.start_new()
        elif resume is not None:
            session.conversations.restore(resume)
        else:
            session.conversations.restore_last()
    except StateError as e:
        _fail(e)
    return session


def _submit(session: ChatSession, question: str) -> bool:
    try:
        with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
            result = session.submit(question)
    except StateError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        return False

    answer = result.conversation.messages[-1].content
    console.print(Panel(Markdown(answer), title="[bold green]Answer[/bold green]"))
    if result.error is not None:
        console.print(f"[yellow]Warning: conversation not saved ({result.error.message})[/yellow]")
    return True


def _debug_enabled() -> bool:
    try:
        return bool(state.resolver.get_current("debug"))
    except StateError:
        return False


# ============================================================================
# CLI Commands
# ============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="n00bkeys")
@click.option("--debug", is_flag=True, help="Show debug logging.")
def cli(debug: bool):
    """n00bkeys - Ask for commands and keybindings with your setup as context."""
    state.reset()
    configure_cli_logging(debug or _debug_enabled())


@cli.command()
@click.argument("question")
@click.option("--new", "new_conversation", is_flag=True, help="Start a new conversation.")
@click.option("--resume", type=int, default=None, help="Continue conversation N from `history list`.")
def ask(question: str, new_conversation: bool, resume: int | None):
    """Ask a single question and exit."""
    session = _open_session(new_conversation, resume)
    if not _submit(session, question):
        sys.exit(1)


@cli.command()
@click.option("--new", "new_conversation", is_flag=True, help="Start a new conversation.")
@click.option("--resume", type=int, default=None, help="Continue conversation N from `history list`.")
def chat(new_conversation: bool, resume: int | None):
    """Interactive REPL mode for conversations."""
    session = _open_session(new_conversation, resume)
    console.print(
        Panel.fit(
            "[bold green]n00bkeys Interactive Mode[/bold green]\n"
            "Ask about commands and keybindings. Type '/new' to start over, "
            "'exit' or 'quit' to leave.",
            border_style="green",
        )
    )

    while True:
        try:
            query = console.input("[bold cyan]You:[/bold cyan] ")
        except (EOFError, KeyboardInterrupt):
            console.print("\n[yellow]Goodbye![/yellow]")
            break

        if not query.strip():
            continue
        if _should_exit_chat(query):
            console.print("[yellow]Goodbye![/yellow]")
            break
        if query.strip() == "/new":
            session.conversations.start_new()
            console.print("[green]Started a new conversation[/green]")
            continue

        _submit(session, query)


# ============================================================================
# History Commands
# ============================================================================


@cli.group(name="history")
def history():
    """Manage saved conversations."""
    pass


@history.command(name="list")
def list_history():
    """List saved conversations, newest first."""
    try:
        conversations = state.conversations.list()
    except StateError as e:
        _fail(e)

    if not conversations:
        console.print("[yellow]No saved conversations.[/yellow]")
        return

    table = Table(title="Conversations", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Summary")
    table.add_column("Turns", justify="right")
    table.add_column("Updated")
    for index, conversation in enumerate(conversations, start=1):
        table.add_row(
            str(index),
            conversation.summary,
            str(conversation.turn_count),
            conversation.updated_at,
        )
    console.print(table)


@history.command(name="show")
@click.argument("index", type=int)
def show_history(index: int):
    """Show conversation INDEX from `history list`."""
    try:
        conversation = state.conversations.get(index)
    except StateError as e:
        _fail(e)

    console.print(f"[bold]{conversation.summary}[/bold] [dim]({conversation.id})[/dim]")
    for message in conversation.messages:
        if message.role == "user":
            console.print(f"\n[bold cyan]You:[/bold cyan] {message.content}")
        else:
            console.print(Panel(Markdown(message.content), title="[bold green]Answer[/bold green]"))


@history.command(name="delete")
@click.argument("index", type=int)
@click.option("--yes", is_flag=True, help="Skip confirmation prompt.")
def delete_history(index: int, yes: bool):
    """Delete conversation INDEX from `history list`."""
    try:
        conversation = state.conversations.get(index)
        if not yes and not click.confirm(f"Delete '{conversation.summary}'?", default=False):
            console.print("[yellow]Delete cancelled.[/yellow]")
            return
        state.conversations.delete(index)
    except StateError as e:
        _fail(e)
    console.print(f"[green]Deleted conversation {index}: {conversation.summary}[/green]")


@history.command(name="clear")
@click.option("--yes", is_flag=True, help="Skip confirmation prompt.")
def clear_history(yes: bool):
    """Delete every saved conversation."""
    if not yes and not click.confirm("Delete all saved conversations?", default=False):
        console.print("[yellow]Clear cancelled.[/yellow]")
        return
    try:
        state.conversations.clear_all()
    except StateError as e:
        _fail(e)
    console.print("[green]Conversation history cleared[/green]")


# ============================================================================
# Config Commands
# ============================================================================


@cli.group(name="config")
def config():
    """Show and edit settings."""
    pass


@config.command(name="show")
def show_config():
    """Show every setting with the source it resolves from."""
    resolver = state.resolver
    table = Table(title="Settings", show_header=True, header_style="bold cyan")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Source")
    for key in SETTING_SOURCES:
        resolved = resolver.resolve(key)
        if resolved is None:
            table.add_row(key, "[dim]not set[/dim]", "")
        else:
            table.add_row(key, _mask(key, resolved.value), resolved.source)
    console.print(table)

    store = state.config_store
    console.print(f"Selected scope: [bold]{resolver.get_selected_scope()}[/bold]")
    console.print(f"Global settings: {store.get_global_path()}")
    console.print(f"Project settings: {store.get_project_path()}")
    console.print(f"History: {state.conversations.store.path}")


@config.command(name="get")
@click.argument("key", type=click.Choice(sorted(SETTING_SOURCES)))
def get_config(key: str):
    """Show the resolved value of KEY."""
    resolved = state.resolver.resolve(key)
    if resolved is None:
        console.print(f"[yellow]{key} is not set[/yellow]")
        return
    console.print(f"{key} = {_mask(key, resolved.value)} [dim]({resolved.source})[/dim]")


@config.command(name="set")
@click.argument("key", type=click.Choice(sorted(SETTING_SOURCES)))
@click.argument("value")
def set_config(key: str, value: str):
    """Write KEY to the selected scope's settings."""
    resolver = state.resolver
    try:
        resolver.set_current(key, value)
    except StateError as e:
        _fail(e)
    scope = resolver.get_selected_scope()
    console.print(
        f"[green]Saved {key} to {scope} settings ({state.config_store.get_path(scope)})[/green]"
    )


@config.command(name="unset")
@click.argument("key", type=click.Choice(sorted(SETTING_SOURCES)))
def unset_config(key: str):
    """Reset KEY to its default in the selected scope's settings."""
    resolver = state.resolver
    try:
        resolver.set_current(key, ConfigDocument.model_fields[key].default)
    except StateError as e:
        _fail(e)
    console.print(f"[green]Cleared {key} in {resolver.get_selected_scope()} settings[/green]")


@config.command(name="scope")
@click.argument("scope", required=False, type=click.Choice(SCOPES))
def scope_config(scope: str | None):
    """Show or switch the selected settings scope."""
    resolver = state.resolver
    if scope is None:
        console.print(resolver.get_selected_scope())
        return
    try:
        resolver.set_selected_scope(scope)
    except StateError as e:
        _fail(e)
    console.print(f"[green]Selected scope: {scope}[/green]")


if __name__ == "__main__":
    cli()
