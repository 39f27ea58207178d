# src/orasan_timers/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from ..core.errors import BatchValidationError, ErrorKind
from ..core.result import Err, Result
from ..core.state import AppState
from ..timers.view import TimerView

CommandHandler = Callable[[AppState, list[str]], str | Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /start, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Handlers may be plain functions or coroutines.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        reply = handler(state, args)
        if inspect.isawaitable(reply):
            reply = await reply
        return reply

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def describe_error(res: Err) -> str:
    err = res.error
    if isinstance(err, BatchValidationError):
        return f"Rejected: {err.message} (valid {err.valid_count} of {err.requested_count})."
    if err.kind == ErrorKind.NETWORK_FAILURE:
        return f"Not saved, changes rolled back: {err.message}. You can retry."
    return f"Rejected ({err.kind.value}): {err.message}"


def render_view(v: TimerView) -> str:
    flags = [
        name
        for name, on in (
            ("start", v.can_start),
            ("pause", v.can_pause),
            ("resume", v.can_resume),
            ("stop", v.can_stop),
            ("reset", v.can_reset),
            ("clear", v.can_clear),
        )
        if on
    ]
    frozen = " (saving...)" if v.frozen else ""
    return f"{v.task_id} [{v.status.value}] {v.formatted}{frozen}  actions: {', '.join(flags) or '-'}"


def _single_reply(state: AppState, task_id: str, res: Result) -> str:
    if not res.ok:
        return describe_error(res)
    return render_view(state.engine.view(task_id))


def _usage(text: str) -> str:
    return f"Usage: {text}"


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str]) -> str:
    views = state.engine.views()
    if not views:
        return "No timers."
    limit = state.engine.limits.max_running
    header = f"Timers ({state.engine.running_count()} running, limit {limit or 'unlimited'}):"
    return "\n".join([header, *("  " + render_view(v) for v in views)])


def cmd_status(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/status <task_id>")
    return render_view(state.engine.view(args[0]))


async def cmd_start(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return _usage("/start <task_id> <project_id>")
    res = await state.engine.start(args[0], args[1])
    return _single_reply(state, args[0], res)


async def cmd_pause(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/pause <task_id>")
    return _single_reply(state, args[0], await state.engine.pause(args[0]))


async def cmd_resume(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/resume <task_id>")
    return _single_reply(state, args[0], await state.engine.resume(args[0]))


async def cmd_stop(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/stop <task_id>")
    return _single_reply(state, args[0], await state.engine.stop(args[0]))


async def cmd_reset(state: AppState, args: list[str]) -> str:
    """
    /reset <task_id>        -> asks for confirmation
    /reset <task_id> --yes  -> zeroes the tracked time
    """
    if not args:
        return _usage("/reset <task_id> [--yes]")
    confirmed = any(a.lower() in ("--yes", "-y", "yes") for a in args[1:])
    res = await state.engine.reset(args[0], confirmed=confirmed)
    if not res.ok and res.kind == ErrorKind.CONFIRMATION_REQUIRED:
        return f"This discards all tracked time for {args[0]}. Repeat with: /reset {args[0]} --yes"
    return _single_reply(state, args[0], res)


async def cmd_clear(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/clear <task_id>")
    res = await state.engine.clear(args[0])
    if not res.ok:
        return describe_error(res)
    return f"Timer for {args[0]} cleared."


async def cmd_pauseall(state: AppState, args: list[str]) -> str:
    """
    /pauseall            -> pause every running timer
    /pauseall <id> ...   -> pause exactly these timers (server ids) or none
    """
    res = await (state.engine.pause_all(args) if args else state.engine.pause_all_running())
    if not res.ok:
        return describe_error(res)
    outcome = res.value
    return f"Paused {outcome.applied_count} timer(s)."


async def cmd_stopall(state: AppState, args: list[str]) -> str:
    if not args:
        return _usage("/stopall <project_id>")
    res = await state.engine.stop_all(args[0])
    if not res.ok:
        return describe_error(res)
    outcome = res.value
    if outcome.applied_count == 0:
        return f"No active timers for project {args[0]}."
    return f"Stopped {outcome.applied_count} timer(s) for project {args[0]}."


async def cmd_sync(state: AppState, args: list[str]) -> str:
    """
    /sync            -> reload every active timer from the server
    /sync <task_id>  -> refresh one task from the server
    """
    if args:
        res = await state.engine.refresh_timer_for_task(args[0])
        return _single_reply(state, args[0], res)
    res = await state.engine.load()
    if not res.ok:
        return describe_error(res)
    return f"Loaded {res.value} active timer(s)."


def cmd_limit(state: AppState, args: list[str]) -> str:
    if not args:
        limit = state.engine.limits.max_running
        return f"Running timer limit: {limit or 'unlimited'}."
    try:
        value = int(args[0])
    except ValueError:
        return _usage("/limit [max_running]  (0 = unlimited)")
    state.engine.set_max_running(value)
    logger.debug("Limit changed via console to %s", value)
    return f"Running timer limit set to {state.engine.limits.max_running or 'unlimited'}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="List timers with duration and available actions.", aliases=["ls"])
registry.register("status", cmd_status, help_text="Show one task: /status <task_id>.")
registry.register("start", cmd_start, help_text="Start a timer: /start <task_id> <project_id>.")
registry.register("pause", cmd_pause, help_text="Pause a running timer: /pause <task_id>.")
registry.register("resume", cmd_resume, help_text="Resume a paused timer: /resume <task_id>.")
registry.register("stop", cmd_stop, help_text="Stop a timer: /stop <task_id>.")
registry.register("reset", cmd_reset, help_text="Zero a timer: /reset <task_id> --yes.")
registry.register("clear", cmd_clear, help_text="Remove a stopped timer: /clear <task_id>.")
registry.register("pauseall", cmd_pauseall, help_text="Pause all running timers (or the given ids).")
registry.register("stopall", cmd_stopall, help_text="Stop every active timer of a project: /stopall <project_id>.")
registry.register("sync", cmd_sync, help_text="Reload timers from the server: /sync [task_id].")
registry.register("limit", cmd_limit, help_text="Show/set the running timer limit: /limit [n].")
