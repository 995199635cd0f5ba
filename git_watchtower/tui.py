"""Interactive TUI for git-watchtower using Textual."""

from typing import FrozenSet, List, Optional

from rich.markup import escape
from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import DataTable, Footer, Header, Input, Static

from .__version__ import __version__
from .constants import (
    COLUMNS,
    LOG_COLORS,
    OFFLINE_INDICATOR,
    POLLING_INDICATORS,
    TUI_COLORS,
)
from .formatters import (
    format_branch_name,
    format_duration,
    format_pr_status,
    format_remote_status,
    format_time_ago,
    get_branch_style_type,
)
from .logging_config import get_logger
from .models.branch import Branch
from .state.store import AppState, UIMode
from .utils.concurrency import Debouncer, Throttler, debounce, throttle

logger = get_logger(__name__)

TABLE_KEYS = frozenset({
    "branches",
    "selected_index",
    "current_branch",
    "mode",
    "search_query",
    "pr_status_by_name",
    "sparkline_by_name",
    "visible_branch_count",
})
PANEL_KEYS = frozenset({
    "mode",
    "activity_log",
    "server_logs",
    "switch_history",
    "preview_data",
    "log_scroll_offset",
    "is_offline",
    "adaptive_poll_interval",
    "last_fetch_duration",
})
STATUS_KEYS = frozenset({
    "is_polling",
    "polling_status",
    "is_offline",
    "current_branch",
    "is_detached_head",
    "branches",
    "adaptive_poll_interval",
    "last_fetch_duration",
    "has_merge_conflict",
    "mode",
})

FLASH_SEVERITY = {"error": "error", "warning": "warning"}


class BranchTable(DataTable):
    """Branch table whose cursor follows the store instead of key presses."""

    can_focus = False


class WatchtowerApp(App):
    """Live dashboard of the repository's branches."""

    TITLE = "Git Watchtower"
    SUB_TITLE = f"v{__version__}"

    CSS = """
    Screen {
        background: $surface;
    }

    BranchTable {
        height: auto;
    }

    #search-input {
        display: none;
    }

    #panel {
        height: 1fr;
        padding: 0 1;
        border-top: solid $panel;
    }

    #status-bar {
        dock: bottom;
        height: auto;
        background: $panel;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("slash", "search", "Search"),
        Binding("enter", "switch_branch", "Switch"),
        Binding("v", "preview", "Preview"),
        Binding("p", "pull", "Pull"),
        Binding("f", "fetch", "Fetch"),
        Binding("S", "stash", "Stash & retry"),
        Binding("u", "undo", "Undo"),
        Binding("h", "history", "History"),
        Binding("l", "toggle_logs", "Logs"),
        Binding("i", "info", "Info"),
        Binding("escape", "back", "Back", show=False),
        Binding("up", "move(-1)", "Up", show=False),
        Binding("down", "move(1)", "Down", show=False),
        Binding("k", "move(-1)", "Up", show=False),
        Binding("j", "move(1)", "Down", show=False),
    ]

    def __init__(self, watchtower):
        super().__init__()
        self.watchtower = watchtower
        self.store = watchtower.store
        self._unsubscribe = None
        self._poll_timer = None
        self._refresh: Optional[Throttler] = None
        self._search: Optional[Debouncer] = None

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield Header(show_clock=False, icon="")
        yield Input(placeholder="Filter branches...", id="search-input")
        yield BranchTable(id="branch-table", cursor_type="row", zebra_stripes=True)
        yield Static(id="panel")
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Set up the table, subscriptions and the first poll."""
        table = self.query_one(BranchTable)
        for col in COLUMNS:
            if col.key == "remote":
                table.add_column(Text(col.label, justify="center"), width=None, key=col.key)
            else:
                table.add_column(col.label, width=col.width or None, key=col.key)

        config = self.watchtower.config
        self._refresh = throttle(self.poll_cycle, config.refresh_throttle)
        self._search = debounce(self._apply_search, config.search_debounce)

        self._unsubscribe = self.store.subscribe(self._on_state_change)
        self.store.set_terminal_size(self.size.width, self.size.height)
        self.sub_title = f"{self.store.get('project_name')}  v{__version__}"

        self._render(TABLE_KEYS | PANEL_KEYS | STATUS_KEYS | {"mode"})
        self.poll_cycle()

    # ------------------------------------------------------------------
    # Store -> widgets
    # ------------------------------------------------------------------

    def _on_state_change(self, previous: AppState, new: AppState, changed: FrozenSet[str]) -> None:
        # Rendering may write back to the store, so never do it inside notify
        if changed:
            self.call_later(self._render, changed)

    def _render(self, changed: FrozenSet[str]) -> None:
        # Read fresh: later writes may have landed since this was scheduled
        state = self.store.get_state()
        if changed & TABLE_KEYS:
            self._populate_table(state)
        if changed & PANEL_KEYS:
            self._update_panel(state)
        if changed & STATUS_KEYS:
            self._update_status(state)
        if "mode" in changed:
            self._update_search_input(state)
        if "flash_message" in changed and state.flash_message is not None:
            flash = state.flash_message
            self.notify(flash.text, severity=FLASH_SEVERITY.get(flash.kind, "information"))
            self.store.clear_flash()

    def _visible_branches(self) -> List[Branch]:
        return self.store.get_filtered_branches()

    def _populate_table(self, state: AppState) -> None:
        """Add branch data to table."""
        table = self.query_one(BranchTable)
        table.clear()
        table.styles.max_height = state.visible_branch_count + 1

        selected_row = None
        for row, branch in enumerate(self._visible_branches()):
            pr_status = state.pr_status_by_name.get(branch.name)
            is_current = branch.name == state.current_branch
            style_type = get_branch_style_type(branch, state.current_branch, pr_status)
            color = TUI_COLORS.get(style_type, TUI_COLORS["active"])

            name_text = Text(format_branch_name(branch, is_current), style=color)
            if branch.is_deleted:
                name_text.stylize("strike")

            table.add_row(
                name_text,
                format_time_ago(branch.date),
                branch.commit,
                Text(format_remote_status(branch), justify="center"),
                format_pr_status(pr_status),
                Text(state.sparkline_by_name.get(branch.name, ""), style="cyan"),
                branch.subject,
                key=branch.name,
            )
            if branch.name == state.selected_branch_name:
                selected_row = row

        if selected_row is not None:
            table.move_cursor(row=selected_row)

    def _update_panel(self, state: AppState) -> None:
        panel = self.query_one("#panel", Static)

        if state.mode is UIMode.LOGS:
            lines = [
                f"[dim]{entry.timestamp}[/dim] "
                + (f"[red]{escape(entry.line)}[/red]" if entry.is_error else escape(entry.line))
                for entry in state.server_logs[state.log_scroll_offset:]
            ]
            panel.update("[bold]Server logs[/bold]\n" + ("\n".join(lines) or "[dim]No output[/dim]"))
        elif state.mode is UIMode.HISTORY:
            lines = [
                f"[dim]{entry.timestamp:%H:%M:%S}[/dim] {escape(entry.from_branch)} → {escape(entry.to_branch)}"
                for entry in reversed(state.switch_history)
            ]
            panel.update("[bold]Switch history[/bold]\n" + ("\n".join(lines) or "[dim]Empty[/dim]"))
        elif state.mode is UIMode.PREVIEW and state.preview_data:
            data = state.preview_data
            commits = [
                f"[yellow]{c['hash']}[/yellow] {escape(c['subject'])} [dim]{c['time']}[/dim]"
                for c in data.get("commits", [])
            ]
            files = [f"  {escape(name)}" for name in data.get("files", [])]
            panel.update(
                "[bold]Recent commits[/bold]\n" + ("\n".join(commits) or "[dim]None[/dim]")
                + "\n\n[bold]Changed files[/bold]\n" + ("\n".join(files) or "[dim]None[/dim]")
            )
        elif state.mode is UIMode.INFO:
            pr_service = self.watchtower.pr_service
            if pr_service is None:
                pr_label = "No"
            elif pr_service is self.watchtower.gitlab_service:
                pr_label = "GitLab (glab)"
            else:
                pr_label = "GitHub"
            panel.update(
                f"[bold]Repository:[/bold] {escape(state.project_name)}\n"
                f"[bold]Remote:[/bold] {escape(self.watchtower.config.remote_name)}\n"
                f"[bold]Status:[/bold] {'[red]Offline[/red]' if state.is_offline else '[green]Online[/green]'}\n"
                f"[bold]Poll interval:[/bold] {state.adaptive_poll_interval / 1000:g}s\n"
                f"[bold]Last fetch:[/bold] {format_duration(state.last_fetch_duration)}\n"
                f"[bold]Auto-pull:[/bold] {'On' if self.watchtower.config.auto_pull else 'Off'}\n"
                f"[bold]PR status:[/bold] {pr_label}"
            )
        else:
            lines = [
                f"[dim]{entry.timestamp:%H:%M:%S}[/dim] "
                f"[{LOG_COLORS.get(entry.kind, 'white')}]{escape(entry.message)}[/]"
                for entry in reversed(state.activity_log)
            ]
            panel.update("\n".join(lines))

    def _update_status(self, state: AppState) -> None:
        """Update status bar with current stats."""
        status = self.query_one("#status-bar", Static)
        indicator = OFFLINE_INDICATOR if state.is_offline else POLLING_INDICATORS.get(
            state.polling_status, POLLING_INDICATORS["idle"]
        )
        current = escape(state.current_branch or "?")
        if state.is_detached_head:
            current += " [yellow](detached)[/yellow]"
        if state.has_merge_conflict:
            current += " [red]MERGE CONFLICT[/red]"
        active = sum(1 for b in state.branches if not b.is_deleted)

        status.update(
            f"{indicator} {current} | "
            f"Branches: {active} | "
            f"Every {state.adaptive_poll_interval / 1000:g}s | "
            f"Last fetch: {format_duration(state.last_fetch_duration)} | "
            f"Mode: {state.mode.value}"
        )

    def _update_search_input(self, state: AppState) -> None:
        search = self.query_one("#search-input", Input)
        if state.mode is UIMode.SEARCH:
            search.display = True
            search.focus()
        else:
            if self._search is not None:
                self._search.cancel()
            search.value = ""
            search.display = False
            self.set_focus(None)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    @work(group="poll", thread=False)
    async def poll_cycle(self) -> None:
        """Run one poll cycle, then schedule the next after the adaptive interval."""
        try:
            await self.watchtower.poll_once()
        except Exception as e:
            logger.error(f"Unexpected poll error: {e}", exc_info=True)
        finally:
            self._schedule_next_poll()

    def _schedule_next_poll(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.stop()
        self._poll_timer = self.set_timer(self.watchtower.interval_seconds, self.poll_cycle)

    # ------------------------------------------------------------------
    # Events and actions
    # ------------------------------------------------------------------

    def on_resize(self, event: events.Resize) -> None:
        self.store.set_terminal_size(event.size.width, event.size.height)

    def on_input_changed(self, event: Input.Changed) -> None:
        if self.store.get("mode") is UIMode.SEARCH and self._search is not None:
            self._search.trigger(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Jump to the first match and leave search mode."""
        if self._search is not None:
            self._search.cancel()
        self._apply_search(event.value)
        matches = self.store.get_filtered_branches()
        if matches:
            branches = self.store.get("branches")
            self.store.set_selected_index(branches.index(matches[0]))
        self.store.set_mode(UIMode.NORMAL)

    def _apply_search(self, query: str) -> None:
        self.store.set_state(search_query=query)
        matches = self.store.get_filtered_branches()
        selected = self.store.get("selected_branch_name")
        if matches and selected not in {b.name for b in matches}:
            self.store.set_selected_index(self.store.get("branches").index(matches[0]))

    def action_move(self, delta: int) -> None:
        """Move the selection, staying within the filtered list while searching."""
        state = self.store.get_state()
        if state.mode is not UIMode.SEARCH or not state.search_query:
            self.store.move_selection(delta)
            return

        matches = self.store.get_filtered_branches()
        if not matches:
            return
        names = [b.name for b in matches]
        position = names.index(state.selected_branch_name) if state.selected_branch_name in names else 0
        target = matches[max(0, min(position + delta, len(matches) - 1))]
        self.store.set_selected_index(state.branches.index(target))

    def action_refresh(self) -> None:
        """Trigger a poll now, at most once per refresh window."""
        if self._refresh is not None:
            self._refresh.trigger()

    def action_search(self) -> None:
        self.store.set_mode(UIMode.SEARCH)

    def action_back(self) -> None:
        if self.store.get("mode") is not UIMode.NORMAL:
            self.store.set_mode(UIMode.NORMAL)

    def _toggle_mode(self, mode: UIMode) -> None:
        if self.store.get("mode") is mode:
            self.store.set_mode(UIMode.NORMAL)
        else:
            self.store.set_mode(mode)

    def action_toggle_logs(self) -> None:
        self._toggle_mode(UIMode.LOGS)

    def action_history(self) -> None:
        self._toggle_mode(UIMode.HISTORY)

    def action_info(self) -> None:
        self._toggle_mode(UIMode.INFO)

    def _selected_live_branch(self) -> Optional[Branch]:
        branch = self.store.get_selected_branch()
        if branch is None:
            return None
        if branch.is_deleted:
            self.notify(f"{branch.name} was deleted", severity="warning")
            return None
        return branch

    def action_switch_branch(self) -> None:
        branch = self._selected_live_branch()
        if branch is None:
            return
        if branch.name == self.store.get("current_branch"):
            self.notify(f"Already on {branch.name}")
            return
        self.run_switch(branch.name)

    @work(group="git", thread=False)
    async def run_switch(self, branch_name: str) -> None:
        await self.watchtower.switch_branch(branch_name)

    def action_undo(self) -> None:
        self.run_undo()

    @work(group="git", thread=False)
    async def run_undo(self) -> None:
        await self.watchtower.undo_switch()

    def action_pull(self) -> None:
        self.run_pull()

    @work(group="git", thread=False)
    async def run_pull(self) -> None:
        await self.watchtower.pull_current()

    def action_fetch(self) -> None:
        self.run_fetch()

    @work(group="git", thread=False)
    async def run_fetch(self) -> None:
        await self.watchtower.fetch_all()

    def action_stash(self) -> None:
        if self.store.get("pending_dirty_operation") is None:
            self.notify("Nothing to stash and retry")
            return
        self.run_stash()

    @work(group="git", thread=False)
    async def run_stash(self) -> None:
        await self.watchtower.stash_and_retry()

    def action_preview(self) -> None:
        if self.store.get("mode") is UIMode.PREVIEW:
            self.store.set_mode(UIMode.NORMAL)
            return
        branch = self._selected_live_branch()
        if branch is not None:
            self.run_preview(branch.name)

    @work(group="git", thread=False)
    async def run_preview(self, branch_name: str) -> None:
        await self.watchtower.show_preview(branch_name)

    async def action_quit(self) -> None:
        """Override quit action to clean up resources before exiting."""
        try:
            if self._refresh is not None:
                self._refresh.cancel()
            if self._search is not None:
                self._search.cancel()
            if self._unsubscribe is not None:
                self._unsubscribe()
            self.workers.cancel_all()
            self.watchtower.close()
        except Exception as e:
            logger.debug(f"Error during shutdown: {e}")
        finally:
            self.exit()
