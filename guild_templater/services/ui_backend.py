"""Discord desktop app backend driven through AppleScript.

Used where no bot token is available. Every operation is a short sequence of
System Events scripts against the running Discord app, so calls are slow,
serial and identified by name rather than id.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from guild_templater.constants import DEFAULT_SCRIPT_TIMEOUT
from guild_templater.core.classification import is_transient_error
from guild_templater.core.config import TransportRetryConfig
from guild_templater.core.retry import retry_transport
from guild_templater.exceptions import OperationTimeoutError
from guild_templater.services.backend import MutatorBackend
from guild_templater.types import (
    ChannelKind,
    ChannelSpec,
    MutationResult,
    PermissionOverride,
    RoleSpec,
)
from guild_templater.utils.applescript import (
    ScriptResult,
    quote_applescript_string,
    run_applescript,
)
from guild_templater.utils.logging import log_with_context

DISCORD_PROCESS = "Discord"

# Scripts report a missing control by returning this prefix
NOT_FOUND_PREFIX = "not_found:"

# Seconds to let a modal or menu appear between steps
MODAL_APPEAR_DELAY = 1.0

CHANNEL_TYPE_LABELS = {
    ChannelKind.TEXT: "Text",
    ChannelKind.VOICE: "Voice",
    ChannelKind.ANNOUNCEMENT: "Announcement",
    ChannelKind.STAGE: "Stage",
    ChannelKind.FORUM: "Forum",
}


def _note_unapplied_overrides(
    name: str, overrides: tuple[PermissionOverride, ...]
) -> None:
    if overrides:
        log_with_context(
            logging.INFO,
            f"Permission overrides for '{name}' are not applied by the UI backend",
            operation=name,
        )


def _process_block(body: str) -> str:
    return f"""
tell application "System Events"
  if not (exists process "{DISCORD_PROCESS}") then
    error "Discord is not running"
  end if
  tell process "{DISCORD_PROCESS}"
    set frontmost to true
    delay 0.3
{body}
  end tell
end tell
"""


def click_button_script(*labels: str) -> str:
    """Click the first button whose name or description contains a label."""
    checks = " or ".join(
        f"btnName contains {quote_applescript_string(label)} "
        f"or btnDesc contains {quote_applescript_string(label)}"
        for label in labels
    )
    target = quote_applescript_string(NOT_FOUND_PREFIX + " / ".join(labels))
    return _process_block(
        f"""    repeat with btn in (every button of entire contents of window 1)
      try
        set btnName to name of btn as text
        set btnDesc to description of btn as text
        if {checks} then
          click btn
          return "clicked"
        end if
      end try
    end repeat
    return {target}"""
    )


def type_into_field_script(text: str) -> str:
    """Replace the contents of the first text field with ``text``."""
    missing = quote_applescript_string(NOT_FOUND_PREFIX + "text field")
    return _process_block(
        f"""    set textFields to every text field of entire contents of window 1
    if (count of textFields) is 0 then
      return {missing}
    end if
    set focused of (item 1 of textFields) to true
    delay 0.1
    keystroke "a" using command down
    delay 0.1
    keystroke {quote_applescript_string(text)}
    return "typed\""""
    )


def context_menu_script(target: str, item: str) -> str:
    """Open the context menu of the sidebar element ``target`` and pick ``item``."""
    missing = quote_applescript_string(NOT_FOUND_PREFIX + target)
    return _process_block(
        f"""    set targetElement to missing value
    repeat with elem in (every UI element of entire contents of window 1)
      try
        if (name of elem as text) is {quote_applescript_string(target)} then
          set targetElement to elem
          exit repeat
        end if
      end try
    end repeat
    if targetElement is missing value then
      return {missing}
    end if
    perform action "AXShowMenu" of targetElement
    delay 0.5
    click menu item {quote_applescript_string(item)} of menu 1 of targetElement
    return "clicked\""""
    )


def key_code_script(code: int) -> str:
    return _process_block(f'    key code {code}\n    return "pressed"')


RETURN_KEY = 36
ESCAPE_KEY = 53


class DiscordUIBackend(MutatorBackend):
    """Mutator backend that drives the Discord desktop client."""

    supports_concurrency = False
    name = "ui"

    def __init__(
        self,
        script_timeout: float = DEFAULT_SCRIPT_TIMEOUT,
        transport_retry: Optional[TransportRetryConfig] = None,
        runner: Callable[..., ScriptResult] = run_applescript,
        step_delay: float = MODAL_APPEAR_DELAY,
    ) -> None:
        self.script_timeout = script_timeout
        self.transport_retry = transport_retry or TransportRetryConfig()
        self.runner = runner
        self.step_delay = step_delay

    def _run_once(self, script: str) -> ScriptResult:
        result = self.runner(script, timeout=self.script_timeout)
        if result.success and result.output.startswith(NOT_FOUND_PREFIX):
            missing = result.output[len(NOT_FOUND_PREFIX) :]
            return ScriptResult(
                success=False,
                output=result.output,
                exit_code=result.exit_code,
                error=f"UI element not found: {missing}",
            )
        return result

    def _run(self, script: str) -> ScriptResult:
        config = self.transport_retry
        return retry_transport(
            lambda: self._run_once(script),
            is_success=lambda result: result.success,
            is_retryable=lambda error, result: is_transient_error(
                error, result.error if result is not None else None
            ),
            max_retries=config.max_retries,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )

    def _run_steps(self, steps: list[str], ref: str, **data) -> MutationResult:
        """Run scripts in order, stopping at the first failure."""
        for index, script in enumerate(steps):
            try:
                result = self._run(script)
            except OperationTimeoutError as e:
                return MutationResult.fail(str(e), e.code)
            if not result.success:
                log_with_context(
                    logging.DEBUG,
                    f"UI step {index + 1}/{len(steps)} failed: {result.error}",
                )
                return MutationResult.fail(
                    result.error or "AppleScript step failed", "UI_AUTOMATION_FAILED"
                )
            if index < len(steps) - 1 and self.step_delay:
                time.sleep(self.step_delay)
        return MutationResult.ok(ref, **data)

    def create_server(self, name: str) -> MutationResult:
        return self._run_steps(
            [
                click_button_script("Add a Server"),
                click_button_script("Create My Own"),
                click_button_script("me and my friends"),
                type_into_field_script(name),
                click_button_script("Create"),
            ],
            ref=name,
        )

    def create_role(self, server_ref: str, role: RoleSpec) -> MutationResult:
        return self._run_steps(
            [
                context_menu_script(server_ref, "Server Settings"),
                click_button_script("Roles"),
                click_button_script("Create Role"),
                type_into_field_script(role.name),
                click_button_script("Save Changes"),
                key_code_script(ESCAPE_KEY),
            ],
            ref=role.name,
            color=role.color,
        )

    def create_category(
        self,
        server_ref: str,
        name: str,
        permission_overrides: tuple[PermissionOverride, ...] = (),
    ) -> MutationResult:
        _note_unapplied_overrides(name, permission_overrides)
        return self._run_steps(
            [
                context_menu_script(server_ref, "Create Category"),
                type_into_field_script(name),
                click_button_script("Create Category"),
            ],
            ref=name,
        )

    def create_channel(
        self,
        server_ref: str,
        channel: ChannelSpec,
        category_ref: Optional[str] = None,
    ) -> MutationResult:
        _note_unapplied_overrides(channel.name, channel.permission_overrides)
        # Without a category the channel is created from the server menu
        target = category_ref or server_ref
        return self._run_steps(
            [
                context_menu_script(target, "Create Channel"),
                click_button_script(CHANNEL_TYPE_LABELS[channel.kind]),
                type_into_field_script(channel.name),
                key_code_script(RETURN_KEY),
            ],
            ref=channel.name,
            category=category_ref,
        )
