"""
Preflight checks run before a push to catch common misconfigurations early.
"""

import logging
import os

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from tempus.auth.token import TokenStore
from tempus.models import GoogleConfig
from tempus.models import TokenStoreError

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: GoogleConfig, console: Console) -> bool:
    """Return True if a push may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. OAuth client credentials
    if not cfg.client_id.strip():
        issues.append(
            (
                "OAuth client",
                "client_id is not set",
                "Add client_id to the [google] section",
            )
        )
    if not cfg.client_secret.strip():
        logger.debug("No client_secret configured; public client assumed")

    # 2. Target calendar
    if not cfg.calendar_id.strip():
        issues.append(
            (
                "Calendar",
                "calendar_id is empty",
                "Set calendar_id in [google] or pass --calendar",
            )
        )

    # 3. Token file directory writable, existing file readable
    token_dir = cfg.token_file.parent
    try:
        token_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create token directory %s: %s", token_dir, e)
        issues.append(("Token file", f"{token_dir}: {e}", f"Check permissions on {token_dir}"))
    else:
        if not os.access(token_dir, os.W_OK):
            issues.append(
                ("Token file", f"{token_dir} is not writable", f"Check permissions on {token_dir}")
            )
        try:
            TokenStore(cfg.token_file).load()
        except TokenStoreError as e:
            # Not fatal: the device flow replaces an unreadable token file.
            logger.warning("%s", e)

    # 4. Endpoints
    for label, url in (
        ("Device endpoint", cfg.device_endpoint),
        ("Token endpoint", cfg.token_endpoint),
        ("Calendar API", cfg.calendar_base_url),
    ):
        if not url.startswith(("https://", "http://")):
            issues.append((label, f"not an http(s) URL: {url!r}", "Fix the [google] section"))

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
