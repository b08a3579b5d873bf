"""CLI entry point for Mail Intelligence."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import click
from rich.logging import RichHandler

from mail_intelligence import constants

from .auth import check_auth, get_gmail_service
from .categories import ClassifierConfig, default_config, load_config
from .classifier import Classifier
from .cleanup import CleanupEngine
from .display import (
    confirm_action,
    console,
    display_action_report,
    display_category_counts,
    display_cleanup_suggestions,
    display_duplicates,
    display_messages,
    display_rule_suggestions,
    display_rules,
    display_subscriptions,
)
from .errors import MailIntelligenceError
from .export import PROVIDER_TARGETS, export_rules_json, export_suggestions, export_subscriptions
from .gateway import DryRunGateway, GmailGateway, ProviderGateway
from .models import Action, Condition, Message
from .pipeline import ingest_messages, reclassify_store
from .rules import RuleEngine
from .store import MessageFilter, SqliteEmailStore

CLEANUP_ACTIONS = ["archive", "delete", "mark_read", "unsubscribe"]


def _classifier_config() -> ClassifierConfig:
    if constants.CATEGORIES_PATH.exists():
        return load_config(constants.CATEGORIES_PATH)
    return default_config()


def _gateway(execute: bool) -> ProviderGateway:
    return GmailGateway(get_gmail_service) if execute else DryRunGateway()


def _rule_engine(store: SqliteEmailStore, execute: bool = False) -> RuleEngine:
    return RuleEngine(
        store,
        _gateway(execute),
        known_categories=_classifier_config().category_ids,
        dry_run=not execute,
    )


def _parse_condition(text: str) -> Condition:
    parts = text.split(":", 2)
    if len(parts) != 3:
        raise click.BadParameter(f"expected field:operator:value, got {text!r}")
    field, operator, value = parts
    return Condition.from_dict({"field": field, "operator": operator, "value": value})


def _parse_action(text: str) -> Action:
    kind, _, value = text.partition(":")
    return Action.from_dict({"type": kind, "value": value or None})


@click.group()
@click.version_option(version="0.1.0", prog_name="mail-intel")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Mail Intelligence - categorize, automate and clean up your mail."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@cli.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--no-rules", is_flag=True, help="Only classify and store, skip rules.")
@click.option("--execute", is_flag=True, help="Perform rule actions on the mailbox (default is dry-run).")
def import_cmd(path: str, no_rules: bool, execute: bool) -> None:
    """Ingest a JSON list of messages: classify, store, then run rules."""
    with open(path) as f:
        try:
            messages = [Message.from_dict(item) for item in json.load(f)]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise click.ClickException(f"Invalid messages file: {e}") from e

    classifier = Classifier(_classifier_config())
    with SqliteEmailStore() as store:
        engine = None if no_rules else _rule_engine(store, execute)
        result = asyncio.run(ingest_messages(messages, classifier, store, engine))

    console.print(f"Imported [bold]{result.total_messages}[/bold] messages")
    if not no_rules:
        console.print(
            f"Rule actions: {result.actions_applied} "
            f"([red]{result.action_failures} failed[/red])"
            + ("" if execute else " [yellow][DRY RUN][/yellow]")
        )


@cli.command()
@click.option("-l", "--limit", default=None, type=int, help="Only the most recent N messages.")
def classify(limit: int | None) -> None:
    """Re-classify stored messages with the current category table."""
    classifier = Classifier(_classifier_config())
    with SqliteEmailStore() as store:
        count = reclassify_store(classifier, store, limit=limit)
    console.print(f"[green]Classified {count} messages.[/green]")


@cli.command()
def categories() -> None:
    """Show message counts per category."""
    with SqliteEmailStore() as store:
        counts = store.category_counts()
    if not counts:
        console.print("[dim]No messages stored.[/dim]")
        return
    display_category_counts(counts)


@cli.command()
@click.option("-l", "--limit", default=None, type=int, help="Only the most recent N messages.")
@click.option("--execute", is_flag=True, help="Perform actions on the mailbox (default is dry-run).")
def apply(limit: int | None, execute: bool) -> None:
    """Run enabled rules over stored messages."""
    with SqliteEmailStore() as store:
        engine = _rule_engine(store, execute)
        messages = store.get_messages(MessageFilter(limit=limit))
        applications = asyncio.run(engine.apply_rules_to_messages(messages))

    matched = [a for a in applications if a.matched_rule_ids]
    failed = sum(len(a.failures) for a in applications)
    console.print(
        f"{len(matched)} of {len(messages)} messages matched rules; "
        f"{sum(len(a.actions) for a in matched)} actions, {failed} failed"
    )
    if not execute:
        console.print("[yellow][DRY RUN] Nothing was changed. Use --execute to apply.[/yellow]")


# --- rules ---


@cli.group(name="rules")
def rules_group() -> None:
    """Manage automation rules."""


@rules_group.command(name="list")
@click.option("-a", "--all", "show_all", is_flag=True, help="Include disabled rules.")
def rules_list(show_all: bool) -> None:
    """List automation rules."""
    with SqliteEmailStore() as store:
        rules = store.get_rules()
    if not show_all:
        rules = [r for r in rules if r.enabled]
    if not rules:
        console.print("[dim]No rules defined.[/dim]")
        return
    display_rules(rules)


@rules_group.command(name="add")
@click.option("-n", "--name", required=True, help="Rule name.")
@click.option(
    "-c", "--condition", "conditions", multiple=True, required=True,
    help="field:operator:value, e.g. from:contains:@bank.com (repeatable, AND-combined).",
)
@click.option(
    "-a", "--action", "actions", multiple=True, required=True,
    help="type[:value], e.g. categorize:financial or archive (repeatable).",
)
@click.option("-p", "--priority", default=0, type=int, help="Higher runs first.")
def rules_add(name: str, conditions: tuple[str, ...], actions: tuple[str, ...], priority: int) -> None:
    """Create a rule."""
    with SqliteEmailStore() as store:
        rule = _rule_engine(store).create_rule(
            name,
            [_parse_condition(c) for c in conditions],
            [_parse_action(a) for a in actions],
            priority=priority,
        )
    console.print(f"[green]Created rule {rule.id}[/green]")


def _update(rule_id: str, **updates: Any) -> None:
    with SqliteEmailStore() as store:
        try:
            _rule_engine(store).update_rule(rule_id, **updates)
        except MailIntelligenceError as e:
            raise click.ClickException(str(e)) from e


@rules_group.command(name="enable")
@click.argument("rule_id")
def rules_enable(rule_id: str) -> None:
    """Enable a rule."""
    _update(rule_id, enabled=True)
    console.print(f"[green]Enabled {rule_id}[/green]")


@rules_group.command(name="disable")
@click.argument("rule_id")
def rules_disable(rule_id: str) -> None:
    """Disable a rule."""
    _update(rule_id, enabled=False)
    console.print(f"[green]Disabled {rule_id}[/green]")


@rules_group.command(name="delete")
@click.argument("rule_id")
def rules_delete(rule_id: str) -> None:
    """Delete a rule."""
    with SqliteEmailStore() as store:
        try:
            _rule_engine(store).delete_rule(rule_id)
        except MailIntelligenceError as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[green]Deleted {rule_id}[/green]")


@rules_group.command(name="test")
@click.argument("rule_id")
def rules_test(rule_id: str) -> None:
    """Show which recent messages a rule would match, without acting."""
    with SqliteEmailStore() as store:
        try:
            result = _rule_engine(store).test_rule(rule_id)
        except MailIntelligenceError as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[bold]{result.total_matches}[/bold] matching messages")
    if result.matching_messages:
        display_messages(result.matching_messages, title="Sample matches")


@rules_group.command(name="suggest")
@click.option("--save", "save_index", default=None, type=int, help="Save suggestion number N as a rule.")
def rules_suggest(save_index: int | None) -> None:
    """Suggest rules from your mail history."""
    with SqliteEmailStore() as store:
        engine = _rule_engine(store)
        suggestions = engine.get_suggestions()
        display_rule_suggestions(suggestions)

        if save_index is not None:
            if not 1 <= save_index <= len(suggestions):
                raise click.ClickException(f"No suggestion number {save_index}")
            proposed = suggestions[save_index - 1].rule
            rule = engine.create_rule(
                proposed.name, proposed.conditions, proposed.actions, priority=proposed.priority
            )
            console.print(f"[green]Saved as rule {rule.id}[/green]")


@rules_group.command(name="export")
@click.option(
    "-t", "--target", type=click.Choice(["json", *PROVIDER_TARGETS]), default="json",
    help="json (re-importable) or a provider filter format.",
)
@click.option("-o", "--output", default=None, help="Output file path (default: stdout).")
def rules_export(target: str, output: str | None) -> None:
    """Export rules."""
    with SqliteEmailStore() as store:
        engine = _rule_engine(store)
        text = export_rules_json(engine.get_rules()) if target == "json" else engine.export_rules_for_provider(target)

    if output:
        with open(output, "w") as f:
            f.write(text)
        console.print(f"Rules saved to {output}")
    else:
        click.echo(text)


@rules_group.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def rules_import(path: str) -> None:
    """Import rules exported with 'rules export'."""
    with open(path) as f:
        text = f.read()
    with SqliteEmailStore() as store:
        try:
            rules = _rule_engine(store).import_rules(text)
        except (MailIntelligenceError, json.JSONDecodeError) as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[green]Imported {len(rules)} rules.[/green]")


# --- cleanup ---


@cli.group(name="cleanup")
def cleanup_group() -> None:
    """Find and clean up low-value mail."""


@cleanup_group.command(name="suggest")
@click.option("--account", default=None, help="Restrict to one account.")
def cleanup_suggest(account: str | None) -> None:
    """Show ranked cleanup suggestions."""
    with SqliteEmailStore() as store:
        suggestions = CleanupEngine(store, DryRunGateway()).get_suggestions(account)
    display_cleanup_suggestions(suggestions)


@cleanup_group.command(name="run")
@click.argument("suggestion_id")
@click.option("--action", type=click.Choice(CLEANUP_ACTIONS), required=True, help="What to do.")
@click.option("--account", default=None, help="Restrict to one account.")
@click.option("--deadline", default=None, type=float, help="Stop issuing actions after N seconds.")
@click.option("--execute", is_flag=True, help="Actually modify the mailbox (default is dry-run).")
@click.option("-y", "--yes", is_flag=True, help="Skip the confirmation prompt.")
def cleanup_run(
    suggestion_id: str, action: str, account: str | None, deadline: float | None, execute: bool, yes: bool
) -> None:
    """Apply an action to every email of a cleanup suggestion."""
    with SqliteEmailStore() as store:
        engine = CleanupEngine(
            store,
            _gateway(execute),
            unsubscribe_delay=constants.UNSUBSCRIBE_DELAY if execute else 0,
            dry_run=not execute,
        )
        suggestion = next((s for s in engine.get_suggestions(account) if s.id == suggestion_id), None)
        if suggestion is None:
            raise click.ClickException(f"No cleanup suggestion {suggestion_id!r}")

        if execute and action == "delete" and not yes and not confirm_action(action, len(suggestion.email_ids)):
            console.print("[dim]Cancelled.[/dim]")
            return

        report = asyncio.run(engine.execute_action(action, suggestion.email_ids, deadline=deadline))

    display_action_report(report, dry_run=not execute)


@cleanup_group.command(name="duplicates")
def cleanup_duplicates() -> None:
    """List duplicate groups; the newest message of each is kept."""
    with SqliteEmailStore() as store:
        groups = CleanupEngine(store, DryRunGateway()).find_duplicates()
    if not groups:
        console.print("[green]No duplicates found.[/green]")
        return
    display_duplicates(groups)


@cleanup_group.command(name="large")
@click.option("--min-mb", default=5.0, type=float, help="Minimum total attachment size in MiB.")
def cleanup_large(min_mb: float) -> None:
    """List emails with large attachments."""
    with SqliteEmailStore() as store:
        messages = CleanupEngine(store, DryRunGateway()).find_large_attachments(
            min_size=int(min_mb * 1024 * 1024)
        )
    if not messages:
        console.print("[green]No large attachments found.[/green]")
        return
    display_messages(messages, title="Large attachments")


@cleanup_group.command(name="subscriptions")
def cleanup_subscriptions() -> None:
    """Show read rates of marketing senders."""
    with SqliteEmailStore() as store:
        analysis = CleanupEngine(store, DryRunGateway()).get_subscription_analysis()
    if not analysis.subscriptions:
        console.print("[dim]No subscriptions found.[/dim]")
        return
    display_subscriptions(analysis)


@cleanup_group.command(name="export")
@click.option("--what", type=click.Choice(["suggestions", "subscriptions"]), default="suggestions")
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), default="csv", help="Output format.")
@click.option("-o", "--output", required=True, help="Output file path.")
def cleanup_export(what: str, fmt: str, output: str) -> None:
    """Export cleanup suggestions or subscription analysis to CSV or JSON."""
    with SqliteEmailStore() as store:
        engine = CleanupEngine(store, DryRunGateway())
        if what == "suggestions":
            export_suggestions(engine.get_suggestions(), format=fmt, output_path=output)
        else:
            export_subscriptions(engine.get_subscription_analysis(), format=fmt, output_path=output)
    console.print(f"Results saved to {output}")


@cli.command()
@click.argument("email_ids", nargs=-1, required=True)
@click.option("--delay", default=constants.UNSUBSCRIBE_DELAY, type=float, help="Seconds between links.")
@click.option("--execute", is_flag=True, help="Actually open the links (default is dry-run).")
def unsubscribe(email_ids: tuple[str, ...], delay: float, execute: bool) -> None:
    """Open the unsubscribe links of the given emails."""
    with SqliteEmailStore() as store:
        engine = CleanupEngine(
            store, _gateway(execute), unsubscribe_delay=delay if execute else 0, dry_run=not execute
        )
        result = asyncio.run(engine.bulk_unsubscribe(list(email_ids)))

    console.print(f"Processed: [bold]{result.processed}[/bold]  Skipped: {result.skipped}")
    for link in result.links:
        console.print(f"  - {link}")
    for error in result.errors:
        console.print(f"  [red]{error.message_id}: {error.error}[/red]")


@cli.command()
@click.argument("account_id")
def auth(account_id: str) -> None:
    """Test or set up Gmail authentication for an account."""
    try:
        address = check_auth(account_id)
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"Authenticated as {address}")


@cli.group(name="db")
def db_group() -> None:
    """Manage the local message database."""


@db_group.command(name="info")
def db_info() -> None:
    """Show database statistics."""
    with SqliteEmailStore() as store:
        info = store.get_info()

    if info["message_count"] == 0 and info["rule_count"] == 0:
        console.print("[dim]Database is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Messages:[/bold] {info['message_count']}")
    console.print(f"[bold]Rules:[/bold] {info['rule_count']}")
    console.print(f"[bold]Newest message:[/bold] {info['newest_message_date']}")


@db_group.command(name="clear")
def db_clear() -> None:
    """Delete all stored messages and rules."""
    with SqliteEmailStore() as store:
        store.clear()
    console.print("[green]Database cleared.[/green]")
