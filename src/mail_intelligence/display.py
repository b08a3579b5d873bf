"""Rich-based display functions for Mail Intelligence."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from .cleanup import format_size
from .models import (
    ActionReport,
    CleanupSuggestion,
    DuplicateGroup,
    Message,
    Priority,
    Rule,
    RuleSuggestion,
    SubscriptionAnalysis,
)

console = Console()

_PRIORITY_COLOR = {Priority.HIGH: "red", Priority.MEDIUM: "yellow", Priority.LOW: "green"}


def _confidence_color(confidence: float) -> str:
    if confidence >= 0.85:
        return "green"
    if confidence >= 0.5:
        return "yellow"
    return "white"


def describe_conditions(rule: Rule) -> str:
    return " AND ".join(f"{c.to_dict()['field']} {c.to_dict()['operator']} {c.value!r}" for c in rule.conditions)


def describe_actions(rule: Rule) -> str:
    return ", ".join(a.describe() for a in rule.actions)


def display_rules(rules: list[Rule]) -> None:
    table = Table(title="Automation Rules")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")
    table.add_column("Conditions")
    table.add_column("Actions")
    table.add_column("Hits", justify="right")
    table.add_column("Last hit", style="dim")

    for rule in rules:
        table.add_row(
            rule.id,
            rule.name,
            str(rule.priority),
            "[green]yes[/green]" if rule.enabled else "[dim]no[/dim]",
            describe_conditions(rule),
            describe_actions(rule),
            str(rule.hit_count),
            rule.last_hit or "-",
        )

    console.print(table)


def display_messages(messages: list[Message], title: str = "Messages") -> None:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Date", style="dim")
    table.add_column("From")
    table.add_column("Subject")
    table.add_column("Category")
    table.add_column("Size", justify="right")

    for message in messages:
        table.add_row(
            message.id,
            message.date[:10],
            message.sender,
            message.subject,
            message.category,
            format_size(message.attachment_bytes or message.size),
        )

    console.print(table)


def display_rule_suggestions(suggestions: list[RuleSuggestion]) -> None:
    if not suggestions:
        console.print("[dim]No rule suggestions yet.[/dim]")
        return

    table = Table(title="Rule Suggestions")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Rule")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")

    for idx, suggestion in enumerate(suggestions, start=1):
        color = _confidence_color(suggestion.confidence)
        table.add_row(
            str(idx),
            suggestion.rule.name,
            f"[{color}]{suggestion.confidence:.0%}[/{color}]",
            suggestion.reason,
        )

    console.print(table)


def display_cleanup_suggestions(suggestions: list[CleanupSuggestion]) -> None:
    if not suggestions:
        console.print("[green]Nothing to clean up.[/green]")
        return

    table = Table(title="Cleanup Suggestions")
    table.add_column("ID", style="dim")
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Emails", justify="right")
    table.add_column("Reclaimable", justify="right")
    table.add_column("Suggested action")

    total = 0
    for suggestion in suggestions:
        color = _PRIORITY_COLOR[suggestion.priority]
        total += len(suggestion.email_ids)
        table.add_row(
            suggestion.id,
            f"[{color}]{suggestion.priority.value}[/{color}]",
            suggestion.title,
            str(len(suggestion.email_ids)),
            format_size(suggestion.estimated_bytes) if suggestion.estimated_bytes else "-",
            suggestion.action,
        )

    console.print(table)
    console.print(
        Panel(
            f"Suggestions: {len(suggestions)}  |  Emails involved: {total}",
            title="Summary",
        )
    )


def display_duplicates(groups: list[DuplicateGroup]) -> None:
    table = Table(title="Duplicate Groups")
    table.add_column("From")
    table.add_column("Subject")
    table.add_column("Keep", style="green")
    table.add_column("Remove", justify="right")

    for group in groups:
        table.add_row(group.sender, group.subject, group.canonical.id, str(len(group.removable)))

    console.print(table)


def display_subscriptions(analysis: SubscriptionAnalysis) -> None:
    table = Table(title="Subscriptions")
    table.add_column("Domain")
    table.add_column("Emails", justify="right")
    table.add_column("Last email", style="dim")
    table.add_column("Read rate", justify="right")
    table.add_column("Unsubscribe")
    table.add_column("Status")

    for sub in analysis.subscriptions:
        status = "[green]active[/green]" if sub.active else "[red]inactive[/red]"
        table.add_row(
            sub.domain,
            str(sub.message_count),
            sub.last_date[:10],
            f"{sub.read_rate}%",
            "yes" if sub.has_unsubscribe else "no",
            status,
        )

    console.print(table)
    console.print(
        Panel(
            f"Total: {analysis.total}  |  Active: {analysis.active}  |  Inactive: {analysis.inactive}",
            title="Summary",
        )
    )


def display_category_counts(counts: dict[str, int]) -> None:
    total = sum(counts.values())
    table = Table(title="Categories")
    table.add_column("Category")
    table.add_column("Emails", justify="right")
    table.add_column("Share", justify="right")

    for category, count in counts.items():
        share = count / total if total else 0.0
        table.add_row(category, str(count), f"{share:.0%}")

    console.print(table)


def display_action_report(report: ActionReport, dry_run: bool) -> None:
    color = "green" if report.success and not report.failed else "yellow"
    lines = [f"[bold {color}]{report.message}[/bold {color}]"]
    if report.skipped:
        lines.append(f"Skipped: {report.skipped}")
    for outcome in report.outcomes:
        if not outcome.ok:
            lines.append(f"  - {outcome.message_id}: {outcome.error}")
    title = "Dry Run" if dry_run else "Done"
    console.print(Panel("\n".join(lines), title=title))


def confirm_action(action: str, count: int) -> bool:
    """Prompt the user to confirm a destructive bulk action."""
    console.print(
        Panel(
            f"[bold]{action}[/bold] will be applied to [bold]{count}[/bold] emails.",
            title="Confirm",
        )
    )
    answer = Prompt.ask(f'[bold red]Type "{action.upper()}" to confirm[/bold red]', console=console)
    return answer == action.upper()
