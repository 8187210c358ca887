"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  Renderers
are dispatched by ``result.op`` in :func:`render_result`; unknown ops fall
through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from entitlectl.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from entitlectl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"

    items = result.data.get("items") or result.data.get("updated") or result.data.get("processed")
    if items and isinstance(items, list):
        return "\n".join(_extract_id(item) for item in items if _extract_id(item))

    subject = result.data.get("subject")
    if isinstance(subject, dict):
        return str(subject.get("id", ""))
    if result.data.get("id") is not None:
        return str(result.data["id"])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_id(item: Any) -> str:
    if isinstance(item, dict):
        for key in ("id", "subject_id"):
            val = item.get(key)
            if val is not None:
                return str(val)
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="ent.ok"), Text(f"  {result.op}", style="ent.op"))


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="ent.key")
    if isinstance(value, (dict, list)):
        v = Text(_json.dumps(value, separators=(",", ":"), default=str))
    elif key == "id" or key.endswith("_id"):
        v = Text(str(value), style="ent.id")
    elif key.endswith("status"):
        v = Text(str(value), style=style_for_status(str(value)))
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including the telemetry span tree (verbose only)."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    prefix = " " * indent
    duration = span_data.get("duration_ms", 0.0)
    style = "bold red" if duration > 1000 else "yellow" if duration > 100 else "dim"
    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {span_data.get('name', '?')}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += f"  ({', '.join(f'{k}={v}' for k, v in annotations.items())})"
    console.print(line)
    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _styled(value: Any) -> Text:
    text = "" if value is None else str(value)
    return Text(text, style=style_for_status(text))


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    code = err.code if err else "ERROR"
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="ent.error")
    op = Text(f"  {result.op}", style="ent.op")
    console.print(Text.assemble(label, op, f"  [{code}] {msg}"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Subject renderers ─────────────────────────────────────────────────


def _issued_label(subject: dict[str, Any]) -> str:
    return "issued" if subject.get("artifact_issued") else "none"


def _subject_panel(subject: dict[str, Any], *, title: str, extra: list[str] | None = None) -> Panel:
    lines = [
        f"slug: {subject.get('public_slug')}",
        f"owner: {subject.get('owner_id')}",
        f"payment_status: [{style_for_status(str(subject.get('payment_status')))}]"
        f"{subject.get('payment_status')}[/]",
        f"published: {'yes' if subject.get('is_published') else 'no'}",
        f"artifact: {subject.get('artifact_ref') or _issued_label(subject)}",
        f"version: {subject.get('version')}",
    ]
    lines.extend(extra or [])
    return Panel("\n".join(lines), title=title, border_style="dim", expand=False)


def _render_subject(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render get_subject as a panel."""
    d = result.data
    extra: list[str] = []
    if d.get("public_link"):
        extra.append(f"link: {d['public_link']}")
    owner = d.get("owner")
    if owner:
        extra.append(f"owner email: {owner.get('email')} ({owner.get('classification')})")
    sub = d.get("subscription")
    if sub:
        extra.append(
            f"subscription: #{sub.get('id')} {sub.get('status')} "
            f"next billing {sub.get('next_billing_date') or '-'}"
        )
    else:
        extra.append("subscription: none")
    console.print(_subject_panel(d["subject"], title=str(d["subject"].get("id")), extra=extra))
    if verbose:
        _render_meta(console, result)


def _render_transition(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render update_payment_status / set_publication / cancel."""
    _status_line(console, result)
    d = result.data
    subject = d.get("subject", {})
    _field(console, "id", subject.get("id"))
    if "previous_status" in d:
        _field(console, "previous_status", d["previous_status"])
    _field(console, "payment_status", subject.get("payment_status"))
    _field(console, "is_published", subject.get("is_published"))
    for key in (
        "changed",
        "coerced",
        "next_billing_date",
        "artifact_queued",
        "subscription_id",
        "payment_id",
    ):
        if key in d and d[key] is not None:
            _field(console, key, d[key])
    effects = d.get("side_effects")
    if effects and effects.get("dispatched"):
        _field(console, "side_effects_delivered", effects.get("delivered", 0))
    if subject.get("artifact_ref"):
        _field(console, "artifact_ref", subject["artifact_ref"])
    if verbose:
        _render_meta(console, result)


# ── Batch renderers ───────────────────────────────────────────────────


def _render_reconcile(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "updated_count", d.get("updated_count", 0))
    _field(console, "errors", len(d.get("errors", [])))
    if d.get("aborted"):
        _field(console, "aborted", True)
    if d.get("lease_lost"):
        _field(console, "lease_lost", True)

    updated = d.get("updated", [])
    if updated:
        table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
        table.add_column("Subject", style="ent.id", no_wrap=True)
        table.add_column("Owner")
        table.add_column("Reason")
        table.add_column("Since")
        table.add_column("Expired")
        for item in updated:
            table.add_row(
                str(item.get("subject_id")),
                str(item.get("owner_id")),
                str(item.get("reason")),
                str(item.get("billing_date") or item.get("last_payment_date") or "-"),
                "yes" if item.get("expired") else "",
            )
        console.print(table)

    for err in d.get("errors", []):
        subject_id, message = err.get("subject_id"), err.get("message")
        console.print(f"  [ent.error]error[/ent.error] {subject_id}: {message}")
    if verbose:
        _render_meta(console, result)


def _outbox_table(rows: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="ent.id", justify="right")
    table.add_column("Subject", no_wrap=True)
    table.add_column("Effect")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Error")
    for row in rows:
        table.add_row(
            str(row.get("id")),
            str(row.get("subject_id")),
            str(row.get("effect")),
            _styled(row.get("status")),
            str(row.get("retries", "")),
            str(row.get("error") or ""),
        )
    return table


def _render_outbox_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    if items:
        console.print(_outbox_table(items))
    console.print(f"\n{result.data.get('count', len(items))} undelivered")


def _render_dispatch(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "delivered", d.get("delivered", 0))
    _field(console, "failed", d.get("failed", 0))
    processed = d.get("processed", [])
    if processed:
        console.print(_outbox_table(processed))
    if verbose:
        _render_meta(console, result)


def _render_audit(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("Actor")
    table.add_column("Change")
    table.add_column("Target", style="ent.id", no_wrap=True)
    table.add_column("Description")
    if verbose:
        table.add_column("Detail", style="dim")
    for item in items:
        row = [
            str(item.get("occurred_at", "")),
            f"{item.get('actor_label')} ({item.get('actor_id')})",
            str(item.get("change_type", "")),
            str(item.get("target_id") or ""),
            str(item.get("description") or ""),
        ]
        if verbose:
            row.append(_json.dumps(item.get("detail") or {}, separators=(",", ":")))
        table.add_row(*row)
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} entries")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "get_subject": _render_subject,
    "update_payment_status": _render_transition,
    "set_publication": _render_transition,
    "cancel": _render_transition,
    "reconcile": _render_reconcile,
    "dispatch_side_effects": _render_dispatch,
    "list_outbox": _render_outbox_list,
    "query_audit": _render_audit,
}
