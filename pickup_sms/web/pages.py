"""
Dashboard HTML
==============

Server-rendered operator dashboard. Every value coming from the database
or an upload is escaped before it reaches the page.
"""

from html import escape
from typing import Dict, List, Optional

from ..infrastructure.persistence import JobRunSummary, OptOut, SendLogEntry

SHARED_CSS = """
    :root {
        --bg-dark: #0b1020;
        --bg-card: rgba(255,255,255,0.04);
        --border: rgba(255,255,255,0.08);
        --border-hover: rgba(56,189,248,0.45);
        --text: #e2e8f0;
        --text-muted: #64748b;
        --accent-1: #0ea5e9;
        --accent-2: #22c55e;
        --gradient: linear-gradient(135deg, #0ea5e9 0%, #22c55e 100%);
    }

    * { margin: 0; padding: 0; box-sizing: border-box; }

    body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
        background: var(--bg-dark);
        min-height: 100vh;
        color: var(--text);
    }

    .container { max-width: 1200px; margin: 0 auto; padding: 24px; }

    .card {
        background: var(--bg-card);
        border: 1px solid var(--border);
        border-radius: 14px;
        padding: 24px;
        margin-bottom: 24px;
    }
    .card:hover { border-color: var(--border-hover); }

    h1 {
        font-size: 26px; font-weight: 800;
        background: var(--gradient);
        -webkit-background-clip: text; -webkit-text-fill-color: transparent;
    }
    h2 { font-size: 17px; font-weight: 600; margin-bottom: 16px; }
    .sub { font-size: 13px; color: var(--text-muted); margin-top: 4px; }

    .btn {
        background: var(--gradient);
        color: #fff;
        border: none;
        padding: 10px 22px;
        border-radius: 10px;
        font-weight: 600;
        font-size: 14px;
        cursor: pointer;
        font-family: inherit;
    }
    .btn:hover { opacity: 0.9; }
    .btn-ghost { background: var(--bg-card); border: 1px solid var(--border); color: var(--text); }
    .btn-tiny { padding: 4px 10px; font-size: 11px; border-radius: 6px; }

    .badge {
        padding: 3px 9px;
        border-radius: 6px;
        font-size: 10px;
        font-weight: 600;
        text-transform: uppercase;
    }
    .badge.sent    { background: rgba(34,197,94,0.15); color: #4ade80; }
    .badge.failed  { background: rgba(248,113,113,0.15); color: #f87171; }
    .badge.skipped { background: rgba(148,163,184,0.15); color: #94a3b8; }
    .badge.running { background: rgba(251,191,36,0.15); color: #fbbf24; }

    input[type="text"], input[type="date"], input[type="file"], select {
        background: rgba(255,255,255,0.05);
        border: 1px solid var(--border);
        padding: 10px 14px;
        border-radius: 10px;
        color: var(--text);
        font-size: 14px;
        font-family: inherit;
    }
    label { font-size: 12px; color: var(--text-muted); margin-right: 6px; }

    .alert {
        padding: 12px 18px;
        border-radius: 12px;
        margin-bottom: 20px;
        font-size: 14px;
        background: rgba(14,165,233,0.1);
        border: 1px solid rgba(14,165,233,0.25);
        color: #7dd3fc;
    }

    .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 16px; margin-bottom: 24px; }
    .stat { text-align: center; }
    .stat-val { font-size: 28px; font-weight: 800; }
    .stat-label { font-size: 11px; color: var(--text-muted); text-transform: uppercase; margin-top: 6px; }

    .row { display: flex; gap: 12px; align-items: center; flex-wrap: wrap; margin-bottom: 12px; }

    table { width: 100%; border-collapse: collapse; font-size: 13px; }
    th { text-align: left; color: var(--text-muted); font-weight: 500; padding: 8px; border-bottom: 1px solid var(--border); }
    td { padding: 8px; border-bottom: 1px solid rgba(255,255,255,0.03); }

    code {
        background: rgba(255,255,255,0.06);
        padding: 2px 7px;
        border-radius: 5px;
        font-size: 12px;
        font-family: 'JetBrains Mono', 'Fira Code', monospace;
    }
"""


def _status_badge(status: str) -> str:
    if status == "sent":
        cls = "sent"
    elif status == "failed":
        cls = "failed"
    else:
        cls = "skipped"
    return f'<span class="badge {cls}">{escape(status)}</span>'


def _run_cell(summary: Optional[JobRunSummary]) -> str:
    if summary is None:
        return '<span class="sub">never run</span>'
    state = (
        '<span class="badge running">running</span>'
        if not summary.is_finished
        else ('<span class="badge failed">aborted</span>' if summary.error else '<span class="badge sent">finished</span>')
    )
    mode = " (dry run)" if summary.dry_run else ""
    error = f'<div class="sub">{escape(summary.error)}</div>' if summary.error else ""
    return (
        f"{state}{mode} <code>{escape(summary.started_at)}</code><br>"
        f"fetched {summary.fetched_count} · sent {summary.sent_count} · "
        f"skipped {summary.skipped_count} · failed {summary.failed_count}{error}"
    )


def render_dashboard(
    jobs: Dict[str, str],
    latest_runs: Dict[str, Optional[JobRunSummary]],
    next_runs: Dict[str, str],
    recent_logs: List[SendLogEntry],
    opt_outs: List[OptOut],
    opt_out_count: int,
    link_cities: int,
    link_count: int,
    dry_run: bool,
    message: str = "",
    search: str = "",
) -> str:
    """Render the single-page operator dashboard."""

    job_options = "".join(
        f'<option value="{escape(name)}">{escape(title)}</option>' for name, title in jobs.items()
    )

    job_rows = ""
    for name, title in jobs.items():
        job_rows += f"""
        <tr>
            <td><strong>{escape(title)}</strong><div class="sub"><code>{escape(name)}</code></div></td>
            <td>{_run_cell(latest_runs.get(name))}</td>
            <td><code>{escape(next_runs.get(name) or "not scheduled")}</code></td>
            <td><a href="/api/jobs/{escape(name)}/preview">preview</a></td>
        </tr>"""

    log_rows = ""
    for entry in recent_logs:
        log_rows += f"""
        <tr>
            <td><code>{escape(entry.created_at)}</code></td>
            <td>{escape(entry.feature)}</td>
            <td>{escape(entry.booking_id or "")}</td>
            <td><code>{escape(entry.phone)}</code></td>
            <td>{_status_badge(entry.status)}{" ↩" if entry.used_fallback else ""}</td>
            <td class="sub">{escape(entry.error or entry.provider_message_id or "")}</td>
        </tr>"""
    if not log_rows:
        log_rows = '<tr><td colspan="6" class="sub">No sends logged yet.</td></tr>'

    opt_out_rows = ""
    for o in opt_outs:
        opt_out_rows += f"""
        <tr>
            <td><code>{escape(o.phone_e164)}</code></td>
            <td>{escape(o.source)}</td>
            <td class="sub">{escape(o.note or "")}</td>
            <td><code>{escape(o.created_at)}</code></td>
            <td>
                <form method="post" action="/dashboard/opt-outs/remove" style="display:inline">
                    <input type="hidden" name="phone" value="{escape(o.phone_e164)}">
                    <button type="submit" class="btn btn-ghost btn-tiny">Remove</button>
                </form>
            </td>
        </tr>"""
    if not opt_out_rows:
        opt_out_rows = '<tr><td colspan="5" class="sub">No opt-outs.</td></tr>'

    msg_html = f'<div class="alert">{escape(message)}</div>' if message else ""
    mode = "DRY RUN (no SMS leaves the server)" if dry_run else "LIVE"

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Pickup SMS</title>
    <style>
        {SHARED_CSS}
    </style>
</head>
<body>
<div class="container">
    <div class="card">
        <h1>Pickup SMS</h1>
        <div class="sub">Review requests and locker reminders · mode: {mode}</div>
    </div>

    {msg_html}

    <div class="stats">
        <div class="card stat"><div class="stat-val">{opt_out_count}</div><div class="stat-label">Opt-outs</div></div>
        <div class="card stat"><div class="stat-val">{link_cities}</div><div class="stat-label">Cities with links</div></div>
        <div class="card stat"><div class="stat-val">{link_count}</div><div class="stat-label">Review links</div></div>
    </div>

    <div class="card">
        <h2>Jobs</h2>
        <table>
            <tr><th>Job</th><th>Latest run</th><th>Next run</th><th></th></tr>
            {job_rows}
        </table>
    </div>

    <div class="card">
        <h2>Run a job now</h2>
        <form method="post" action="/dashboard/run">
            <div class="row">
                <label>Job</label><select name="job">{job_options}</select>
                <label>Anchor date</label><input type="date" name="date">
                <label><input type="checkbox" name="dry_run" value="true" checked> Dry run</label>
                <button type="submit" class="btn">Run</button>
            </div>
            <div class="sub">The daily job covers pickups on the day before the anchor (default: yesterday).
            The locker job always covers the previous hour.</div>
        </form>
    </div>

    <div class="card">
        <h2>Opt-outs</h2>
        <form method="post" action="/dashboard/opt-outs/add">
            <div class="row">
                <input type="text" name="phone" placeholder="07400 123456" required>
                <input type="text" name="note" placeholder="Note (optional)">
                <button type="submit" class="btn">Add opt-out</button>
            </div>
        </form>
        <form method="get" action="/">
            <div class="row">
                <input type="text" name="search" value="{escape(search)}" placeholder="Search phone or note">
                <button type="submit" class="btn btn-ghost">Search</button>
            </div>
        </form>
        <table>
            <tr><th>Phone</th><th>Source</th><th>Note</th><th>Since</th><th></th></tr>
            {opt_out_rows}
        </table>
    </div>

    <div class="card">
        <h2>Review links</h2>
        <form method="post" action="/dashboard/review-links" enctype="multipart/form-data">
            <div class="row">
                <input type="file" name="file" accept=".csv" required>
                <button type="submit" class="btn">Upload CSV</button>
            </div>
            <div class="sub">Columns: <code>city</code>, <code>google_review_url</code>, optional <code>stashpoint_name</code>. Max 5 MB.</div>
        </form>
    </div>

    <div class="card">
        <h2>Recent sends</h2>
        <table>
            <tr><th>When</th><th>Job</th><th>Booking</th><th>Phone</th><th>Status</th><th>Detail</th></tr>
            {log_rows}
        </table>
    </div>
</div>
</body>
</html>"""
