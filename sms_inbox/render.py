"""
HTML rendering of the inbox page.

Every provider-controlled value goes through `html.escape` at the point it is
inserted. Markup produced here (rows, OTP badges) is never escaped again.
"""

from html import escape
from typing import Iterable, Optional, Tuple

from sms_inbox.otp import extract_otp

PAGE_TITLE = "SMS Inbox"

STYLE = """
  body {
    font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
    background: #050816;
    color: #e5e7eb;
    margin: 0;
    padding: 20px;
  }
  h1 { margin-bottom: 10px; }
  .subtitle { color: #9ca3af; margin-bottom: 20px; }
  table {
    border-collapse: collapse;
    width: 100%;
    background: #0b1120;
    border-radius: 12px;
    overflow: hidden;
  }
  th, td {
    padding: 10px 12px;
    border-bottom: 1px solid #111827;
    font-size: 14px;
  }
  th { background: #111827; text-align: left; }
  tr:nth-child(even) { background: #020617; }
  .otp {
    font-weight: bold;
    padding: 2px 6px;
    border-radius: 6px;
    background: #1d4ed8;
    color: white;
    display: inline-block;
    margin-left: 6px;
  }
  .badge {
    display: inline-block;
    font-size: 11px;
    padding: 2px 6px;
    border-radius: 999px;
    background: #111827;
    color: #9ca3af;
    margin-left: 8px;
  }
  .meta { font-size: 12px; color: #9ca3af; }
  .code { font-family: ui-monospace, Menlo, Monaco, Consolas, monospace; }
  .header-row {
    display: flex;
    justify-content: space-between;
    align-items: baseline;
    margin-bottom: 12px;
  }
  .pill {
    border-radius: 999px;
    border: 1px solid #374151;
    padding: 4px 10px;
    font-size: 12px;
    color: #9ca3af;
  }
  a { color: #60a5fa; text-decoration: none; }
"""


def _text(value: Optional[object]) -> str:
    return escape("" if value is None else str(value))


def otp_badge(otp: str) -> str:
    """Inline code badge followed by the secondary OTP tag."""
    return f'<span class="otp">{escape(otp)}</span><span class="badge">OTP</span>'


def render_row(record) -> Tuple[str, bool]:
    """
    Render one record as a table row.

    Returns the markup and whether an OTP badge was attached. A record with
    no body renders an empty message cell rather than failing.
    """
    body = getattr(record, "body", None) or ""
    otp = extract_otp(body)
    badge = otp_badge(otp) if otp else ""

    row = (
        "<tr>"
        f'<td class="code">#{_text(getattr(record, "id", None))}</td>'
        "<td>"
        f'<div class="code">{_text(getattr(record, "from_number", None))}</div>'
        f'<div class="meta">&rarr; {_text(getattr(record, "to_number", None))}</div>'
        "</td>"
        f"<td><span>{escape(body)}</span>{badge}</td>"
        f'<td class="meta">{_text(getattr(record, "created_at", None))}</td>'
        "</tr>"
    )
    return row, otp is not None


def render_rows(records: Iterable) -> Tuple[list, int]:
    """Render every record and count how many carried an OTP badge."""
    rows = []
    otp_count = 0
    for record in records:
        row, has_otp = render_row(record)
        rows.append(row)
        otp_count += has_otp
    return rows, otp_count


def render_inbox(records: Iterable) -> str:
    """
    Render records, in the order given, as a self-contained HTML page.

    The page has a static "Showing N messages" indicator and a refresh link;
    there is no script and no pagination.
    """
    rows, _ = render_rows(records)
    return render_page(rows)


def render_page(rows: list) -> str:
    if rows:
        tbody = "\n".join(rows)
    else:
        tbody = '<tr><td colspan="4" class="meta">No messages yet.</td></tr>'

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <title>{PAGE_TITLE}</title>
  <style>{STYLE}</style>
</head>
<body>
  <div class="header-row">
    <div>
      <h1>{PAGE_TITLE}</h1>
      <div class="subtitle">Verification line inbox. Codes are highlighted as they land.</div>
    </div>
    <div class="pill">
      Showing {len(rows)} messages &middot; <a href="/">Refresh</a>
    </div>
  </div>

  <table>
    <thead>
      <tr>
        <th>ID</th>
        <th>From &rarr; To</th>
        <th>Message</th>
        <th>Received At</th>
      </tr>
    </thead>
    <tbody>
{tbody}
    </tbody>
  </table>
</body>
</html>
"""
