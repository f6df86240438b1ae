from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Optional, Sequence

from .contracts import localized
from .filters import format_currency, format_date, initials
from .i18n import translate

NAV_ITEMS = (
    ("dashboard", "/"),
    ("clients", "/clients"),
    ("cases", "/cases"),
    ("bonds", "/bonds"),
    ("financial", "/financial"),
    ("documents", "/documents"),
    ("reports", "/reports"),
    ("notifications", "/notifications"),
    ("contracts", "/contracts"),
    ("settings", "/settings"),
    ("help", "/help"),
)


@dataclass
class Chrome:
    """Values every staff page shows around its content."""

    language: str = "en"
    agency_name: str = "BailBond Pro"
    unread: int = 0
    backend: str = "memory"


def _t(chrome: Chrome, key: str) -> str:
    return escape(translate(key, chrome.language))


def _status_badge(chrome: Chrome, status: Optional[str]) -> str:
    value = status or "unknown"
    label = translate(f"status.{value}", chrome.language, value.replace("_", " ").title())
    return f'<span class="badge" data-status="{escape(value)}">{escape(label)}</span>'


def _name(row: Dict[str, Any], prefix: str = "") -> str:
    first = row.get(f"{prefix}first_name") or ""
    last = row.get(f"{prefix}last_name") or ""
    return escape(f"{first} {last}".strip() or "-")


def _option_list(chrome: Chrome, values: Sequence[str], selected: Optional[str], prefix: str = "status") -> str:
    options = [f'<option value="all">{_t(chrome, "filter.all")}</option>']
    for value in values:
        label = translate(f"{prefix}.{value}", chrome.language, value)
        marker = " selected" if value == selected else ""
        options.append(f'<option value="{escape(value)}"{marker}>{escape(label)}</option>')
    return "".join(options)


def _empty_row(chrome: Chrome, columns: int) -> str:
    return f'<tr><td colspan="{columns}" class="empty">{_t(chrome, "empty.none")}</td></tr>'


def _stat_card(label: str, value: str) -> str:
    return f'<div class="stat"><div class="stat-label">{label}</div><div class="stat-value">{escape(value)}</div></div>'


def _layout(chrome: Chrome, active: str, title: str, body: str) -> str:
    nav_links = []
    for key, href in NAV_ITEMS:
        label = _t(chrome, f"nav.{key}")
        if key == "notifications" and chrome.unread:
            label += f' <span class="count">{chrome.unread}</span>'
        current = ' class="active"' if key == active else ""
        nav_links.append(f'<a href="{href}"{current}>{label}</a>')
    other = "es" if chrome.language == "en" else "en"
    return f"""<!DOCTYPE html>
<html lang=\"{escape(chrome.language)}\">
<head>
  <meta charset=\"utf-8\" />
  <title>{escape(title)} · {escape(chrome.agency_name)}</title>
  <style>
    :root {{
      color-scheme: light;
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      --border: #d5d9e2;
      --accent: #1e40af;
      --muted: #64748b;
      --panel: #ffffff;
      --danger: #b91c1c;
      --warn: #b45309;
      --ok: #047857;
    }}
    body {{
      margin: 0;
      display: grid;
      grid-template-columns: 220px 1fr;
      min-height: 100vh;
      background: #f4f6fa;
      color: #0f172a;
    }}
    aside {{
      background: #0f1f46;
      color: #e2e8f0;
      padding: 1.25rem 0.9rem;
      display: flex;
      flex-direction: column;
      gap: 0.3rem;
    }}
    aside .brand {{
      font-weight: 700;
      font-size: 1.1rem;
      margin-bottom: 1rem;
    }}
    aside a {{
      color: inherit;
      text-decoration: none;
      padding: 0.45rem 0.6rem;
      border-radius: 6px;
      font-size: 0.9rem;
    }}
    aside a.active, aside a:hover {{
      background: rgba(255, 255, 255, 0.12);
    }}
    aside .count {{
      background: var(--danger);
      border-radius: 999px;
      padding: 0 0.45rem;
      font-size: 0.75rem;
    }}
    aside .footer {{
      margin-top: auto;
      font-size: 0.75rem;
      color: #94a3b8;
    }}
    main {{
      padding: 1.5rem 2rem;
      display: flex;
      flex-direction: column;
      gap: 1.25rem;
    }}
    h1 {{
      margin: 0;
      font-size: 1.5rem;
    }}
    .panel {{
      background: var(--panel);
      border: 1px solid var(--border);
      border-radius: 10px;
      padding: 1rem 1.25rem;
    }}
    .panel h2 {{
      margin-top: 0;
      font-size: 1.05rem;
    }}
    .stats {{
      display: grid;
      grid-template-columns: repeat(auto-fit, minmax(180px, 1fr));
      gap: 0.9rem;
    }}
    .stat {{
      background: var(--panel);
      border: 1px solid var(--border);
      border-radius: 10px;
      padding: 0.9rem 1rem;
    }}
    .stat-label {{
      color: var(--muted);
      font-size: 0.8rem;
    }}
    .stat-value {{
      font-size: 1.4rem;
      font-weight: 700;
    }}
    table {{
      width: 100%;
      border-collapse: collapse;
      font-size: 0.88rem;
    }}
    th, td {{
      text-align: left;
      padding: 0.45rem 0.5rem;
      border-bottom: 1px solid var(--border);
    }}
    th {{
      color: var(--muted);
      font-weight: 600;
    }}
    td.empty {{
      color: var(--muted);
      text-align: center;
    }}
    .badge {{
      padding: 0.15rem 0.5rem;
      border-radius: 999px;
      font-size: 0.75rem;
      background: #e2e8f0;
    }}
    .badge[data-status="active"], .badge[data-status="paid_full"], .badge[data-status="completed"] {{
      background: #d1fae5;
      color: var(--ok);
    }}
    .badge[data-status="at_risk"], .badge[data-status="overdue"], .badge[data-status="high_risk"],
    .badge[data-status="forfeited"], .badge[data-status="critical"] {{
      background: #fee2e2;
      color: var(--danger);
    }}
    .badge[data-status="pending"], .badge[data-status="partial"], .badge[data-status="high"] {{
      background: #fef3c7;
      color: var(--warn);
    }}
    form.filters {{
      display: flex;
      gap: 0.6rem;
      flex-wrap: wrap;
      align-items: flex-end;
    }}
    label {{
      font-size: 0.8rem;
      font-weight: 600;
      display: flex;
      flex-direction: column;
      gap: 0.3rem;
    }}
    input, select, textarea {{
      border: 1px solid var(--border);
      border-radius: 6px;
      padding: 0.4rem 0.55rem;
      font-size: 0.9rem;
      font-family: inherit;
    }}
    textarea {{
      min-height: 90px;
    }}
    button {{
      padding: 0.42rem 0.85rem;
      border-radius: 6px;
      border: 1px solid var(--accent);
      background: var(--accent);
      color: #fff;
      cursor: pointer;
    }}
    button.secondary {{
      background: transparent;
      color: var(--accent);
    }}
    .tabs a {{
      margin-right: 0.8rem;
      color: var(--accent);
      text-decoration: none;
    }}
    .notice {{
      padding: 0.6rem 0.9rem;
      border-radius: 8px;
      background: #dbeafe;
    }}
    .notice.error {{
      background: #fee2e2;
    }}
    .bar {{
      height: 0.6rem;
      background: var(--accent);
      border-radius: 4px;
    }}
    .avatar {{
      display: inline-block;
      width: 1.8rem;
      height: 1.8rem;
      line-height: 1.8rem;
      border-radius: 50%;
      background: #e0e7ff;
      text-align: center;
      font-size: 0.75rem;
      margin-right: 0.4rem;
    }}
    pre.contract {{
      white-space: pre-wrap;
      background: #f8fafc;
      padding: 0.8rem;
      border-radius: 6px;
    }}
  </style>
</head>
<body>
  <aside>
    <div class=\"brand\">{escape(chrome.agency_name)}</div>
    {"".join(nav_links)}
    <div class=\"footer\">
      <a href=\"/language/{other}\">{'Español' if other == 'es' else 'English'}</a><br />
      <a href=\"/portal/login\">{_t(chrome, "nav.portal")}</a><br />
      Storage: {escape(chrome.backend)}
    </div>
  </aside>
  <main>
    <h1>{escape(title)}</h1>
    {body}
  </main>
</body>
</html>"""


def render_dashboard(
    chrome: Chrome,
    stats: Dict[str, Any],
    activity: List[Dict[str, Any]],
    court_dates: List[Dict[str, Any]],
) -> str:
    cards = "".join(
        [
            _stat_card(_t(chrome, "stats.active_bonds"), str(stats.get("activeBonds", 0))),
            _stat_card(_t(chrome, "stats.total_revenue"), format_currency(stats.get("totalRevenue"))),
            _stat_card(_t(chrome, "stats.pending_payments"), format_currency(stats.get("pendingPayments"))),
            _stat_card(_t(chrome, "stats.upcoming_court_dates"), str(stats.get("upcomingCourtDates", 0))),
        ]
    )
    activity_rows = "".join(
        f"<tr><td>{_name(item)}</td><td>{escape(str(item.get('action') or ''))}</td>"
        f"<td>{escape(str(item.get('resource_type') or ''))}</td>"
        f"<td>{escape(format_date(item.get('created_at')))}</td></tr>"
        for item in activity
    ) or _empty_row(chrome, 4)
    court_rows = "".join(
        f"<tr><td>{escape(str(case.get('case_number') or ''))}</td><td>{_name(case)}</td>"
        f"<td>{escape(format_date(case.get('court_date')))}</td>"
        f"<td>{escape(str(case.get('court_location') or ''))}</td></tr>"
        for case in court_dates
    ) or _empty_row(chrome, 4)
    body = f"""
    <section class=\"stats\">{cards}</section>
    <section class=\"panel\">
      <h2>{_t(chrome, "section.upcoming_court")}</h2>
      <table><thead><tr><th>{_t(chrome, "label.case_number")}</th><th>{_t(chrome, "label.client")}</th><th>{_t(chrome, "label.court_date")}</th><th></th></tr></thead>
      <tbody>{court_rows}</tbody></table>
    </section>
    <section class=\"panel\">
      <h2>{_t(chrome, "section.recent_activity")}</h2>
      <table><tbody>{activity_rows}</tbody></table>
    </section>"""
    return _layout(chrome, "dashboard", translate("page.dashboard", chrome.language), body)


def render_clients_page(
    chrome: Chrome,
    clients: List[Dict[str, Any]],
    search: str,
    status: str,
) -> str:
    rows = "".join(
        f"<tr><td><span class=\"avatar\">{escape(initials(client.get('first_name'), client.get('last_name')))}</span>"
        f"<a href=\"/clients/{escape(str(client.get('id')))}\">{_name(client)}</a></td>"
        f"<td>{escape(str(client.get('phone') or ''))}</td>"
        f"<td>{escape(str(client.get('email') or ''))}</td>"
        f"<td>{_status_badge(chrome, client.get('status'))}</td>"
        f"<td>{escape(str(client.get('total_bonds', 0)))}</td>"
        f"<td>{escape(format_date(client.get('last_checkin')))}</td></tr>"
        for client in clients
    ) or _empty_row(chrome, 6)
    body = f"""
    <section class=\"panel\">
      <form class=\"filters\" method=\"get\" action=\"/clients\">
        <label>{_t(chrome, "action.search")}<input type=\"search\" name=\"search\" value=\"{escape(search)}\" /></label>
        <label>{_t(chrome, "label.status")}<select name=\"status\">{_option_list(chrome, ("active", "inactive", "high_risk"), status)}</select></label>
        <button type=\"submit\">{_t(chrome, "action.filter")}</button>
      </form>
    </section>
    <section class=\"panel\">
      <table>
        <thead><tr><th>{_t(chrome, "label.name")}</th><th>{_t(chrome, "label.phone")}</th><th>{_t(chrome, "label.email")}</th><th>{_t(chrome, "label.status")}</th><th>{_t(chrome, "nav.bonds")}</th><th>{_t(chrome, "label.last_checkin")}</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </section>"""
    return _layout(chrome, "clients", translate("page.clients", chrome.language), body)


def render_client_detail(
    chrome: Chrome,
    client: Dict[str, Any],
    cases: List[Dict[str, Any]],
    bonds: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
    documents: List[Dict[str, Any]],
    checkins: List[Dict[str, Any]],
) -> str:
    details = [
        ("label.phone", client.get("phone")),
        ("label.email", client.get("email")),
        ("label.status", None),
        ("label.last_checkin", format_date(client.get("last_checkin"))),
    ]
    detail_rows = "".join(
        f"<tr><th>{_t(chrome, key)}</th><td>{_status_badge(chrome, client.get('status')) if value is None else escape(str(value or ''))}</td></tr>"
        for key, value in details
    )
    address = ", ".join(
        str(part) for part in (client.get("address"), client.get("city"), client.get("state"), client.get("zip_code")) if part
    )
    case_rows = "".join(
        f"<tr><td>{escape(str(case.get('case_number') or ''))}</td><td>{escape(str(case.get('charges') or ''))}</td>"
        f"<td>{escape(format_date(case.get('court_date')))}</td><td>{_status_badge(chrome, case.get('status'))}</td></tr>"
        for case in cases
    ) or _empty_row(chrome, 4)
    bond_rows = "".join(
        f"<tr><td>{escape(str(bond.get('bond_number') or ''))}</td><td>{escape(format_currency(bond.get('bond_amount')))}</td>"
        f"<td>{escape(format_currency(bond.get('premium_amount')))}</td><td>{_status_badge(chrome, bond.get('status'))}</td>"
        f"<td>{_status_badge(chrome, bond.get('payment_status'))}</td></tr>"
        for bond in bonds
    ) or _empty_row(chrome, 5)
    payment_rows = "".join(
        f"<tr><td>{escape(str(payment.get('transaction_id') or ''))}</td><td>{escape(format_currency(payment.get('amount')))}</td>"
        f"<td>{escape(str(payment.get('payment_method') or ''))}</td><td>{_status_badge(chrome, payment.get('status'))}</td>"
        f"<td>{escape(format_date(payment.get('payment_date')))}</td></tr>"
        for payment in payments
    ) or _empty_row(chrome, 5)
    document_rows = "".join(
        f"<tr><td>{escape(str(document.get('original_name') or ''))}</td>"
        f"<td>{escape(translate('category.' + str(document.get('category')), chrome.language, str(document.get('category'))))}</td>"
        f"<td>{escape(format_date(document.get('created_at')))}</td></tr>"
        for document in documents
    ) or _empty_row(chrome, 3)
    checkin_rows = "".join(
        f"<tr><td>{escape(format_date(checkin.get('created_at')))}</td><td>{escape(str(checkin.get('location_name') or ''))}</td>"
        f"<td>{_status_badge(chrome, checkin.get('status'))}</td></tr>"
        for checkin in checkins
    ) or _empty_row(chrome, 3)
    body = f"""
    <section class=\"panel\">
      <h2><span class=\"avatar\">{escape(initials(client.get('first_name'), client.get('last_name')))}</span>{_name(client)}</h2>
      <p>{escape(address)}</p>
      <table>{detail_rows}</table>
    </section>
    <section class=\"panel\"><h2>{_t(chrome, "nav.cases")}</h2><table><tbody>{case_rows}</tbody></table></section>
    <section class=\"panel\"><h2>{_t(chrome, "nav.bonds")}</h2><table><tbody>{bond_rows}</tbody></table></section>
    <section class=\"panel\"><h2>{_t(chrome, "nav.financial")}</h2><table><tbody>{payment_rows}</tbody></table></section>
    <section class=\"panel\"><h2>{_t(chrome, "nav.documents")}</h2><table><tbody>{document_rows}</tbody></table></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.checkins")}</h2><table><tbody>{checkin_rows}</tbody></table></section>"""
    return _layout(chrome, "clients", translate("page.client", chrome.language), body)


def _court_filter(chrome: Chrome, court_date: str) -> str:
    return f'<label>{_t(chrome, "label.court_date")}<input type="date" name="court_date" value="{escape(court_date)}" /></label>'


def render_cases_page(
    chrome: Chrome,
    cases: List[Dict[str, Any]],
    client_names: Dict[str, str],
    search: str,
    status: str,
    court_date: str,
) -> str:
    rows = "".join(
        f"<tr><td>{escape(str(case.get('case_number') or ''))}</td>"
        f"<td><a href=\"/clients/{escape(str(case.get('client_id') or ''))}\">{escape(client_names.get(case.get('client_id'), '-'))}</a></td>"
        f"<td>{escape(str(case.get('charges') or ''))}</td>"
        f"<td>{escape(format_date(case.get('court_date')))}</td>"
        f"<td>{escape(str(case.get('court_location') or ''))}</td>"
        f"<td>{_status_badge(chrome, case.get('status'))}</td></tr>"
        for case in cases
    ) or _empty_row(chrome, 6)
    body = f"""
    <section class=\"panel\">
      <form class=\"filters\" method=\"get\" action=\"/cases\">
        <label>{_t(chrome, "action.search")}<input type=\"search\" name=\"search\" value=\"{escape(search)}\" /></label>
        <label>{_t(chrome, "label.status")}<select name=\"status\">{_option_list(chrome, ("open", "closed", "dismissed"), status)}</select></label>
        {_court_filter(chrome, court_date)}
        <button type=\"submit\">{_t(chrome, "action.filter")}</button>
      </form>
    </section>
    <section class=\"panel\">
      <table>
        <thead><tr><th>{_t(chrome, "label.case_number")}</th><th>{_t(chrome, "label.client")}</th><th>{_t(chrome, "label.charges")}</th><th>{_t(chrome, "label.court_date")}</th><th></th><th>{_t(chrome, "label.status")}</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </section>"""
    return _layout(chrome, "cases", translate("page.cases", chrome.language), body)


def render_bonds_page(
    chrome: Chrome,
    bonds: List[Dict[str, Any]],
    counts: Dict[str, int],
    search: str,
    status: str,
    court_date: str,
) -> str:
    tabs = " ".join(
        f'<a href="/bonds?status={escape(key)}">{escape(translate("status." + key, chrome.language, translate("filter.all", chrome.language)))} ({counts.get(key, 0)})</a>'
        for key in ("all", "active", "completed", "at_risk", "forfeited")
    )
    rows = "".join(
        f"<tr><td>{escape(str(bond.get('bond_number') or ''))}</td>"
        f"<td>{_name(bond, 'client_')}</td>"
        f"<td>{escape(str(bond.get('client_phone') or ''))}</td>"
        f"<td>{escape(format_currency(bond.get('bond_amount')))}</td>"
        f"<td>{escape(format_currency(bond.get('premium_amount')))}</td>"
        f"<td>{escape(format_date(bond.get('court_date')))}</td>"
        f"<td>{_status_badge(chrome, bond.get('status'))}</td>"
        f"<td>{_status_badge(chrome, bond.get('payment_status'))}</td></tr>"
        for bond in bonds
    ) or _empty_row(chrome, 8)
    body = f"""
    <section class=\"panel tabs\">{tabs}</section>
    <section class=\"panel\">
      <form class=\"filters\" method=\"get\" action=\"/bonds\">
        <label>{_t(chrome, "action.search")}<input type=\"search\" name=\"search\" value=\"{escape(search)}\" /></label>
        <label>{_t(chrome, "label.status")}<select name=\"status\">{_option_list(chrome, ("active", "completed", "at_risk", "forfeited"), status)}</select></label>
        {_court_filter(chrome, court_date)}
        <button type=\"submit\">{_t(chrome, "action.filter")}</button>
      </form>
    </section>
    <section class=\"panel\">
      <table>
        <thead><tr><th>{_t(chrome, "label.bond_number")}</th><th>{_t(chrome, "label.client")}</th><th>{_t(chrome, "label.phone")}</th><th>{_t(chrome, "label.amount")}</th><th>{_t(chrome, "label.premium")}</th><th>{_t(chrome, "label.court_date")}</th><th>{_t(chrome, "label.status")}</th><th></th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </section>"""
    return _layout(chrome, "bonds", translate("page.bonds", chrome.language), body)


def _revenue_bars(months: List[Dict[str, Any]]) -> str:
    peak = max((month.get("total") or 0 for month in months), default=0) or 1
    return "".join(
        f"<tr><td>{escape(month.get('label', ''))}</td>"
        f"<td style=\"width:60%\"><div class=\"bar\" style=\"width:{round((month.get('total') or 0) / peak * 100)}%\"></div></td>"
        f"<td>{escape(format_currency(month.get('total')))}</td></tr>"
        for month in months
    )


def render_financial_page(
    chrome: Chrome,
    summary: Dict[str, Any],
    payments: List[Dict[str, Any]],
    months: List[Dict[str, Any]],
) -> str:
    cards = "".join(
        [
            _stat_card(_t(chrome, "stats.monthly_revenue"), format_currency(summary.get("monthlyRevenue"))),
            _stat_card(_t(chrome, "stats.outstanding"), format_currency(summary.get("outstanding"))),
            _stat_card(_t(chrome, "stats.collection_rate"), f"{summary.get('collectionRate', 0)}%"),
        ]
    )
    rows = "".join(
        f"<tr><td>{escape(str(payment.get('transaction_id') or ''))}</td>"
        f"<td>{escape(format_currency(payment.get('amount')))}</td>"
        f"<td>{escape(str(payment.get('payment_type') or ''))}</td>"
        f"<td>{escape(str(payment.get('payment_method') or ''))}</td>"
        f"<td>{_status_badge(chrome, payment.get('status'))}</td>"
        f"<td>{escape(format_date(payment.get('payment_date')))}</td></tr>"
        for payment in payments
    ) or _empty_row(chrome, 6)
    body = f"""
    <section class=\"stats\">{cards}</section>
    <section class=\"panel\"><h2>{_t(chrome, "section.revenue")}</h2><table>{_revenue_bars(months)}</table></section>
    <section class=\"panel\">
      <table>
        <thead><tr><th>ID</th><th>{_t(chrome, "label.amount")}</th><th></th><th></th><th>{_t(chrome, "label.status")}</th><th></th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </section>"""
    return _layout(chrome, "financial", translate("page.financial", chrome.language), body)


def render_documents_page(
    chrome: Chrome,
    documents: List[Dict[str, Any]],
    counts: Dict[str, int],
    category: str,
    notice: Optional[str] = None,
    error: bool = False,
) -> str:
    tabs = " ".join(
        f'<a href="/documents?category={escape(key)}">{escape(translate("category." + key, chrome.language, translate("filter.all", chrome.language)))} ({counts.get(key, 0)})</a>'
        for key in ("all", "contract", "court_papers", "identification", "financial")
    )
    rows = "".join(
        f"<tr><td>{escape(str(document.get('original_name') or ''))}</td>"
        f"<td>{escape(translate('category.' + str(document.get('category')), chrome.language, str(document.get('category'))))}</td>"
        f"<td>{escape(str(document.get('related_type') or ''))}</td>"
        f"<td>{round((document.get('file_size') or 0) / 1024)} KB</td>"
        f"<td>{escape(format_date(document.get('created_at')))}</td></tr>"
        for document in documents
    ) or _empty_row(chrome, 5)
    notice_html = (
        f'<div class="notice{" error" if error else ""}">{escape(notice)}</div>' if notice else ""
    )
    category_options = "".join(
        f'<option value="{value}">{_t(chrome, "category." + value)}</option>'
        for value in ("contract", "court_papers", "identification", "financial")
    )
    body = f"""
    {notice_html}
    <section class=\"panel tabs\">{tabs}</section>
    <section class=\"panel\">
      <h2>{_t(chrome, "action.upload")}</h2>
      <form class=\"filters\" method=\"post\" action=\"/documents\" enctype=\"multipart/form-data\">
        <label>{_t(chrome, "label.file")}<input type=\"file\" name=\"files\" multiple required /></label>
        <label>{_t(chrome, "label.category")}<select name=\"category\">{category_options}</select></label>
        <button type=\"submit\">{_t(chrome, "action.upload")}</button>
      </form>
    </section>
    <section class=\"panel\">
      <table>
        <thead><tr><th>{_t(chrome, "label.file")}</th><th>{_t(chrome, "label.category")}</th><th></th><th>{_t(chrome, "label.size")}</th><th>{_t(chrome, "label.uploaded")}</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </section>"""
    return _layout(chrome, "documents", translate("page.documents", chrome.language), body)


def render_reports_page(chrome: Chrome, summary: Dict[str, Any]) -> str:
    performance = summary.get("performance") or {}
    analytics = summary.get("clients") or {}
    cards = "".join(
        [
            _stat_card(escape("Bonds"), str(performance.get("bondsCreated", 0))),
            _stat_card(_t(chrome, "stats.monthly_revenue"), format_currency(performance.get("revenue"))),
            _stat_card(escape("Success rate"), f"{performance.get('successRate', 0)}%"),
            _stat_card(escape("New clients (30d)"), str(analytics.get("newClients", 0))),
            _stat_card(escape("Repeat clients"), str(analytics.get("repeatClients", 0))),
            _stat_card(escape("Retention"), f"{analytics.get('retention', 0)}%"),
        ]
    )
    status_rows = "".join(
        f"<tr><td>{_status_badge(chrome, item.get('status'))}</td><td>{item.get('count', 0)}</td></tr>"
        for item in summary.get("bondStatus") or []
    ) or _empty_row(chrome, 2)
    risk_rows = "".join(
        f"<tr><td>{escape(level.title())}</td><td>{values.get('count', 0)}</td><td>{values.get('percent', 0)}%</td></tr>"
        for level, values in (summary.get("risk") or {}).items()
    )
    method_rows = "".join(
        f"<tr><td>{escape(method)}</td><td>{values.get('count', 0)}</td><td>{escape(format_currency(values.get('total')))}</td></tr>"
        for method, values in (summary.get("paymentMethods") or {}).items()
    ) or _empty_row(chrome, 3)
    exports = " ".join(
        f'<a href="/api/reports/export.csv?kind={kind}">{_t(chrome, "action.export")} ({kind})</a>'
        for kind in ("bonds", "clients", "payments")
    )
    body = f"""
    <section class=\"panel\"><h2>{_t(chrome, "section.performance")}</h2><div class=\"stats\">{cards}</div></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.revenue")}</h2><table>{_revenue_bars(summary.get("monthlyRevenue") or [])}</table></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.bond_status")}</h2><table>{status_rows}</table></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.risk")}</h2><table>{risk_rows}</table></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.payment_methods")}</h2><table>{method_rows}</table></section>
    <section class=\"panel tabs\">{exports}</section>"""
    return _layout(chrome, "reports", translate("page.reports", chrome.language), body)


def render_notifications_page(
    chrome: Chrome,
    notifications: List[Dict[str, Any]],
    rules: List[Dict[str, Any]],
    status: str,
) -> str:
    spanish = chrome.language == "es"
    rows = []
    for item in notifications:
        title = (item.get("title_es") if spanish else None) or item.get("title") or ""
        message = (item.get("message_es") if spanish else None) or item.get("message") or ""
        item_id = escape(str(item.get("id")))
        actions = ""
        if item.get("status") in ("pending", "sent"):
            actions = (
                f'<form method="post" action="/notifications/{item_id}/read" style="display:inline"><button class="secondary">{_t(chrome, "action.mark_read")}</button></form> '
                f'<form method="post" action="/notifications/{item_id}/dismiss" style="display:inline"><button class="secondary">{_t(chrome, "action.dismiss")}</button></form>'
            )
        link = f'<a href="{escape(item["action_url"])}">{escape(title)}</a>' if item.get("action_url") else escape(title)
        rows.append(
            f"<tr><td><span class=\"badge\" data-status=\"{escape(str(item.get('priority')))}\">{escape(str(item.get('priority')))}</span></td>"
            f"<td>{link}<br /><small>{escape(message)}</small></td>"
            f"<td>{_status_badge(chrome, item.get('status'))}</td>"
            f"<td>{escape(format_date(item.get('created_at')))}</td><td>{actions}</td></tr>"
        )
    rule_rows = "".join(
        f"<tr><td>{escape((rule.get('name_es') if spanish else None) or rule.get('name') or '')}</td>"
        f"<td>{escape(str(rule.get('trigger') or ''))}</td>"
        f"<td>{escape(str(rule.get('timing') or ''))}</td>"
        f"<td>{escape(', '.join(rule.get('recipients') or []))}</td>"
        f"<td>{'✓' if rule.get('is_active') else '–'}</td></tr>"
        for rule in rules
    ) or _empty_row(chrome, 5)
    body = f"""
    <section class=\"panel\">
      <form class=\"filters\" method=\"get\" action=\"/notifications\">
        <label>{_t(chrome, "label.status")}<select name=\"status\">{_option_list(chrome, ("pending", "sent", "read", "dismissed"), status)}</select></label>
        <button type=\"submit\">{_t(chrome, "action.filter")}</button>
      </form>
      <form method=\"post\" action=\"/notifications/scan\"><button class=\"secondary\">{_t(chrome, "action.scan")}</button></form>
    </section>
    <section class=\"panel\"><table><tbody>{"".join(rows) or _empty_row(chrome, 5)}</tbody></table></section>
    <section class=\"panel\"><h2>{_t(chrome, "section.workflow_rules")}</h2><table><tbody>{rule_rows}</tbody></table></section>"""
    return _layout(chrome, "notifications", translate("page.notifications", chrome.language), body)


def render_contracts_page(
    chrome: Chrome,
    templates: List[Dict[str, Any]],
    contracts: List[Dict[str, Any]],
    client_names: Dict[str, str],
) -> str:
    template_rows = "".join(
        f"<tr><td>{escape(localized(template, 'name', chrome.language))}</td>"
        f"<td>{escape(str(template.get('type') or ''))}</td>"
        f"<td>{escape(localized(template, 'description', chrome.language))}</td>"
        f"<td>{escape(', '.join(template.get('variables') or []))}</td></tr>"
        for template in templates
    ) or _empty_row(chrome, 4)
    contract_blocks = "".join(
        f"<section class=\"panel\"><h2>{escape(client_names.get(contract.get('client_id'), '-'))} "
        f"{_status_badge(chrome, contract.get('status'))}</h2>"
        f"<pre class=\"contract\">{escape(str(contract.get('content') or ''))}</pre></section>"
        for contract in contracts
    )
    body = f"""
    <section class=\"panel\"><table><tbody>{template_rows}</tbody></table></section>
    {contract_blocks}"""
    return _layout(chrome, "contracts", translate("page.contracts", chrome.language), body)


def render_settings_page(
    chrome: Chrome,
    settings: Dict[str, Any],
    health: Dict[str, Any],
    saved: bool = False,
) -> str:
    agency = settings.get("agency") or {}
    gibson = settings.get("gibson") or {}
    assistant = settings.get("assistant") or {}
    reminders = settings.get("notifications") or {}
    state = "ok" if health.get("ok") else "warn"
    notice = '<div class="notice">Settings saved.</div>' if saved else ""
    languages = "".join(
        f'<option value="{code}"{" selected" if agency.get("language") == code else ""}>{label}</option>'
        for code, label in (("en", "English"), ("es", "Español"))
    )
    body = f"""
    {notice}
    <section class=\"panel\">
      <h2>Storage</h2>
      <p><span class=\"badge\" data-status=\"{'active' if state == 'ok' else 'overdue'}\">{escape(str(health.get('backend', chrome.backend)))}</span>
      {escape(str(health.get('error') or ''))}</p>
    </section>
    <section class=\"panel\">
      <form method=\"post\" action=\"/settings\">
        <h2>Agency</h2>
        <label>Name<input name=\"agency_name\" value=\"{escape(str(agency.get('name', '')))}\" /></label>
        <label>{_t(chrome, "label.phone")}<input name=\"agency_phone\" value=\"{escape(str(agency.get('phone', '')))}\" /></label>
        <label>Default premium rate (%)<input name=\"default_premium_rate\" value=\"{escape(str(agency.get('default_premium_rate', 10)))}\" /></label>
        <label>{_t(chrome, "label.language")}<select name=\"language\">{languages}</select></label>
        <h2>Gibson database</h2>
        <label>Base URL<input name=\"gibson_base_url\" value=\"{escape(str(gibson.get('base_url', '')))}\" /></label>
        <label>API key<input type=\"password\" name=\"gibson_api_key\" placeholder=\"{'configured' if gibson.get('api_key') else 'not set'}\" /></label>
        <h2>Assistant</h2>
        <label>Endpoint<input name=\"assistant_base_url\" value=\"{escape(str(assistant.get('base_url', '')))}\" /></label>
        <label>Model<input name=\"assistant_model\" value=\"{escape(str(assistant.get('model', '')))}\" /></label>
        <label>API key<input type=\"password\" name=\"assistant_api_key\" placeholder=\"{'configured' if assistant.get('api_key') else 'not set'}\" /></label>
        <h2>Reminders</h2>
        <label>Court reminder lead (hours)<input name=\"court_reminder_hours\" value=\"{escape(str(reminders.get('court_reminder_hours', 24)))}\" /></label>
        <label>Payment overdue after (days)<input name=\"payment_overdue_days\" value=\"{escape(str(reminders.get('payment_overdue_days', 1)))}\" /></label>
        <label>Check-in interval (days)<input name=\"checkin_interval_days\" value=\"{escape(str(reminders.get('checkin_interval_days', 7)))}\" /></label>
        <label>Scan interval (seconds)<input name=\"scan_interval_seconds\" value=\"{escape(str(reminders.get('scan_interval_seconds', 300)))}\" /></label>
        <button type=\"submit\">{_t(chrome, "action.save")}</button>
      </form>
    </section>"""
    return _layout(chrome, "settings", translate("page.settings", chrome.language), body)


def render_help_page(chrome: Chrome, question: str = "", answer: Optional[str] = None) -> str:
    answer_html = f'<section class="panel"><p>{escape(answer)}</p></section>' if answer else ""
    body = f"""
    <section class=\"panel\">
      <h2>Getting around</h2>
      <ul>
        <li><strong>{_t(chrome, "nav.clients")}</strong>: search by name, phone or email and filter by status.</li>
        <li><strong>{_t(chrome, "nav.cases")}</strong>: track charges, court dates and locations.</li>
        <li><strong>{_t(chrome, "nav.bonds")}</strong>: premiums are the bond amount times the premium rate.</li>
        <li><strong>{_t(chrome, "nav.notifications")}</strong>: reminders are generated from the workflow rules on a schedule.</li>
        <li><strong>{_t(chrome, "nav.portal")}</strong>: clients log in to see court dates and submit check-ins.</li>
      </ul>
    </section>
    <section class=\"panel\">
      <form method=\"post\" action=\"/help\">
        <label>{_t(chrome, "label.question")}<textarea name=\"question\">{escape(question)}</textarea></label>
        <button type=\"submit\">{_t(chrome, "action.ask")}</button>
      </form>
    </section>
    {answer_html}"""
    return _layout(chrome, "help", translate("page.help", chrome.language), body)


def _portal_shell(language: str, title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang=\"{escape(language)}\">
<head>
  <meta charset=\"utf-8\" />
  <title>{escape(title)}</title>
  <style>
    :root {{
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      --border: #d5d9e2;
      --accent: #1e40af;
    }}
    body {{
      margin: 0;
      padding: 1.5rem;
      background: #f4f6fa;
      color: #0f172a;
    }}
    main {{
      max-width: 720px;
      margin: 0 auto;
      display: flex;
      flex-direction: column;
      gap: 1rem;
    }}
    .panel {{
      background: #fff;
      border: 1px solid var(--border);
      border-radius: 10px;
      padding: 1rem 1.25rem;
    }}
    label {{
      display: flex;
      flex-direction: column;
      gap: 0.3rem;
      margin-bottom: 0.7rem;
      font-weight: 600;
      font-size: 0.85rem;
    }}
    input {{
      border: 1px solid var(--border);
      border-radius: 6px;
      padding: 0.45rem 0.6rem;
    }}
    button {{
      padding: 0.45rem 0.9rem;
      border-radius: 6px;
      border: 1px solid var(--accent);
      background: var(--accent);
      color: #fff;
    }}
    .error {{
      color: #b91c1c;
    }}
    table {{
      width: 100%;
      border-collapse: collapse;
    }}
    td, th {{
      text-align: left;
      padding: 0.35rem;
      border-bottom: 1px solid var(--border);
    }}
  </style>
</head>
<body>
  <main>
    <h1>{escape(title)}</h1>
    {body}
  </main>
</body>
</html>"""


def render_portal_login(language: str = "en", error: Optional[str] = None, username: str = "") -> str:
    error_html = f'<p class="error">{escape(error)}</p>' if error else ""
    body = f"""
    <section class=\"panel\">
      <p>{escape(translate("portal.logged_out", language))}</p>
      {error_html}
      <form method=\"post\" action=\"/portal/login\">
        <label>{escape(translate("label.username", language))}<input name=\"username\" value=\"{escape(username)}\" autocomplete=\"username\" /></label>
        <label>{escape(translate("label.password", language))}<input type=\"password\" name=\"password\" autocomplete=\"current-password\" /></label>
        <button type=\"submit\">{escape(translate("action.login", language))}</button>
      </form>
    </section>"""
    return _portal_shell(language, translate("page.portal_login", language), body)


def render_portal_page(
    language: str,
    client: Dict[str, Any],
    bonds: List[Dict[str, Any]],
    court_dates: List[Dict[str, Any]],
    checkins: List[Dict[str, Any]],
) -> str:
    def label(key: str) -> str:
        return escape(translate(key, language))

    bond_rows = "".join(
        f"<tr><td>{escape(str(bond.get('bond_number') or ''))}</td><td>{escape(format_currency(bond.get('bond_amount')))}</td>"
        f"<td>{escape(translate('status.' + str(bond.get('status')), language, str(bond.get('status'))))}</td>"
        f"<td>{escape(translate('status.' + str(bond.get('payment_status')), language, str(bond.get('payment_status'))))}</td></tr>"
        for bond in bonds
    ) or f'<tr><td colspan="4">{label("empty.none")}</td></tr>'
    court_rows = "".join(
        f"<tr><td>{escape(str(case.get('case_number') or ''))}</td><td>{escape(format_date(case.get('court_date')))}</td>"
        f"<td>{escape(str(case.get('court_location') or ''))}</td></tr>"
        for case in court_dates
    ) or f'<tr><td colspan="3">{label("empty.none")}</td></tr>'
    checkin_rows = "".join(
        f"<tr><td>{escape(format_date(checkin.get('created_at')))}</td><td>{escape(str(checkin.get('location_name') or ''))}</td></tr>"
        for checkin in checkins
    ) or f'<tr><td colspan="2">{label("empty.none")}</td></tr>'
    body = f"""
    <section class=\"panel\">
      <h2>{_name(client)}</h2>
      <p>{label("label.last_checkin")}: {escape(format_date(client.get("last_checkin")))}</p>
      <form method=\"post\" action=\"/portal/logout\"><button type=\"submit\">{label("action.logout")}</button></form>
    </section>
    <section class=\"panel\"><h2>{label("section.upcoming_court")}</h2><table>{court_rows}</table></section>
    <section class=\"panel\"><h2>{label("nav.bonds")}</h2><table>{bond_rows}</table></section>
    <section class=\"panel\"><h2>{label("section.checkins")}</h2><table>{checkin_rows}</table></section>"""
    return _portal_shell(language, translate("page.portal", language), body)
