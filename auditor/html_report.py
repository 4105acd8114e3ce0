"""
HTML Report：從 interaction-inventory.json 產生單一檔案的 HTML 報告

區塊：
- 總覽（路由數、互動數、dead click、路由錯誤、快取重用數）
- 動作分佈長條圖
- Dead click 清單（含重現步驟）
- 路由錯誤
- 逐路由互動明細

用法：
    from auditor.html_report import HtmlReportGenerator

    gen = HtmlReportGenerator("reports/signed-out/interaction-inventory.json")
    gen.generate("reports/signed-out/report.html")
"""

from __future__ import annotations

import json
from collections import Counter, defaultdict
from datetime import datetime
from html import escape
from pathlib import Path

from utils.logger import logger

_ACTION_CLASS = {
    "navigate": "act-navigate",
    "open modal": "act-modal",
    "submit": "act-submit",
    "toggle": "act-toggle",
    "play audio": "act-audio",
    "disabled-with-reason": "act-disabled",
    "unknown": "act-dead",
}


def _e(value) -> str:
    return escape("" if value is None else str(value))


class HtmlReportGenerator:
    """從稽核 JSON 報告產生 HTML"""

    def __init__(self, report_path: str | Path):
        self._path = Path(report_path)
        self._data = json.loads(self._path.read_text(encoding="utf-8"))

    def generate(self, output_path: str | Path | None = None) -> Path:
        out = Path(output_path) if output_path else self._path.with_name("report.html")
        out.parent.mkdir(parents=True, exist_ok=True)

        sections = [
            self._section_header(),
            self._section_stats(),
            self._section_actions(),
            self._section_dead_clicks(),
            self._section_route_errors(),
            self._section_interactions(),
        ]
        out.write_text(self._wrap_html("\n".join(s for s in sections if s)), encoding="utf-8")
        logger.info(f"[HtmlReport] 報告已產生: {out}")
        return out

    # ── 各區塊 ──

    def _section_header(self) -> str:
        d = self._data
        status = "通過" if not d.get("deadClickCount") and not d.get("routeErrorCount") else "未通過"
        return f"""
        <div class="header">
            <h1>Dead Click 稽核報告 ({status})</h1>
            <div class="meta">
                <span>模式: <strong>{_e(d.get('mode', 'N/A'))}</strong></span>
                <span>產生時間: {_e(str(d.get('generatedAt', ''))[:19])}</span>
            </div>
        </div>
        """

    def _section_stats(self) -> str:
        d = self._data
        reused = sum(1 for i in d.get("interactions", []) if i.get("reused"))
        cards = [
            (d.get("totalRoutes", 0), "路由數", ""),
            (d.get("totalInteractions", 0), "互動數", ""),
            (reused, "快取重用", ""),
            (d.get("deadClickCount", 0), "Dead click", "stat-bad" if d.get("deadClickCount") else ""),
            (d.get("routeErrorCount", 0), "路由錯誤", "stat-bad" if d.get("routeErrorCount") else ""),
        ]
        body = "".join(
            f"""
            <div class="stat-card">
                <div class="stat-number {cls}">{value}</div>
                <div class="stat-label">{label}</div>
            </div>"""
            for value, label, cls in cards
        )
        return f'<div class="stats-grid">{body}\n        </div>'

    def _section_actions(self) -> str:
        interactions = self._data.get("interactions", [])
        if not interactions:
            return ""
        counts = Counter(i.get("action", "unknown") for i in interactions)
        total = len(interactions)
        rows = []
        for action, count in counts.most_common():
            pct = count / total * 100
            rows.append(f"""
            <tr>
                <td><span class="badge {_ACTION_CLASS.get(action, '')}">{_e(action)}</span></td>
                <td>{count}</td>
                <td><div class="bar-bg"><div class="bar-fill" style="width:{pct:.1f}%">{pct:.0f}%</div></div></td>
            </tr>""")
        return f"""
        <div class="section">
            <h2>動作分佈</h2>
            <table>
                <thead><tr><th>動作</th><th>數量</th><th>比例</th></tr></thead>
                <tbody>{''.join(rows)}</tbody>
            </table>
        </div>
        """

    def _section_dead_clicks(self) -> str:
        dead = self._data.get("deadClicks", [])
        if not dead:
            return ""
        rows = []
        for d in dead:
            repro = "".join(f"<li>{_e(step)}</li>" for step in d.get("repro", []))
            rows.append(f"""
            <tr>
                <td><strong>{_e(d.get('routeId'))}</strong><br><code>{_e(d.get('routePath'))}</code></td>
                <td><code>{_e(d.get('selector'))}</code></td>
                <td>{_e(d.get('label'))}</td>
                <td><ol class="repro">{repro}</ol></td>
            </tr>""")
        return f"""
        <div class="section">
            <h2>Dead click ({len(dead)})</h2>
            <table>
                <thead><tr><th>路由</th><th>Selector</th><th>Label</th><th>重現步驟</th></tr></thead>
                <tbody>{''.join(rows)}</tbody>
            </table>
        </div>
        """

    def _section_route_errors(self) -> str:
        errors = self._data.get("routeErrors", [])
        if not errors:
            return ""
        rows = "".join(
            f"""
            <tr>
                <td><strong>{_e(e.get('routeId'))}</strong></td>
                <td><code>{_e(e.get('routePath'))}</code></td>
                <td class="error-cell">{_e(e.get('error'))}</td>
            </tr>"""
            for e in errors
        )
        return f"""
        <div class="section">
            <h2>路由錯誤 ({len(errors)})</h2>
            <table>
                <thead><tr><th>路由</th><th>路徑</th><th>錯誤</th></tr></thead>
                <tbody>{rows}</tbody>
            </table>
        </div>
        """

    def _section_interactions(self) -> str:
        interactions = self._data.get("interactions", [])
        if not interactions:
            return ""

        by_route: dict[str, list[dict]] = defaultdict(list)
        for item in interactions:
            by_route[item.get("routeId", "")].append(item)

        blocks = []
        for route_id, items in by_route.items():
            rows = []
            for i in items:
                action = i.get("action", "unknown")
                evidence = i.get("navigationTo") or i.get("popupUrl") or ""
                rows.append(f"""
                <tr class="{'row-dead' if i.get('outcome') == 'dead-click' else ''}">
                    <td><code>{_e(i.get('selector'))}</code></td>
                    <td>{_e(i.get('tagName'))}</td>
                    <td>{_e(i.get('label'))}</td>
                    <td><span class="badge {_ACTION_CLASS.get(action, '')}">{_e(action)}</span></td>
                    <td>{_e(i.get('outcome'))}{' <span class="tag">reused</span>' if i.get('reused') else ''}</td>
                    <td class="values-cell">{_e(evidence)}</td>
                </tr>""")
            blocks.append(f"""
            <div class="route-block">
                <h3>{_e(route_id)} <code>{_e(items[0].get('routePath'))}</code></h3>
                <table>
                    <thead>
                        <tr><th>Selector</th><th>Tag</th><th>Label</th><th>動作</th><th>結果</th><th>目的地</th></tr>
                    </thead>
                    <tbody>{''.join(rows)}</tbody>
                </table>
            </div>""")

        return f"""
        <div class="section">
            <h2>互動明細</h2>
            {''.join(blocks)}
        </div>
        """

    def _wrap_html(self, body: str) -> str:
        return f"""<!DOCTYPE html>
<html lang="zh-TW">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Dead Click 稽核報告</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            background: #f5f5f5;
            color: #333;
            line-height: 1.6;
            padding: 20px;
        }}
        .header {{
            background: linear-gradient(135deg, #3949ab 0%, #00897b 100%);
            color: white;
            padding: 30px;
            border-radius: 12px;
            margin-bottom: 24px;
        }}
        .header h1 {{ font-size: 24px; margin-bottom: 8px; }}
        .header .meta span {{ margin-right: 24px; font-size: 14px; opacity: 0.9; }}
        .stats-grid {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(150px, 1fr));
            gap: 16px;
            margin-bottom: 24px;
        }}
        .stat-card {{
            background: white;
            border-radius: 10px;
            padding: 20px;
            text-align: center;
            box-shadow: 0 2px 8px rgba(0,0,0,0.08);
        }}
        .stat-number {{ font-size: 36px; font-weight: 700; color: #3949ab; }}
        .stat-number.stat-bad {{ color: #c62828; }}
        .stat-label {{ font-size: 14px; color: #888; margin-top: 4px; }}
        .section {{
            background: white;
            border-radius: 10px;
            padding: 24px;
            margin-bottom: 24px;
            box-shadow: 0 2px 8px rgba(0,0,0,0.08);
        }}
        .section h2 {{
            font-size: 18px;
            margin-bottom: 16px;
            padding-bottom: 8px;
            border-bottom: 2px solid #f0f0f0;
        }}
        .route-block {{ margin-bottom: 24px; }}
        .route-block h3 {{ margin-bottom: 8px; color: #444; font-size: 15px; }}
        table {{ width: 100%; border-collapse: collapse; font-size: 13px; }}
        th, td {{ padding: 8px 12px; text-align: left; border-bottom: 1px solid #f0f0f0; vertical-align: top; }}
        th {{ background: #fafafa; font-weight: 600; font-size: 12px; text-transform: uppercase; color: #666; }}
        tr:hover {{ background: #fafafa; }}
        tr.row-dead {{ background: #fff5f5; }}
        .badge {{ display: inline-block; padding: 2px 8px; border-radius: 12px; font-size: 11px; font-weight: 600; }}
        .act-navigate {{ background: #e3f2fd; color: #1565c0; }}
        .act-modal {{ background: #fff3e0; color: #e65100; }}
        .act-submit {{ background: #e8f5e9; color: #2e7d32; }}
        .act-toggle {{ background: #f3e5f5; color: #6a1b9a; }}
        .act-audio {{ background: #e0f7fa; color: #00838f; }}
        .act-disabled {{ background: #f5f5f5; color: #757575; }}
        .act-dead {{ background: #fce4ec; color: #c62828; }}
        .tag {{
            display: inline-block;
            padding: 1px 6px;
            border-radius: 4px;
            font-size: 11px;
            background: #e8eaf6;
            color: #3949ab;
            margin-left: 4px;
        }}
        .repro {{ padding-left: 18px; }}
        .values-cell {{ font-size: 12px; color: #666; max-width: 300px; word-break: break-all; }}
        .error-cell {{ color: #c62828; }}
        code {{ background: #f5f5f5; padding: 1px 4px; border-radius: 3px; font-size: 12px; }}
        .bar-bg {{ background: #f0f0f0; border-radius: 8px; overflow: hidden; height: 22px; }}
        .bar-fill {{
            background: linear-gradient(90deg, #5c6bc0, #3949ab);
            height: 100%;
            text-align: center;
            color: white;
            font-size: 11px;
            font-weight: 600;
            line-height: 22px;
            min-width: 40px;
        }}
        .footer {{ text-align: center; padding: 20px; color: #999; font-size: 12px; }}
    </style>
</head>
<body>
    {body}
    <div class="footer">
        由 UI Auditor 自動產生 &middot; {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
    </div>
</body>
</html>"""
