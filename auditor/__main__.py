"""
Auditor CLI 入口

用法:
    # dead click 掃描（signed-out，本機 headless Chrome）
    python -m auditor --routes config/routes.yaml --base-url http://localhost:3000

    # 三個掃描器全跑
    python -m auditor --routes config/routes.yaml --scan all

    # signed-in 模式，以 session cookie 登入
    python -m auditor --routes config/routes.yaml --mode signed-in \\
        --cookie next-auth.session-token=xxxx

    # Android 模擬器上的行動版 Chrome（需 Appium server）
    python -m auditor --routes config/routes.yaml --browser android

    # 從既有 JSON 重新產出 HTML 報告（不連線）
    python -m auditor --report reports/signed-out/interaction-inventory.json

有 dead click / 路由錯誤 / 掃描失敗時 exit code 為 1。
"""

import argparse
import sys
from pathlib import Path

from config.config import AUDIT_MODES, BROWSERS, Config
from core.exceptions import AuditFailedError, AuditFrameworkError
from utils.logger import logger, set_verbose

SCANS = ("dead-click", "missing-testid", "journey", "all")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="UI 互動稽核器：找出看起來可點、點了卻沒反應的元素",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--routes", "-r", help="路由清單 (.json / .yaml)")
    parser.add_argument("--base-url", default=None, help=f"受測站台 (預設 {Config.BASE_URL})")
    parser.add_argument("--mode", "-m", default=None, choices=AUDIT_MODES)
    parser.add_argument("--browser", "-b", default=None, choices=BROWSERS)
    parser.add_argument("--scan", "-s", default="dead-click", choices=SCANS)
    parser.add_argument("--max-routes", type=int, default=None, help="只掃前 N 個路由 (0 = 全部)")
    parser.add_argument("--output", "-o", default=None, help="報告目錄")
    parser.add_argument(
        "--cookie",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="signed-in 模式使用的 session cookie（可重複）",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="輸出逐元素的分類細節")
    parser.add_argument("--report", metavar="JSON", help="從既有 interaction-inventory.json 產出 HTML 報告")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        set_verbose(True)

    if args.report:
        return _generate_report(Path(args.report))

    if not args.routes:
        print("需要 --routes（或使用 --report）")
        return 2

    try:
        return _run(args)
    except AuditFailedError as e:
        logger.error(str(e))
        return 1
    except AuditFrameworkError as e:
        logger.error(f"稽核無法執行: {e}")
        return 1


def _run(args) -> int:
    from auditor.routes import limit_routes, load_routes
    from auditor.runner import AuditRunner
    from auditor.session import AnonymousSession, CookieSignIn, SessionEndpointProbe

    mode = Config.validate_mode(args.mode)
    base_url = args.base_url or Config.BASE_URL
    routes = limit_routes(load_routes(args.routes), args.max_routes)

    if mode == "signed-in":
        sign_in = CookieSignIn.parse(args.cookie, base_url) if args.cookie else None
        session = SessionEndpointProbe(base_url=base_url, sign_in=sign_in)
    else:
        session = AnonymousSession()

    runner = AuditRunner(mode=mode, report_dir=args.output, session=session, base_url=base_url)
    print(f"\n稽核 {len(routes)} 個路由 ({mode}, {args.browser or Config.BROWSER})...\n")
    runner.connect(browser=args.browser)

    failures: list[AuditFailedError] = []
    try:
        scans = ("dead-click", "missing-testid", "journey") if args.scan == "all" else (args.scan,)
        for scan in scans:
            try:
                if scan == "dead-click":
                    report = runner.dead_click_scan(routes)
                    print(f"互動 {len(report.interactions)} 個，0 dead click")
                elif scan == "missing-testid":
                    runner.missing_testid_scan(routes)
                    print("所有控制項都有 data-testid")
                else:
                    runner.journey_coverage(routes)
                    print("所有路由的 journey 入口都可見")
            except AuditFailedError as e:
                # 繼續跑其他掃描器，最後一起回報
                print(f"\n{e}")
                failures.append(e)
    finally:
        runner.disconnect()

    print(f"\n報告目錄: {runner.out_dir}")
    return 1 if failures else 0


def _generate_report(report_json: Path) -> int:
    if not report_json.exists():
        print(f"找不到 {report_json}")
        return 1

    from auditor.html_report import HtmlReportGenerator

    out = HtmlReportGenerator(report_json).generate()
    print(f"\nHTML 報告: {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
