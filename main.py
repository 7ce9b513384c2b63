import argparse
import getpass
import sys
from pathlib import Path

from shrinkwatch import settings
from shrinkwatch.aggregation import Dashboard, segment_label, timeline_stats
from shrinkwatch.assistant import AssistantConfig, AssistantStatus, AuthorizationError, CredentialGate
from shrinkwatch.logger import setup_logger
from shrinkwatch.schemas import Segment
from shrinkwatch.session import ShrinkSession


def _confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def _money(value: float) -> str:
    return f"-${abs(value):,.2f}" if value < 0 else f"${value:,.2f}"


def print_dashboard(session: ShrinkSession, dashboard: Dashboard) -> None:
    f = session.filter
    months = ", ".join(m for m in settings.MONTHS if m in f.months) or "All months"
    print(f"\n--- {months} | {f.market} | {segment_label(f.segment)} ---")

    s = dashboard.stats
    print(f"Records:        {s.count}")
    print(f"Revenue:        {_money(s.total_revenue)}")
    print(f"Shrink loss:    {_money(s.total_shrink)}")
    print(f"Overage gain:   {_money(s.total_overage)}")
    print(f"Net variance:   {_money(s.net_variance)}")
    print(f"Accuracy:       {s.accuracy:.2f}%")

    if dashboard.trend:
        print("\nTrend:")
        for t in dashboard.trend:
            print(f"  {t.period:<12} shrink {_money(t.shrink):>12}  rate {t.shrink_rate:>6.2f}%  net {_money(t.net):>12}")

    if dashboard.markets:
        print("\nMarkets (shortage / overage):")
        for m in dashboard.markets:
            print(f"  {m.name:<30} {_money(m.shortage):>12} / {_money(m.overage):>12}")

    if dashboard.leaderboards.top_shrink:
        print("\nTop shrink items:")
        for entry in dashboard.leaderboards.top_shrink:
            print(f"  {entry.name:<30} {_money(entry.value):>12}")

    if dashboard.leaderboards.top_overage:
        print("\nTop overage items:")
        for entry in dashboard.leaderboards.top_overage:
            print(f"  {entry.name:<30} {_money(entry.value):>12}")


def cmd_import(session: ShrinkSession, args) -> int:
    staging = session.import_workbook(Path(args.file), args.month)
    return _review_staging(session, staging, args.yes)


def cmd_import_text(session: ShrinkSession, args) -> int:
    raw_text = Path(args.file).read_text(encoding="utf-8", errors="replace")
    staging = session.import_text(raw_text)
    if staging is None and session.assistant_status.value != "online":
        print(f"AI analyst is {session.assistant_status.value}; pasted text cannot be parsed.")
    return _review_staging(session, staging, args.yes)


def _review_staging(session: ShrinkSession, staging, assume_yes: bool) -> int:
    if staging is None:
        print("No data detected in the upload. Check that each sheet has an item/variance header row.")
        return 1

    print(
        f"Found {len(staging.records)} forensic variances across "
        f"{len(staging.market_names)} markets for {staging.period}: "
        f"{', '.join(staging.market_names)}"
    )
    if _confirm("Commit to history?", assume_yes):
        committed = session.commit_staging()
        print(f"✅ Committed {len(committed)} records.")
        return 0

    session.discard_staging()
    print("Discarded.")
    return 0


def cmd_report(session: ShrinkSession, args) -> int:
    if not len(session.store):
        print("The ledger is empty. Import a workbook first.")
        return 1
    if args.month is not None:
        session.set_months(set(args.month))
    for month in args.toggle_month or []:
        session.toggle_month(month)
    if args.market is not None:
        session.set_market(args.market)
    if args.segment is not None:
        session.set_segment(Segment(args.segment))
    print_dashboard(session, session.dashboard())
    return 0


def _reauthorize(session: ShrinkSession) -> bool:
    """Prompts for a new API key when the model rejected the current one."""
    if session.assistant_status != AssistantStatus.NEEDS_REAUTH or not sys.stdin.isatty():
        return False
    key = getpass.getpass("Gemini API key (leave blank to skip): ").strip()
    if not key:
        return False
    gate = CredentialGate()
    try:
        gate.provide(AssistantConfig(api_key=key))
    except AuthorizationError as e:
        print(f"❌ {e}")
        return False
    session.reauthorize(gate)
    return True


def _resolve_question(question) -> str | None:
    if question is None:
        return None
    if question.isdigit() and 1 <= int(question) <= len(settings.SUGGESTED_QUESTIONS):
        return settings.SUGGESTED_QUESTIONS[int(question) - 1]
    return question


def cmd_ask(session: ShrinkSession, args) -> int:
    question = _resolve_question(args.question)
    if question is None:
        print("Suggested questions (pass the number or your own text):")
        for i, suggestion in enumerate(settings.SUGGESTED_QUESTIONS, 1):
            print(f"  {i}. {suggestion}")
        return 0

    shown = ""

    def show(text: str) -> None:
        nonlocal shown
        # Callbacks carry the whole answer so far; print only the new tail.
        sys.stdout.write(text[len(shown):] if text.startswith(shown) else "\n" + text)
        sys.stdout.flush()
        shown = text

    session.ask(question, on_chunk=show)
    print()
    if _reauthorize(session):
        shown = ""
        session.ask(question, on_chunk=show)
        print()
    return 0 if session.assistant_status == AssistantStatus.ONLINE else 1


def cmd_deep_dive(session: ShrinkSession, args) -> int:
    result = session.deep_dive()
    if result is None and _reauthorize(session):
        result = session.deep_dive()
    if result is None:
        print(f"Deep dive unavailable (AI analyst {session.assistant_status.value}).")
        return 1
    print(result)
    return 0


def cmd_ledger(session: ShrinkSession, args) -> int:
    if not len(session.store):
        print("The ledger is empty. Import a workbook first.")
        return 1
    months = session.store.populated_months()

    timeline = timeline_stats(session.store.records)
    print("Months on file:")
    for month in months:
        t = timeline.get(month)
        if t is None:
            continue
        marker = "*" if month in session.filter.months else " "
        print(f" {marker} {month:<12} revenue {_money(t.revenue):>12}  shrink {_money(t.shrink):>12}")

    print("\nMarkets:")
    for market in session.store.markets():
        marker = "*" if market == session.filter.market else " "
        print(f" {marker} {market}")
    return 0


def cmd_purge(session: ShrinkSession, args) -> int:
    if session.purge(lambda: _confirm("Purge historical forensic data?", args.yes)):
        print("Ledger purged.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shrinkwatch", description="Micro-market shrink ledger and variance analytics."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import a variance workbook for one month")
    p.add_argument("file")
    p.add_argument("--month", required=True, help="Target period, e.g. 'March'")
    p.add_argument("--yes", action="store_true", help="Commit without asking")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("import-text", help="Import pasted report text via the AI analyst")
    p.add_argument("file")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_import_text)

    p = sub.add_parser("report", help="Show statistics for a month/market/segment slice")
    p.add_argument("--month", action="append", help="Repeat for several months; omit for the saved selection")
    p.add_argument("--toggle-month", action="append", help="Add or remove a month from the saved selection")
    p.add_argument("--market", help=f"Market name or '{settings.ALL_MARKETS}'")
    p.add_argument("--segment", choices=[s.value for s in Segment])
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("ask", help="Ask the AI analyst about the current slice")
    p.add_argument("question", nargs="?", help="Your question, or the number of a suggested one; omit to list suggestions")
    p.set_defaults(func=cmd_ask)

    p = sub.add_parser("deep-dive", help="Run a full AI audit of the current slice")
    p.set_defaults(func=cmd_deep_dive)

    p = sub.add_parser("ledger", help="List the months and markets on file")
    p.set_defaults(func=cmd_ledger)

    p = sub.add_parser("purge", help="Delete every stored record")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_purge)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(verbose=args.verbose)
    session = ShrinkSession()
    return args.func(session, args)


if __name__ == "__main__":
    sys.exit(main())
