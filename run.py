#!/usr/bin/env python3
"""
Quick CLI runner for the ASO Insight Dashboard.

Usage:
    python run.py                              # Demo audit + competitive run (mock catalog)
    python run.py --mode api                   # Start FastAPI server
    python run.py --mode dashboard             # Start Streamlit dashboard
    python run.py --mode seed --target all     # Seed rule + intent registries
    python run.py --mode audit --title "..." --subtitle "..." --vertical finance
"""

import sys
import os
import argparse
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


def demo():
    """Audit a mock-catalog app, compare it with its competitors and print results."""
    from db.database import init_db
    from utils.pipeline import PipelineError, run_audit_pipeline, run_competitive_pipeline

    init_db()

    print("\n" + "=" * 70)
    print("  📱 ASO INSIGHT DASHBOARD: DEMO RUN")
    print("=" * 70 + "\n")

    try:
        bundle = run_audit_pipeline({"app_id": "570060128"}, mode="mock")
        analysis = run_competitive_pipeline(
            {"app_id": "570060128"},
            [{"app_id": "1039455640"}, {"app_id": "1090779584"}, {"app_id": "1260192681"}],
            mode="mock",
            ruleset=bundle.ruleset,
        )
    except PipelineError as e:
        print(f"\n❌ {e}")
        sys.exit(1)

    print(bundle.result.summary())
    print()
    print("─" * 70)
    print("  🥊 COMPETITIVE KEYWORD GAPS")
    print("─" * 70)
    print(analysis.summary())

    print("\n" + "=" * 70)
    print("  ✅ Demo complete!")
    print("  🌐 Start dashboard: streamlit run dashboard/app.py")
    print("  🔌 Start API:       uvicorn api.main:app --reload --port 8000")
    print("=" * 70 + "\n")


def seed(target: str):
    from db.database import get_db, init_db
    from services.seeds import seed_intent_patterns, seed_rule_evaluators

    init_db()
    with get_db() as session:
        if target in ("rules", "all"):
            report = seed_rule_evaluators(session)
            print(f"📚 Rule evaluators: {report.to_dict()}")
        if target in ("intents", "all"):
            report = seed_intent_patterns(session)
            print(f"🧭 Intent patterns: {report.to_dict()}")


def audit(args):
    from scoring.audit import MetadataAuditEngine
    from scoring.ruleset import code_ruleset

    if not args.title:
        print("❌ --title is required for --mode audit")
        sys.exit(2)
    engine = MetadataAuditEngine(ruleset=code_ruleset(args.vertical, args.market))
    result = engine.evaluate({
        "title": args.title,
        "subtitle": args.subtitle,
        "description": args.description,
        "platform": args.platform,
        "locale": args.market,
        "category": args.category,
        "vertical": args.vertical,
    })
    print(result.summary())


def start_api():
    import uvicorn
    from config.settings import settings
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
    )


def start_dashboard():
    import subprocess
    subprocess.run([
        sys.executable, "-m", "streamlit", "run",
        os.path.join(os.path.dirname(__file__), "dashboard", "app.py"),
        "--server.port", "8501",
    ])


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="ASO Insight Dashboard")
    parser.add_argument(
        "--mode",
        choices=["demo", "api", "dashboard", "seed", "audit"],
        default="demo",
        help="Run mode: demo | api | dashboard | seed | audit",
    )
    parser.add_argument("--target", choices=["rules", "intents", "all"], default="all",
                        help="Registry to seed (--mode seed)")
    parser.add_argument("--title", default="")
    parser.add_argument("--subtitle", default="")
    parser.add_argument("--description", default="")
    parser.add_argument("--vertical", default=None)
    parser.add_argument("--category", default=None)
    parser.add_argument("--market", default="us")
    parser.add_argument("--platform", choices=["ios", "android"], default="ios")
    args = parser.parse_args()

    if args.mode == "demo":
        demo()
    elif args.mode == "api":
        start_api()
    elif args.mode == "dashboard":
        start_dashboard()
    elif args.mode == "seed":
        seed(args.target)
    elif args.mode == "audit":
        audit(args)
