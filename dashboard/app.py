"""
Streamlit Dashboard
ASO Insight Dashboard

Sections:
  1. Sidebar: app metadata input and vertical / market / platform
  2. Audit: overall gauge, element scores, rule table, recommendations
  3. KPIs: family bar chart and KPI table
  4. Intent & Combos: intent distribution pie and combo table
  5. Registry: rule catalog and formula registry
  6. Drafts: local save / load with debounced auto-save
  7. Competitors: keyword gap chart against mock-catalog competitors
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from typing import Dict, Optional
import logging

from agents.competitors import CompetitiveInput, CompetitorGapAgent
from agents.metadata import CATEGORY_VERTICALS, MOCK_CATALOG, AppMetadataAgent
from config.settings import settings
from models.schemas import AppMetadata
from scoring.audit import AuditResult, MetadataAuditEngine
from scoring.formulas import FORMULA_REGISTRY
from scoring.hooks import VERTICAL_HOOK_PATTERNS
from scoring.ruleset import code_ruleset
from services.drafts import DraftAutoSaver, LocalDraftStore, format_time_ago
from services.registry import code_rule_catalog

logger = logging.getLogger(__name__)

VERTICALS = ["(none)"] + sorted(VERTICAL_HOOK_PATTERNS)
CATEGORIES = ["(none)"] + sorted(CATEGORY_VERTICALS)

# ─── Page Config ─────────────────────────────────────────────────────────────

st.set_page_config(
    page_title="ASO Insight Dashboard",
    page_icon="📱",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .rule-pass { color: #00a86b; font-weight: bold; }
    .rule-fail { color: #ff4b4b; font-weight: bold; }
    h1 { color: #2d3748; }
    .stAlert { border-radius: 8px; }
</style>
""", unsafe_allow_html=True)


# ─── State Management ────────────────────────────────────────────────────────

def get_state():
    if "audit" not in st.session_state:
        st.session_state.audit = None
    if "draft_store" not in st.session_state:
        st.session_state.draft_store = LocalDraftStore(settings.DRAFT_LOCAL_DIR)
    if "autosaver" not in st.session_state:
        st.session_state.autosaver = DraftAutoSaver(st.session_state.draft_store)
    return st.session_state


def _optional(value: str) -> Optional[str]:
    return None if value == "(none)" else value


# ─── Sidebar ─────────────────────────────────────────────────────────────────

def render_sidebar() -> Dict:
    with st.sidebar:
        st.title("📱 App Metadata")
        st.divider()

        preset = st.selectbox(
            "Load from mock catalog",
            ["(none)"] + list(MOCK_CATALOG),
            format_func=lambda k: k if k == "(none)" else f"{MOCK_CATALOG[k]['app_name']} ({k})",
        )
        defaults = MOCK_CATALOG.get(preset, {})

        app_id = st.text_input("App ID", value=preset if preset != "(none)" else "my-app")
        title = st.text_input("Title", value=defaults.get("title", ""), max_chars=50)
        st.caption(f"{len(title)}/30 characters")
        subtitle = st.text_input("Subtitle", value=defaults.get("subtitle", ""), max_chars=50)
        st.caption(f"{len(subtitle)}/30 characters")
        description = st.text_area("Description", value=defaults.get("description", ""), height=180)

        st.divider()
        st.subheader("⚙️ Context")
        category = st.selectbox(
            "Store category", CATEGORIES,
            index=CATEGORIES.index(defaults["category"]) if defaults.get("category") in CATEGORIES else 0,
        )
        suggested = CATEGORY_VERTICALS.get(defaults.get("category"), "(none)")
        vertical = st.selectbox(
            "Vertical", VERTICALS,
            index=VERTICALS.index(suggested) if suggested in VERTICALS else 0,
        )
        market = st.text_input("Market", value="us")
        platform = st.radio("Platform", ["ios", "android"], horizontal=True)

        st.divider()
        run = st.button("🚀 Run Audit", type="primary", use_container_width=True)

    return {
        "app_id": app_id,
        "title": title,
        "subtitle": subtitle,
        "description": description,
        "category": _optional(category),
        "vertical": _optional(vertical),
        "market": market or "us",
        "platform": platform,
        "run": run,
    }


def _metadata(config: Dict) -> AppMetadata:
    return AppMetadata(
        app_id=config["app_id"], title=config["title"], subtitle=config["subtitle"],
        description=config["description"], platform=config["platform"], locale=config["market"],
        category=config["category"], vertical=config["vertical"],
    )


# ─── Audit ───────────────────────────────────────────────────────────────────

def render_score_gauge(score: int, title: str):
    fig = go.Figure(go.Indicator(
        mode="gauge+number",
        value=score,
        title={"text": title},
        gauge={
            "axis": {"range": [0, 100]},
            "bar": {"color": "#764ba2"},
            "steps": [
                {"range": [0, 50], "color": "#ffebee"},
                {"range": [50, 75], "color": "#fff9c4"},
                {"range": [75, 100], "color": "#e8f5e9"},
            ],
        },
    ))
    fig.update_layout(height=220, margin=dict(t=40, b=10))
    st.plotly_chart(fig, use_container_width=True)


def render_audit(audit: AuditResult):
    col1, col2, col3, col4 = st.columns([2, 1, 1, 1])
    with col1:
        render_score_gauge(audit.overall_score, "Metadata Score")
    col2.metric("🔤 Title", f"{audit.elements['title'].score}/100")
    col3.metric("📝 Subtitle", f"{audit.elements['subtitle'].score}/100")
    col4.metric("🛒 Conversion", f"{audit.description_conversion_score}/100")

    st.subheader("📏 Rule Results")
    rows = []
    for element, score in audit.elements.items():
        for r in score.rule_results:
            rows.append({
                "Element": element,
                "Rule": r.rule_id,
                "Score": r.score,
                "Weight": score.weights.get(r.rule_id, 0.0),
                "Status": "✅" if r.passed else "❌",
                "Message": r.message,
            })
    st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)

    col_a, col_b = st.columns(2)
    with col_a:
        st.subheader("💡 Recommendations")
        for rec in audit.recommendations or ["No rule-level issues found."]:
            st.markdown(f"- {rec}")
    with col_b:
        st.subheader("🎯 Vertical Recommendations")
        for rec in audit.vertical_recommendations:
            st.markdown(f"- **{rec.severity}**: {rec.message}")
        if not audit.vertical_recommendations:
            st.caption("None for this vertical.")

    for warning in audit.leak_warnings:
        st.warning(f"⚠️ {warning.message}")


# ─── KPIs ────────────────────────────────────────────────────────────────────

def render_kpis(audit: AuditResult):
    kpis = audit.kpis
    st.metric("📊 KPI Overall Score", f"{kpis.overall_score:.1f}")

    fam_df = pd.DataFrame([
        {"Family": f.label, "Score": f.score, "Weight": f.weight} for f in kpis.families.values()
    ])
    fig = px.bar(fam_df, x="Family", y="Score", color="Score", range_y=[0, 100],
                 color_continuous_scale="RdYlGn", title="KPI Families")
    fig.update_layout(height=350)
    st.plotly_chart(fig, use_container_width=True)

    kpi_df = pd.DataFrame([
        {"KPI": k.label, "Family": k.family_id, "Raw": round(k.value, 3), "Normalized": round(k.normalized, 1)}
        for k in kpis.kpis.values()
    ])
    st.dataframe(kpi_df, hide_index=True, use_container_width=True)


# ─── Intent & Combos ─────────────────────────────────────────────────────────

def render_intent_combos(audit: AuditResult):
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("🧭 Search Intent")
        dist = audit.intent_coverage.combined_distribution
        if sum(dist.values()) == 0:
            st.info("No intent signals detected in title or subtitle.")
        else:
            fig = px.pie(names=list(dist), values=list(dist.values()), hole=0.4)
            fig.update_layout(height=320)
            st.plotly_chart(fig, use_container_width=True)
        st.metric("Intent coverage", f"{audit.intent_coverage.overall_score}/100")
        if audit.intent_coverage.fallback_mode:
            st.caption("Using fallback intent patterns (registry empty).")

    with col2:
        st.subheader("🔗 Keyword Combos")
        combos = audit.combo_coverage
        rows = [
            {"Combo": c.text, "Source": "title", "Type": c.type, "Relevance": c.relevance_score}
            for c in combos.title_combos_classified
        ] + [
            {"Combo": c.text, "Source": "subtitle (new)", "Type": c.type, "Relevance": c.relevance_score}
            for c in combos.subtitle_new_combos_classified
        ]
        if rows:
            st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
        else:
            st.info("No meaningful combos found.")

    st.subheader("🪝 Hooks")
    hooks = audit.hook_analysis
    st.progress(min(1.0, hooks.coverage / 100), text=f"{len(hooks.matched_categories)}/6 hook categories")
    st.caption("Missing: " + (", ".join(hooks.missing_categories) or "none"))


# ─── Registry ────────────────────────────────────────────────────────────────

def render_registry():
    st.subheader("📚 Rule Evaluators")
    st.dataframe(pd.DataFrame(code_rule_catalog()), hide_index=True, use_container_width=True)

    st.subheader("🧮 Formulas")
    st.dataframe(pd.DataFrame([
        {"ID": f.id, "Label": f.label, "Type": f.type, "Editable": f.editable,
         "Components": ", ".join(c.id for c in f.components)}
        for f in FORMULA_REGISTRY
    ]), hide_index=True, use_container_width=True)


# ─── Drafts ──────────────────────────────────────────────────────────────────

def render_drafts(config: Dict, state):
    store: LocalDraftStore = state.draft_store
    saver: DraftAutoSaver = state.autosaver
    draft = {"title": config["title"], "subtitle": config["subtitle"], "description": config["description"]}

    col1, col2, col3 = st.columns(3)
    label = col1.text_input("Draft label", value="")
    if col1.button("💾 Save draft"):
        saver.cancel()
        store.save(config["app_id"], "local", "single-locale", draft, label or None)
        st.success("Draft saved.")
    autosave = col2.toggle("Auto-save", value=False)
    if autosave and config["title"]:
        saver.schedule(config["app_id"], "local", "single-locale", draft, label or None)
    if col3.button("🗑️ Clear drafts"):
        saver.cancel()
        store.clear_all_for_app(config["app_id"])

    status = "pending…" if saver.is_pending else (
        f"last auto-save {format_time_ago(saver.last_saved_at)}" if saver.last_saved_at else "idle"
    )
    st.caption(f"Auto-save: {status}")

    saved = store.load(config["app_id"], "single-locale")
    if saved:
        st.markdown(f"**Saved {format_time_ago(saved['saved_at'])}** {saved['draft_label'] or ''}")
        st.json(saved["draft_data"])
    else:
        st.info("No local draft for this app.")


# ─── Competitors ─────────────────────────────────────────────────────────────

def render_competitors(config: Dict):
    options = [k for k in MOCK_CATALOG if k != config["app_id"]]
    chosen = st.multiselect(
        "Competitors (mock catalog)", options, default=options[:3],
        format_func=lambda k: MOCK_CATALOG[k]["app_name"],
    )
    threshold = st.slider("Keyword density threshold", 0.1, 1.0, settings.KEYWORD_DENSITY_THRESHOLD, 0.05)
    if not chosen or not config["title"]:
        st.info("Pick at least one competitor and enter a title.")
        return

    competitors = AppMetadataAgent(mode="mock").run([{"app_id": c} for c in chosen])
    agent = CompetitorGapAgent(
        density_threshold=threshold,
        ruleset=code_ruleset(config["vertical"], config["market"]),
    )
    result = agent.execute(CompetitiveInput(app=_metadata(config), competitors=competitors))
    if not result.success:
        st.error(f"❌ Competitive analysis failed: {result.error}")
        return

    analysis = result.data
    col1, col2 = st.columns(2)
    col1.metric("Keyword coverage", f"{analysis.keyword_coverage_share:.0%}")
    col2.metric("Keyword gaps", analysis.gap_count)

    if analysis.gaps:
        gap_df = pd.DataFrame([g.to_dict() for g in analysis.gaps]).sort_values("gap_score")
        fig = px.bar(gap_df, x="gap_score", y="keyword", orientation="h", color="competitor_density",
                     title="Keyword gaps (ranked by TF-IDF weight)")
        fig.update_layout(height=max(300, len(gap_df) * 28))
        st.plotly_chart(fig, use_container_width=True)

    st.dataframe(pd.DataFrame([c.to_dict() for c in analysis.competitor_scores]),
                 hide_index=True, use_container_width=True)


# ─── Main App ─────────────────────────────────────────────────────────────────

def main():
    st.title("📱 ASO Insight Dashboard")
    st.caption("Metadata audits, KPI and intent scoring, drafts and competitive keyword gaps")

    config = render_sidebar()
    state = get_state()

    if config["run"]:
        if not config["title"]:
            st.error("A title is required.")
        else:
            with st.spinner("Auditing metadata..."):
                ruleset = code_ruleset(config["vertical"], config["market"])
                engine = MetadataAuditEngine(ruleset=ruleset)
                state.audit = engine.evaluate(_metadata(config))

    tabs = st.tabs(["📊 Audit", "📈 KPIs", "🧭 Intent & Combos", "📚 Registry", "💾 Drafts", "🥊 Competitors"])
    audit: Optional[AuditResult] = state.audit

    for tab, render in zip(tabs[:3], (render_audit, render_kpis, render_intent_combos)):
        with tab:
            if audit is None:
                st.info("👈 Enter metadata in the sidebar and click 'Run Audit'.")
            else:
                render(audit)
    with tabs[3]:
        render_registry()
    with tabs[4]:
        render_drafts(config, state)
    with tabs[5]:
        render_competitors(config)


if __name__ == "__main__":
    main()
