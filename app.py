import json
import time
import streamlit as st
import pandas as pd

from stablesim.config import ScenarioConfig
from stablesim.engine import SimulationEngine
from stablesim.core import PRECISION

st.set_page_config(page_title="StableSwap Gauge Simulator", layout="wide")


def get_engine() -> SimulationEngine:
    if "engine" not in st.session_state:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
        st.session_state.seed = 1
        st.session_state.engine = SimulationEngine(cfg=cfg, seed=st.session_state.seed)
    return st.session_state.engine


def reset_engine(reset_config: bool = False) -> None:
    if reset_config:
        cfg = ScenarioConfig()
        seed = 1
        st.session_state.cfg = cfg
        st.session_state.seed = seed
    else:
        cfg = st.session_state.get("cfg", ScenarioConfig())
        seed = st.session_state.get("seed", 1)
    st.session_state.engine = SimulationEngine(cfg=cfg, seed=seed)


engine = get_engine()

st.title("StableSwap Pool, Gauges & Vote Locks")
st.caption("Time model: 1 tick = cfg.tick_seconds (default 1 day). Votes lock for cfg.lock_duration.")

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.2f}"

def _render_kpi_grid(kpis, columns: int = 5) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _metrics_has_tick(rows: list[dict], tick: int) -> bool:
    if not rows:
        return False
    return rows[-1].get("tick") == tick

def _ensure_metrics_snapshot(engine: SimulationEngine) -> None:
    need_network = not _metrics_has_tick(engine.metrics.network_rows, engine.tick)
    need_pool = not _metrics_has_tick(engine.metrics.pool_rows, engine.tick)
    if need_network or need_pool:
        engine.snapshot_metrics(force_network=need_network, force_pool=need_pool)

def _format_event_meta(meta) -> str:
    if meta is None:
        return ""
    if isinstance(meta, str):
        return meta
    try:
        return json.dumps(meta, sort_keys=True, default=str)
    except TypeError:
        return str(meta)

with st.sidebar:
    st.header("Sim Controls")

    st.subheader("Run")
    if st.button("Restart simulation"):
        reset_engine(reset_config=True)
        engine = st.session_state.engine
        st.session_state.run_progress = 0.0
        st.session_state.run_progress_label = "Idle"
    st.caption("Restart resets the simulation to tick 0 with default settings.")
    if "seed" not in st.session_state:
        st.session_state.seed = 1
    st.number_input("Random seed", min_value=1, max_value=100000, key="seed")

    run_ticks = st.slider("Ticks to run", min_value=1, max_value=365, value=14)
    c3, c4 = st.columns(2)
    run_one = c3.button("Step 1 tick")
    run_many = c4.button("Run N ticks")
    progress_label = st.session_state.get("run_progress_label", "Idle")
    progress_value = float(st.session_state.get("run_progress", 0.0))
    progress_bar = st.progress(progress_value, text=progress_label)
    if run_one or run_many:
        total = 1 if run_one else int(run_ticks)
        start_ts = time.time()
        for idx in range(total):
            engine.step(1)
            progress = (idx + 1) / total
            progress_bar.progress(progress, text=f"Run progress: {progress:.0%}")
        elapsed = time.time() - start_ts
        _ensure_metrics_snapshot(engine)
        st.session_state.run_progress = 1.0
        st.session_state.run_progress_label = f"Run progress: 100% ({_fmt_duration(elapsed)})"
        progress_bar.progress(1.0, text=st.session_state.run_progress_label)
    st.caption(f"Current tick: {engine.tick}")

    st.subheader("Activity")
    engine.cfg.trades_per_tick = int(st.number_input(
        "Trades per tick", min_value=0, value=int(engine.cfg.trades_per_tick), step=1,
    ))
    engine.cfg.trade_size_mean = st.number_input(
        "Trade size mean (units)", min_value=1.0, value=float(engine.cfg.trade_size_mean), step=500.0,
    )
    engine.cfg.slippage_tolerance_bps = int(st.number_input(
        "Slippage tolerance (bps)", min_value=0, max_value=10_000,
        value=int(engine.cfg.slippage_tolerance_bps), step=5,
    ))
    engine.cfg.price_noise_bps = st.number_input(
        "Feed noise (bps stdev)", min_value=0.0, value=float(engine.cfg.price_noise_bps), step=1.0,
        help="Per-tick relative noise applied to every price feed around its peg.",
    )

    st.subheader("Governance")
    engine.cfg.p_vote = st.slider("Vote probability", 0.0, 1.0, float(engine.cfg.p_vote), step=0.05)
    engine.cfg.p_reallocate = st.slider(
        "Reallocate probability", 0.0, 1.0, float(engine.cfg.p_reallocate), step=0.05,
        help="Reallocation fails with lock_active until the voter's lock window has elapsed.",
    )
    engine.cfg.emission_per_epoch = st.number_input(
        "Emissions per epoch", min_value=0.0, value=float(engine.cfg.emission_per_epoch), step=1000.0,
    )
    engine.cfg.bribe_amount_mean = st.number_input(
        "Bribe size mean", min_value=0.0, value=float(engine.cfg.bribe_amount_mean), step=500.0,
    )

    st.subheader("Pool admin")
    pool_ids = list(engine.pools.keys())
    admin_pool = st.selectbox("Pool", pool_ids, key="admin_pool")
    future_a = st.number_input("Ramp A to", min_value=1, value=int(engine.pools[admin_pool].A()), step=10)
    ramp_days = st.number_input("Ramp duration (days)", min_value=1, value=7, step=1)
    if st.button("Ramp A"):
        pool = engine.pools[admin_pool]
        ok, result = engine._attempt(
            "ramp_a", "treasury", pool.ramp_a, "treasury", int(future_a),
            engine.clock.now + int(ramp_days) * 86400, pool_id=admin_pool,
        )
        if not ok:
            st.warning(f"Ramp rejected: {result.tag}")

net_df = engine.metrics.network_df()
pool_df = engine.metrics.pool_df()
target_df = engine.metrics.target_df()

tab_overview, tab_pools, tab_votes, tab_events, tab_swaps = st.tabs(
    ["Overview", "Pools", "Votes & Gauges", "Events", "Swaps"]
)

with tab_overview:
    st.subheader("Network KPIs")
    if net_df.empty:
        st.info("No metrics yet. Run ticks.")
    else:
        latest = net_df.iloc[-1].to_dict()
        kpis = [
            ("Pools", _fmt(latest.get("num_pools", len(engine.pools)))),
            ("Total value (D)", _fmt(latest["total_value"])),
            ("Swaps this tick", _fmt(latest["swaps_tick"])),
            ("Swap volume this tick", _fmt(latest["swap_volume_tick"])),
            ("Fees this tick", _fmt(latest["fees_tick"])),
            ("Total votes", _fmt(latest["total_votes"])),
            ("Voters locked", _fmt(latest["voters_locked"])),
            ("Voters unlockable", _fmt(latest["voters_unlockable"])),
            ("Rewards paid this tick", _fmt(latest["rewards_paid_tick"])),
            ("Failures this tick", _fmt(latest["failures_tick"])),
        ]
        _render_kpi_grid(kpis, columns=5)

        st.subheader("Swap volume and fees (per tick)")
        st.line_chart(net_df, x="tick", y=["swap_volume_tick", "fees_tick"])

        st.subheader("Incentives (per tick)")
        st.line_chart(net_df, x="tick", y=["bribes_tick", "emissions_tick", "rewards_paid_tick"])

        st.subheader("Failures by kind (per tick)")
        st.line_chart(net_df, x="tick", y=["failures_tick", "lock_failures_tick", "slippage_failures_tick"])

        failures = engine.failure_counts()
        if failures:
            st.write("**Failure tags (cumulative)**")
            st.dataframe(
                pd.DataFrame([{"reason": k, "count": v} for k, v in sorted(failures.items())]),
                use_container_width=True,
            )

with tab_pools:
    st.subheader("Pools")
    if pool_df.empty:
        st.info("No pool rows yet.")
    else:
        sel = st.selectbox("Select pool", list(engine.pools.keys()))
        p = engine.pools[sel]
        hist = pool_df[pool_df["pool_id"] == sel]

        c1, c2, c3, c4 = st.columns(4)
        c1.metric("A", p.A())
        c2.metric("Fee (bps)", p.fee_bps)
        c3.metric("LP supply", _fmt(p.total_supply() / PRECISION))
        c4.metric("Last price", f"{p.last_price() / PRECISION:.6f}")

        st.write("**Virtual price**")
        st.line_chart(hist, x="tick", y=["virtual_price"])
        st.write("**Price vs EMA oracle**")
        st.line_chart(hist, x="tick", y=["last_price", "price_oracle"])
        balance_cols = [c for c in hist.columns if c.startswith("balance_")]
        hist_balances = hist.dropna(axis=1, how="all")
        balance_cols = [c for c in balance_cols if c in hist_balances.columns]
        if balance_cols:
            st.write("**Balances**")
            st.line_chart(hist_balances, x="tick", y=balance_cols)

        assets = pd.DataFrame([
            {
                "asset": a.symbol,
                "decimals": a.decimals,
                "balance": p.balances[i] / 10 ** a.decimals,
                "admin_fees": p.admin_balances(i) / 10 ** a.decimals,
                "feed_price": a.feed.price / 10 ** a.feed.decimals,
            }
            for i, a in enumerate(p.assets)
        ])
        st.dataframe(assets, use_container_width=True)

with tab_votes:
    st.subheader("Aggregate weight per target")
    if target_df.empty:
        st.info("No target rows yet.")
    else:
        wide = engine.metrics.weights_wide()
        st.line_chart(wide)
        latest_tick = target_df["tick"].max()
        cur = target_df[target_df["tick"] == latest_tick]
        st.dataframe(cur, use_container_width=True)

    st.subheader("Voters")
    rows = []
    for agent in engine.agents.values():
        if agent.role != "voter":
            continue
        row = {
            "voter": agent.agent_id,
            "state": engine.ledger.lock_state(agent.agent_id),
            "unlock_in_days": max(0, engine.ledger.unlock_time(agent.agent_id) - engine.clock.now) / 86400,
            "free_gov": engine.governance.balance_of(agent.agent_id) / 10 ** engine.governance.decimals,
        }
        for t in engine.ledger.targets:
            row[t.name] = engine.ledger.votes_of(agent.agent_id, t.index) / 10 ** engine.governance.decimals
        rows.append(row)
    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True)

with tab_events:
    st.subheader("Event Log (latest 300)")
    tail = engine.log.tail(300)
    if not tail:
        st.info("No events yet.")
    else:
        df = pd.DataFrame([e.__dict__ for e in tail])
        df["_order"] = range(len(df))
        df = df.sort_values(["time", "_order"], ascending=False).drop(columns="_order")
        if "meta" in df.columns:
            df["meta"] = df["meta"].apply(_format_event_meta)
        st.dataframe(df, use_container_width=True)

with tab_swaps:
    st.subheader("Swap receipts (latest 200 per pool)")
    receipts = [r.to_dict() for p in engine.pools.values() for r in p.receipts.tail(200)]
    if not receipts:
        st.info("No swaps yet.")
    else:
        df = pd.DataFrame(receipts).sort_values("time", ascending=False)
        status = st.radio("Status", ["all", "executed", "failed"], horizontal=True)
        if status != "all":
            df = df[df["status"] == status]
        st.dataframe(df, use_container_width=True)
