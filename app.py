# app.py
# Streamlit control panel for the VSM flow simulation.
# - Lets you edit per-step process time and %C&A on the built-in demo diagram
# - Runs the simulation to completion and displays KPIs, bottlenecks and the trace
# - Compares the baseline against a what-if scenario with one step sped up

import copy
import json
import time
from dataclasses import asdict
from typing import Dict, Any

import streamlit as st

from vsm_config import DEFAULT_MAX_TICKS, SimulationConfig, load_config
from vsm_diagram import CONFIG as DEFAULT_DIAGRAM, load_diagram
from vsm_engine import start_simulation
from vsm_runner import SimulationRunner
from vsm_scenario import ScenarioManager

# ---------------------------
# Helpers
# ---------------------------

def step_by_id(cfg: Dict[str, Any], sid: str) -> Dict[str, Any]:
    for s in cfg["steps"]:
        if s["id"] == sid:
            return s
    raise KeyError(f"Step not found: {sid}")

# ---------------------------
# App layout
# ---------------------------

st.set_page_config(page_title="VSM Flow Simulator", layout="wide")
st.title("Value Stream Flow Simulator")

defaults = load_config()

with st.sidebar:
    st.header("Run Controls")
    work_items = st.number_input("Work items", min_value=0, value=int(defaults.work_item_count), step=1)
    speed = st.slider("Speed", min_value=0.25, max_value=4.0, value=float(defaults.speed), step=0.25)
    max_ticks = st.number_input("Max ticks", min_value=1, value=int(defaults.max_ticks or DEFAULT_MAX_TICKS), step=100)
    seed = st.number_input("Random seed", min_value=0, value=int(defaults.seed or 42), step=1)
    show_logs_n = st.number_input("Show last N logs", min_value=0, value=30, step=5)

# Make a working copy of the default diagram
cfg = copy.deepcopy(DEFAULT_DIAGRAM)

st.subheader("Steps")
exp = st.expander("Per-step process time and %C&A", expanded=True)

def step_controls(sid: str):
    s = step_by_id(cfg, sid)
    st.markdown(f"**{s['name']} ({sid})**")
    c1, c2 = st.columns(2)
    with c1:
        pt = st.number_input(f"{sid} process_time (min)", min_value=0.0, value=float(s["process_time"]), step=5.0, key=f"{sid}_pt")
        s["process_time"] = pt
        s["lead_time"] = max(float(s["lead_time"]), pt)
    with c2:
        pca = st.number_input(f"{sid} %C&A", min_value=0.0, max_value=100.0, value=float(s["percent_complete_accurate"]), step=1.0, key=f"{sid}_pca")
        s["percent_complete_accurate"] = pca

with exp:
    for s in cfg["steps"]:
        step_controls(s["id"])

st.markdown("---")
st.subheader("What-if Scenario")
step_names = {s["id"]: s["name"] for s in cfg["steps"]}
improve_id = st.selectbox("Halve the process time of", options=list(step_names), format_func=lambda sid: step_names[sid])

# ---------------------------
# Run
# ---------------------------

run = st.button("Run Simulation")

if run:
    steps, connections = load_diagram(cfg)
    sim_cfg = SimulationConfig(work_item_count=int(work_items), speed=speed, max_ticks=int(max_ticks), seed=int(seed))

    t0 = time.time()
    runner = SimulationRunner(seed=sim_cfg.seed)
    runner.start(start_simulation(steps, connections, sim_cfg), steps, connections)
    results = runner.run_until_complete(max_ticks=sim_cfg.max_ticks)
    t1 = time.time()

    st.success(f"Simulation finished in {t1 - t0:.3f} sec (wall time).")
    if results.completed_count < sim_cfg.work_item_count:
        st.warning(f"Tick ceiling reached: {results.completed_count}/{sim_cfg.work_item_count} items completed.")

    # KPIs
    st.subheader("KPIs")
    st.json(results.as_dict())

    bottleneck_rows = [asdict(b) for b in results.bottlenecks]
    if bottleneck_rows:
        st.subheader("Bottlenecks")
        st.table(bottleneck_rows)

    # Scenario comparison
    manager = ScenarioManager(work_item_count=sim_cfg.work_item_count, max_ticks=sim_cfg.max_ticks,
                             seed=sim_cfg.seed, speed=sim_cfg.speed)
    scenario = manager.create_scenario(steps, connections, name=f"Faster {step_names[improve_id]}")
    target = scenario.step(improve_id)
    target.process_time = target.process_time / 2.0
    comparison = manager.run_comparison(scenario.id, steps, connections)

    st.subheader(f"Comparison: baseline vs '{scenario.name}'")
    st.table([
        {"metric": "avg_lead_time", "baseline": comparison.baseline.avg_lead_time,
         "scenario": comparison.scenario.avg_lead_time, "improvement_%": comparison.improvements["lead_time"]},
        {"metric": "throughput", "baseline": comparison.baseline.throughput,
         "scenario": comparison.scenario.throughput, "improvement_%": comparison.improvements["throughput"]},
    ])

    # Logs
    st.subheader("Run Trace (tail)")
    if show_logs_n > 0:
        tail = runner.log[-int(show_logs_n):]
        st.code("\n".join(tail), language="text")

    # Download diagram & logs
    st.subheader("Artifacts")
    st.download_button(
        label="Download used diagram (JSON)",
        data=json.dumps(cfg, indent=2),
        file_name="used_diagram.json",
        mime="application/json"
    )
    st.download_button(
        label="Download comparison (JSON)",
        data=json.dumps(comparison.as_dict(), indent=2),
        file_name="comparison.json",
        mime="application/json"
    )
else:
    st.info("Adjust parameters on the page, then click **Run Simulation**.")
