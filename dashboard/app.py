"""
tradesim dashboard: net position, open orders, fills and realized profit per pair.
Run from repo root: streamlit run dashboard/app.py
Or with data dir: TRADESIM_DASHBOARD_DATA_DIR=/path/to/data streamlit run dashboard/app.py
"""

import streamlit as st

from data_reader import (
    _data_dir,
    discover_pairs,
    get_net_position,
    get_open_orders,
    get_recent_fills,
    get_recent_journal_events,
)

st.set_page_config(page_title="tradesim Dashboard", layout="wide")
st.title("tradesim Paper Trading Dashboard")

data_dir = _data_dir()
pairs = discover_pairs(data_dir)

if not pairs:
    st.warning(f"No orders found under: `{data_dir}`")
    st.caption("Expect data/orders.db (and optionally data/journal.jsonl). Run 'tradesim paper' or 'tradesim backtest --persist' first.")
    st.stop()

col_refresh, col_auto = st.columns([1, 3])
with col_refresh:
    if st.button("Refresh"):
        st.rerun()
with col_auto:
    auto_refresh = st.checkbox("Auto-refresh every 60s", value=False)

summaries = get_recent_journal_events(event_type="summary", limit=1, data_dir=data_dir)
if summaries:
    last = summaries[0]
    c1, c2, c3 = st.columns(3)
    c1.metric("Final value", f"{last.get('final_value', 0):,.2f}")
    c2.metric("Volume", f"{last.get('volume', 0):,.2f}")
    c3.metric("Mode", last.get("mode", "-"))

for pair in pairs:
    net = get_net_position(pair, data_dir)
    state = "Flat" if abs(net) < 1e-12 else ("Long" if net > 0 else "Short")
    open_orders = get_open_orders(pair, data_dir)
    fills = get_recent_fills(pair, limit=15, data_dir=data_dir)
    profits = get_recent_journal_events(event_type="profit", pair=pair, limit=10, data_dir=data_dir)

    with st.container():
        st.subheader(pair)
        c1, c2, c3 = st.columns(3)
        with c1:
            st.metric("Position", state)
            if state != "Flat":
                st.caption(f"{abs(net):.8f}")
        with c2:
            st.metric("Open orders", len(open_orders))
        with c3:
            st.metric("Fills", len(fills))

        with st.expander("Open orders", expanded=False):
            if not open_orders:
                st.caption("No open orders.")
            else:
                for o in open_orders:
                    stop = f" stop {o['stop']}" if o.get("stop") else ""
                    st.text(f"#{o['id']}  {o['side']} {o['type']}  {o['quantity']} @ {o['price']}{stop}  [{o['status']}]")

        with st.expander("Recent fills", expanded=False):
            if not fills:
                st.caption("No fills yet.")
            else:
                for f in fills:
                    ts = (f.get("updated_at") or "")[:19]
                    profit = f" ({f['profit'] * 100:.2f} %)" if f.get("profit") else ""
                    st.text(f"{ts}  {f.get('side')}  {f.get('quantity')} @ {f.get('price')}{profit}")

        with st.expander("Realized profit", expanded=False):
            if not profits:
                st.caption("No profit events yet.")
            else:
                for e in profits:
                    ts = e.get("ts_utc", "")[:19]
                    st.text(f"{ts}  {e.get('value', 0):.4f}  ({e.get('percent', 0) * 100:.2f} %)")

    st.divider()

if auto_refresh:
    import time
    time.sleep(60)
    st.rerun()
