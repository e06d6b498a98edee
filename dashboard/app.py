"""Streamlit operator dashboard for Plataforma Odin."""

from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo

import streamlit as st

from dashboard.client import (
    DashboardApiError,
    create_booking,
    fetch_pending_external_requests,
    fetch_ranking,
    fetch_schedule,
    fetch_window,
    login,
    ranking_table,
    review_external_request,
    schedule_frame,
)

st.set_page_config(
    page_title="Odin Dashboard",
    page_icon="📅",
    layout="wide",
)


# ==========================================
# UI Page Functions
# ==========================================
def render_schedule_page() -> None:
    st.header("📅 Agenda do dia")
    st.markdown("Rooms, items and approved external rooms in one grid.")

    day = st.date_input("Day", datetime.date.today())
    try:
        schedule = fetch_schedule(day)
    except DashboardApiError as exc:
        st.error(str(exc))
        return

    frame = schedule_frame(schedule)
    if frame.empty:
        st.info("Nothing booked for this day.")
    else:
        st.dataframe(frame, use_container_width=True)

    st.write("### New booking")
    resources = [row["resource"] for row in schedule.get("resources", []) if row["resource"]["kind"] != "EXTERNAL"]
    if not resources:
        return
    labels = {f"{resource['kind']} · {resource['name']}": resource for resource in resources}
    col1, col2, col3 = st.columns(3)
    with col1:
        choice = st.selectbox("Resource", list(labels))
        owner_id = st.number_input("Member ID", min_value=1, value=1)
    with col2:
        start_time = st.time_input("Start", datetime.time(9, 0))
        end_time = st.time_input("End", datetime.time(10, 0))
    with col3:
        title = st.text_input("Title", "Reunião")

    resource = labels[choice]
    try:
        window = fetch_window(resource["kind"], int(resource["resource_id"]))
    except DashboardApiError as exc:
        st.warning(str(exc))
    else:
        if window["status"] == "OCCUPIED":
            st.caption(f"Occupied now, until {window['until']}")
        elif window["status"] == "FREE_UNTIL":
            st.caption(f"Free now, until {window['until']}")
        else:
            st.caption("Free now, nothing booked ahead")

    if st.button("Book", type="primary"):
        zone = ZoneInfo(schedule.get("timezone", "UTC"))
        try:
            booking = create_booking(
                kind=resource["kind"],
                resource_id=int(resource["resource_id"]),
                owner_id=int(owner_id),
                start=datetime.datetime.combine(day, start_time, tzinfo=zone),
                end=datetime.datetime.combine(day, end_time, tzinfo=zone),
                title=title,
            )
        except DashboardApiError as exc:
            st.error(str(exc))
        else:
            st.success(f"Booking {booking['booking_id']} created")


def render_ranking_page() -> None:
    st.header("🏆 JR Points")
    try:
        rows = fetch_ranking()
    except DashboardApiError as exc:
        st.error(str(exc))
        return

    table = ranking_table(rows)
    if table.empty:
        st.info("No approved members yet.")
        return
    leader = table.iloc[0]
    st.metric("Leader", leader["name"], f"{leader['total_points']} pts")
    st.dataframe(table, use_container_width=True)
    st.bar_chart(table.set_index("name")["total_points"])


def render_requests_page() -> None:
    st.header("🏛️ External room requests")
    token = st.session_state.get("director_session")
    if token is None:
        director_token = st.text_input("Director token", type="password")
        if st.button("Login") and director_token:
            try:
                st.session_state["director_session"] = login(director_token)
            except DashboardApiError as exc:
                st.error(str(exc))
                return
            st.rerun()
        return

    try:
        pending = fetch_pending_external_requests()
    except DashboardApiError as exc:
        st.error(str(exc))
        return
    if not pending:
        st.info("No pending requests.")
        return

    for request in pending:
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.write(f"**{request['title']}** · {request['start']} → {request['end']}")
        for column, approve, label in ((col2, True, "Approve"), (col3, False, "Reject")):
            if column.button(label, key=f"{label}-{request['booking_id']}"):
                try:
                    review_external_request(request["booking_id"], approve, token)
                except DashboardApiError as exc:
                    st.error(str(exc))
                else:
                    st.rerun()


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Plataforma Odin")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation Module",
        ["Agenda", "JR Points", "External requests"],
    )

    if page == "Agenda":
        render_schedule_page()
    elif page == "JR Points":
        render_ranking_page()
    elif page == "External requests":
        render_requests_page()


if __name__ == "__main__":
    main()
