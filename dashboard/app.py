"""Streamlit scheduling screen; one page for every resource type in the catalog."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("RESERVATIONS_API_URL", "http://127.0.0.1:8000")
PERIODS = ["1st", "2nd", "3rd", "4th", "5th"]
SHIFTS = ["MORNING", "AFTERNOON"]

st.set_page_config(
    page_title="Resource Scheduling",
    page_icon="📅",
    layout="wide",
)


# ==========================================
# API Helper Functions
# ==========================================
def _headers() -> Dict[str, str]:
    token = st.session_state.get("access_token")
    staff_name = st.session_state.get("staff_name")
    headers: Dict[str, str] = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if staff_name:
        headers["X-Staff-Name"] = staff_name
    return headers


def fetch_auth_enabled() -> bool:
    try:
        response = requests.get(f"{API_BASE_URL}/health", timeout=5)
        response.raise_for_status()
        return bool(response.json().get("auth_enabled"))
    except requests.exceptions.RequestException:
        return False


def login(shared_token: str, staff_name: str) -> None:
    try:
        response = requests.post(
            f"{API_BASE_URL}/login",
            json={"access_token": shared_token, "staff_name": staff_name},
            timeout=5,
        )
        response.raise_for_status()
        st.session_state["access_token"] = response.json()["access_token"]
    except requests.exceptions.RequestException as e:
        st.sidebar.error(f"Sign in failed: {e}")


def fetch_resources() -> List[Dict[str, Any]]:
    try:
        response = requests.get(f"{API_BASE_URL}/resources", timeout=5)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return []


def fetch_availability(resource_type: str, target_date: str) -> List[Dict[str, Any]]:
    try:
        response = requests.get(
            f"{API_BASE_URL}/availability",
            params={"resource_type": resource_type, "date": target_date},
            timeout=5,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Could not load availability: {e}")
        return []


def fetch_history(resource_type: str, requester: str) -> List[Dict[str, Any]]:
    params = {"resource_type": resource_type}
    if requester:
        params["requester"] = requester
    try:
        response = requests.get(f"{API_BASE_URL}/reservations", params=params, timeout=5)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Could not load reservations: {e}")
        return []


def submit_reservation(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Create a reservation; conflicts and validation errors are shown verbatim."""
    try:
        response = requests.post(
            f"{API_BASE_URL}/reservations",
            json=payload,
            headers=_headers(),
            timeout=10,
        )
    except requests.exceptions.RequestException as e:
        st.error(f"Reservation failed: {e}")
        return None

    if response.status_code == 201:
        return response.json()
    detail = response.json().get("detail")
    if response.status_code == 409 and isinstance(detail, dict):
        st.error(
            f"Schedule conflict: already reserved by {detail['requester']} "
            f"({detail['group_label']}) for periods {', '.join(detail['overlapping_periods'])}."
        )
    elif isinstance(detail, dict):
        st.error(detail.get("message", "Reservation rejected"))
    else:
        st.error(f"Reservation rejected: {detail}")
    return None


def cancel_reservation(reservation_id: str) -> bool:
    try:
        response = requests.delete(
            f"{API_BASE_URL}/reservations/{reservation_id}",
            headers=_headers(),
            timeout=5,
        )
    except requests.exceptions.RequestException as e:
        st.error(f"Cancellation failed: {e}")
        return False
    # 404 means someone else already freed the slot.
    return response.status_code in (200, 404)


# ==========================================
# UI Page Functions
# ==========================================
def render_attribute_inputs(attributes: List[Dict[str, Any]]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field in attributes:
        key = f"attr_{field['name']}"
        if field["kind"] == "boolean":
            values[field["name"]] = st.checkbox(field["label"], key=key)
        elif field["kind"] == "choice":
            values[field["name"]] = st.selectbox(field["label"], field["choices"], key=key)
        elif field["kind"] == "multi_choice":
            values[field["name"]] = st.multiselect(field["label"], field["choices"], key=key)
        else:
            values[field["name"]] = st.text_input(field["label"], key=key)
    return values


def render_status_page(resource: Dict[str, Any], target_date: datetime.date) -> None:
    st.header(f"{resource['display_name']}: {target_date.strftime('%d/%m/%Y')}")

    grid = fetch_availability(resource["resource_type"], target_date.isoformat())
    if grid:
        rows = []
        for cell in grid:
            booked = {slot["period"]: f"{slot['requester']} ({slot['group_label']})" for slot in cell["booked"]}
            row = {"Instance": cell["resource_instance_id"], "Shift": cell["shift"]}
            row.update({period: booked.get(period, "free") for period in PERIODS})
            rows.append(row)
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    st.subheader("New reservation")
    with st.form("new_reservation", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            instance = st.selectbox("Instance", resource["instances"])
            shift = st.selectbox("Shift", SHIFTS)
            periods = st.multiselect("Class periods", PERIODS)
        with col2:
            requester = st.text_input("Teacher", value=st.session_state.get("staff_name", ""))
            group_label = st.text_input("Class / group")
            notes = st.text_area("Notes")
        attributes = render_attribute_inputs(resource["attributes"])
        submitted = st.form_submit_button("Reserve", type="primary")

    if submitted:
        created = submit_reservation(
            {
                "resource_type": resource["resource_type"],
                "resource_instance_id": instance,
                "date": target_date.isoformat(),
                "shift": shift,
                "periods": periods,
                "requester": requester,
                "group_label": group_label,
                "attributes": attributes,
                "notes": notes,
            }
        )
        if created:
            st.success(f"Reserved {created['resource_instance_id']} for periods {', '.join(created['periods'])}.")
            st.rerun()


def render_history_page(resource: Dict[str, Any]) -> None:
    st.header(f"{resource['display_name']}: reservation log")
    requester = st.text_input("Filter by teacher")
    history = fetch_history(resource["resource_type"], requester)
    if not history:
        st.info("No reservations recorded.")
        return

    for item in sorted(history, key=lambda row: row["date"], reverse=True):
        col1, col2, col3, col4 = st.columns([2, 2, 3, 1])
        col1.write(f"**{item['date']}** · {item['shift']}")
        col2.write(f"{item['resource_instance_id']} · {', '.join(item['periods'])}")
        col3.write(f"{item['requester']} / {item['group_label']}")
        if col4.button("Cancel", key=f"cancel_{item['id']}"):
            if cancel_reservation(item["id"]):
                st.rerun()


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Resource Scheduling")
    st.sidebar.text_input("Your name", key="staff_name")
    if fetch_auth_enabled() and not st.session_state.get("access_token"):
        shared_token = st.sidebar.text_input("School access token", type="password")
        if st.sidebar.button("Sign in"):
            login(shared_token, st.session_state.get("staff_name", ""))
    st.sidebar.markdown("---")

    resources = fetch_resources()
    if not resources:
        st.warning("Reservation API is not reachable.")
        return

    by_name = {resource["display_name"]: resource for resource in resources}
    selected = st.sidebar.radio("Resource", list(by_name))
    page = st.sidebar.radio("View", ["Availability", "History"])
    target_date = st.sidebar.date_input("Date", datetime.date.today())

    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")

    if page == "Availability":
        render_status_page(by_name[selected], target_date)
    else:
        render_history_page(by_name[selected])


if __name__ == "__main__":
    main()
