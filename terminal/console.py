"""Streamlit operator console: scan, allocate, then print & sync.

Run with:
    streamlit run terminal/console.py
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st
from PIL import Image

from backend.domain.models import Allocation, Person, Room
from terminal.bootstrap import TerminalServices, build_terminal_services
from terminal.ledger import StorageError
from terminal.orchestrator import AllocationError
from terminal.scan_ingestor import HardwareScannerListener, ScannerDependencyError, decode_image

SYNC_POLL_SECONDS = 0.5

st.set_page_config(
    page_title="Room Allocation",
    page_icon="🏨",
    layout="wide",
)


# ==========================================
# Session wiring
# ==========================================
@st.cache_resource
def get_services() -> TerminalServices:
    """One set of collaborators per console process, sharing one ledger."""
    services = build_terminal_services()
    services.refresh()
    return services


def _status(message: str, kind: str = "info") -> None:
    st.session_state["status"] = (message, kind)


def _on_scan(person: Person) -> None:
    st.session_state["scanned_person"] = person
    _status(f"Scanned: {person.name} ({person.mi_no})", "success")


def _on_scan_error(message: str) -> None:
    _status(message, "error")


def get_listener(services: TerminalServices) -> HardwareScannerListener:
    if "hardware_listener" not in st.session_state:
        st.session_state["hardware_listener"] = HardwareScannerListener(
            services.ingestor,
            on_success=_on_scan,
            on_error=_on_scan_error,
        )
    return st.session_state["hardware_listener"]


def render_status() -> None:
    status = st.session_state.get("status")
    if not status:
        return
    message, kind = status
    if kind == "success":
        st.success(message)
    elif kind == "error":
        st.error(message)
    else:
        st.info(message)


# ==========================================
# Scanner column
# ==========================================
def render_scanner(services: TerminalServices) -> None:
    st.subheader("Scan Visitor QR Code")
    mode = st.radio("Scan mode", ["Camera", "Hardware Scanner"], horizontal=True)
    listener = get_listener(services)

    if mode == "Camera":
        listener.stop()
        snapshot = st.camera_input("Point the camera at the badge")
        if snapshot is not None and st.session_state.get("last_snapshot") != snapshot.file_id:
            st.session_state["last_snapshot"] = snapshot.file_id
            try:
                payloads = decode_image(Image.open(snapshot))
            except ScannerDependencyError as exc:
                _status(str(exc), "error")
                payloads = []
            if not payloads:
                _status("No QR code found in the picture", "error")
            for text in payloads:
                if services.ingestor.ingest(text, _on_scan, _on_scan_error) is not None:
                    break
    else:
        if listener.is_listening:
            st.caption("📡 Scanning active. Scan your QR code now or click Stop to cancel.")
            if st.button("Stop Scanning"):
                listener.stop()
                st.rerun()
        elif st.button("Scan QR Code", type="primary"):
            listener.start()
            st.rerun()

        def _on_burst() -> None:
            burst = st.session_state.get("scanner_burst", "")
            st.session_state["scanner_burst"] = ""
            if listener.is_listening and burst:
                listener.feed(burst)

        st.text_input(
            "Scanner input (keep focused while scanning)",
            key="scanner_burst",
            on_change=_on_burst,
            disabled=not listener.is_listening,
        )

    with st.expander("Or paste QR data manually"):
        manual = st.text_area(
            "QR data",
            placeholder='{"name":"John Doe","miNo":"MI-abc-1234","email":"john@example.com"}',
        )
        if st.button("Process QR Data", disabled=not manual.strip()):
            services.ingestor.ingest(manual, _on_scan, _on_scan_error)


# ==========================================
# Allocation column
# ==========================================
def render_allocation_form(services: TerminalServices) -> None:
    view = services.capacity_view
    person: Optional[Person] = st.session_state.get("scanned_person")

    st.subheader("Person Details")
    if person is None:
        st.info("Scan a QR code to view person details")
    else:
        st.markdown(f"**Name:** {person.name}  \n**MI No:** {person.mi_no}  \n**Email:** {person.email}")

    st.subheader("Select Room")
    hostels = view.hostels()
    hostel = st.selectbox("Hostel", ["-- Select Hostel --", *hostels])
    room: Optional[Room] = None
    if hostel in hostels:
        rooms = view.rooms_in(hostel)
        if not rooms:
            st.caption("No rooms available in this hostel")
        else:
            occupancy = pd.DataFrame(
                [
                    {
                        "Room": row.room_no,
                        "Occupied": f"{row.occupied}/{row.capacity}",
                        "Available": max(row.available, 0),
                        "Full": row.available <= 0,
                    }
                    for row in view.snapshot(hostel)
                ]
            )
            st.dataframe(occupancy, use_container_width=True, hide_index=True)
            open_rooms = [candidate for candidate in rooms if not view.is_full(candidate)]
            labels = {f"Room {candidate.room_no}": candidate for candidate in open_rooms}
            choice = st.selectbox("Room", ["-- Select Room --", *labels])
            room = labels.get(choice)
            if room is not None:
                st.caption(f"Password: {room.password or 'N/A'}")

    if st.button(
        "✓ Allocate Room",
        type="primary",
        disabled=person is None or room is None or services.sync_job.running,
    ):
        try:
            allocation = services.orchestrator.allocate(person, room)
        except AllocationError as exc:
            _status(str(exc), "error")
        except StorageError as exc:
            _status(f"Failed to save allocation: {exc}", "error")
        else:
            _on_allocated(allocation)
        st.rerun()


def _on_allocated(allocation: Allocation) -> None:
    _status(
        f"✅ Allocated {allocation.hostel} - Room {allocation.room_no} to {allocation.name}",
        "success",
    )
    st.session_state["scanned_person"] = None


# ==========================================
# Print & sync column
# ==========================================
def render_sync_panel(services: TerminalServices) -> None:
    st.subheader("Print & Sync Allocations")
    stats = services.ledger.stats()
    col_a, col_b = st.columns(2)
    col_a.metric("Pending Allocations", stats.total_allocations)
    col_b.metric("Rooms Used", len(stats.rooms))

    if stats.total_allocations:
        st.dataframe(
            pd.DataFrame(
                [
                    {"Room": f"{group.hostel} - Room {group.room_no}", "People": group.count}
                    for group in stats.rooms
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No allocations yet. Scan QR codes and allocate rooms to print.")

    job = services.sync_job
    if job.running:
        st.info(job.latest_status or "Syncing allocations...")
        if st.button("Cancel Sync"):
            job.cancel()
        # poll the worker thread until the run finishes
        time.sleep(SYNC_POLL_SECONDS)
        st.rerun()
        return

    error = job.take_error()
    if error:
        _status(f"Sync failed: {error}", "error")
        render_status()

    outcome = job.take_outcome()
    if outcome is not None:
        _status(outcome.message, "success" if outcome.succeeded else "error")
        render_status()
        if outcome.succeeded:
            for conflict in outcome.conflicts:
                st.warning(
                    f"{conflict.mi_no} was already in {conflict.previous_hostel} - "
                    f"Room {conflict.previous_room_no}; moved to {conflict.hostel} - Room {conflict.room_no}"
                )
            if outcome.report_path is not None:
                st.session_state["last_report"] = outcome.report_path
            for refresh_error in services.refresh():
                st.error(refresh_error)

    report_path: Optional[Path] = st.session_state.get("last_report")
    if report_path is not None and report_path.exists():
        st.download_button(
            "Download PDF",
            data=report_path.read_bytes(),
            file_name=report_path.name,
            mime="application/pdf",
        )

    if st.button("🖨️ Print & Save", disabled=stats.total_allocations == 0):
        get_listener(services).stop()
        job.start()
        st.rerun()


# ==========================================
# Main App
# ==========================================
def main() -> None:
    services = get_services()

    st.sidebar.title("Room Allocation")
    st.sidebar.caption(f"Backend: {services.client.base_url}")
    if st.sidebar.button("Refresh rooms & allocations"):
        for error in services.refresh():
            st.sidebar.error(error)

    st.header("🏨 Room Allocation System")
    st.markdown("Scan QR codes, allocate rooms, and print allocation reports")
    render_status()

    left, middle, right = st.columns(3)
    with left:
        render_scanner(services)
    with middle:
        render_allocation_form(services)
    with right:
        render_sync_panel(services)


if __name__ == "__main__":
    main()
