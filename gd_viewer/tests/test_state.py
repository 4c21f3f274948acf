"""Tests for parsing server payloads into state snapshots."""

from __future__ import annotations

import pytest

from gd_viewer.errors import MalformedPushMessage
from gd_viewer.state import PlotList, PlotRef, RemoteState


def test_state_from_payload() -> None:
    state = RemoteState.from_payload({"upid": 4, "hsize": 2, "active": True})
    assert state == RemoteState(update_id=4, plot_count=2, device_active=True)


def test_state_from_payload_missing_key() -> None:
    with pytest.raises(ValueError):
        RemoteState.from_payload({"upid": 4, "active": True})


def test_push_message_parsed() -> None:
    state = RemoteState.from_push_message(b'{"upid": 9, "hsize": 3, "active": false}')
    assert state.update_id == 9
    assert state.plot_count == 3
    assert state.device_active is False


@pytest.mark.parametrize(
    "message",
    ["ping", "{not json", '{"upid": 1}', "[1, 2]", ""],
)
def test_push_message_rejected(message: str) -> None:
    with pytest.raises(MalformedPushMessage):
        RemoteState.from_push_message(message)


def test_snapshots_compare_by_value() -> None:
    first = RemoteState(update_id=1, plot_count=1, device_active=False)
    assert first == RemoteState(update_id=1, plot_count=1, device_active=False)
    assert first != RemoteState(update_id=1, plot_count=1, device_active=True)


def test_plot_list_from_payload_keeps_order() -> None:
    plot_list = PlotList.from_payload(
        {
            "state": {"upid": 2, "hsize": 2, "active": False},
            "plots": [{"id": "p1"}, {"id": "p2"}],
        }
    )
    assert plot_list.plots == (PlotRef("p1"), PlotRef("p2"))
    assert plot_list.state.update_id == 2


def test_plot_list_rejects_missing_plots() -> None:
    with pytest.raises(ValueError):
        PlotList.from_payload({"state": {"upid": 2, "hsize": 0, "active": False}})
