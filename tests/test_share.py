"""Unit tests for browser-format conversion and share links."""

import base64
import json
import zlib
from urllib.parse import quote, unquote

import pytest

from threepoint.data.browser import from_browser_state, to_browser_state, is_browser_state
from threepoint.data.share import encode_state, decode_state, share_url
from threepoint.engine import overall_summary
from threepoint.models import NO_GROUP
from threepoint.recovery import CorruptionError, ShareLinkError


def _browser_token(document):
    """Encode the way the browser tool does: deflate, base64, URI component."""
    compressed = zlib.compress(json.dumps(document).encode("utf-8"))
    return quote(base64.b64encode(compressed).decode("ascii"), safe="")


BROWSER_DOCUMENT = {
    "tasks": {
        "nextID": 3,
        "tasks": {
            "1": {
                "id": {"value": "1", "type": "STRING", "validationMessage": ""},
                "taskName": {"value": "Design", "type": "STRING", "validationMessage": ""},
                "bestCase": {"value": 10, "type": "NUMBER", "validationMessage": ""},
                "mostLikely": {"value": "15", "type": "NUMBER", "validationMessage": ""},
                "worstCase": {"value": "20", "type": "NUMBER", "validationMessage": ""},
                "costOverride": {"value": "", "type": "NUMBER", "validationMessage": ""},
                "groupId": {"value": "group-1", "type": "STRING", "validationMessage": ""},
                "phaseId": {"value": "phase-1", "type": "STRING", "validationMessage": ""},
                "taskDesc": {"value": "", "type": "STRING", "validationMessage": ""},
            },
            "2": {
                "id": {"value": "2"},
                "taskName": {"value": "Moved"},
                "bestCase": {"value": 1},
                "mostLikely": {"value": 1},
                "worstCase": {"value": 1},
                "costOverride": {"value": "80"},
                "phaseId": {"value": "default"},
                "taskDesc": {"value": ""},
            },
        },
        "tasksOrder": ["2", "1"],
    },
    "config": {"projectName": "Shop", "globalCost": 50, "showGroups": True,
               "showPhases": False, "language": "fr"},
    "groups": {
        "groups": {
            "default": {"id": "default", "name": "Default Group", "costOverride": "", "visible": True,
                        "description": "", "phaseId": "default", "includeInComputation": True},
            "group-1": {"id": "group-1", "name": "Backend", "costOverride": "30", "visible": True,
                        "description": "APIs", "phaseId": "phase-1", "includeInComputation": True},
        },
        "groupsOrder": ["default", "group-1"],
        "nextGroupId": 2,
    },
    "phases": {
        "phases": {
            "default": {"id": "default", "name": "Default Phase", "costOverride": "", "visible": True,
                        "description": "", "includeInComputation": True},
            "phase-1": {"id": "phase-1", "name": "Build", "costOverride": "", "visible": True,
                        "description": "", "includeInComputation": False},
        },
        "phasesOrder": ["default", "phase-1"],
        "nextPhaseId": 2,
    },
}


class TestBrowserConversion:
    """Test conversion from and to the browser tool's state document."""

    def test_from_browser(self):
        state = from_browser_state(BROWSER_DOCUMENT)
        assert state.config.project_name == "Shop"
        assert state.config.show_phases is False
        assert state.config.language == "fr"
        assert state.tasks_order == ["2", "1"]
        assert state.tasks["1"].name == "Design"
        assert state.tasks["1"].likely == "15"
        assert state.tasks["1"].cost_override is None
        assert state.tasks["2"].group_id == NO_GROUP
        assert state.groups["group-1"].cost_override == "30"
        assert state.groups["default"].cost_override is None
        assert state.phases["phase-1"].include_in_computation is False
        assert state.next_task_id == 3

    def test_numbers_match_browser(self):
        state = from_browser_state(BROWSER_DOCUMENT)
        summary = overall_summary(state)
        # Task 1 sits in an excluded phase; task 2 has no group and its own rate.
        assert summary.count == 1
        assert summary.sum_cost == 80.0

    def test_round_trip(self, sample_state):
        document = to_browser_state(sample_state)
        assert is_browser_state(document)
        assert document["tasks"]["tasks"]["1"]["bestCase"]["value"] == 10.0
        assert document["tasks"]["tasks"]["1"]["costOverride"]["value"] == ""
        assert document["phases"]["phases"]["phase-1"]["costOverride"] == 40.0
        assert from_browser_state(document) == sample_state

    def test_null_estimate_counts_as_zero(self):
        document = json.loads(json.dumps(BROWSER_DOCUMENT))
        document["tasks"]["tasks"]["2"]["bestCase"]["value"] = None
        document["tasks"]["tasks"]["2"]["worstCase"]["value"] = None
        state = from_browser_state(document)
        assert state.tasks["2"].best is None
        # (0 + 4 * 1 + 0) / 6 hours at the task rate of 80
        assert overall_summary(state).sum_cost == pytest.approx(80 * 4 / 6)

    def test_empty_document_gives_fresh_state(self):
        state = from_browser_state({})
        assert state.tasks == {}
        assert state.phases_order == ["default"]

    def test_not_a_document(self):
        with pytest.raises(CorruptionError):
            from_browser_state(["tasks"])

    def test_is_browser_state(self, sample_state):
        assert not is_browser_state(sample_state.model_dump(mode="json"))
        assert is_browser_state(BROWSER_DOCUMENT)


class TestShareLinks:
    """Test share token encoding and decoding."""

    def test_round_trip(self, sample_state):
        assert decode_state(encode_state(sample_state)) == sample_state

    def test_token_is_url_safe(self, sample_state):
        token = encode_state(sample_state)
        assert all(c.isalnum() or c in "%-_." for c in token)

    def test_decodes_browser_token(self):
        state = decode_state(_browser_token(BROWSER_DOCUMENT))
        assert state.config.project_name == "Shop"
        assert state.tasks_order == ["2", "1"]

    def test_browser_can_read_our_token(self, sample_state):
        token = encode_state(sample_state)
        document = json.loads(zlib.decompress(base64.b64decode(unquote(token))))
        assert document["config"]["projectName"] == "Website"
        assert document["tasks"]["tasksOrder"] == ["1", "2", "3", "4"]

    def test_share_url(self, sample_state):
        url = share_url(sample_state, "https://example.com/estimator")
        assert url.startswith("https://example.com/estimator?sharedState=")
        assert url.endswith("&lang=en")
        assert decode_state(url) == sample_state

    def test_share_url_drops_existing_query(self, sample_state):
        url = share_url(sample_state, "https://example.com/app?sharedState=old&lang=fr#top")
        assert url.startswith("https://example.com/app?sharedState=")
        assert url.count("sharedState=") == 1
        assert "lang=fr" not in url and "#top" not in url
        assert decode_state(url) == sample_state

    def test_share_url_download(self, sample_state):
        assert share_url(sample_state, "https://example.com/", download="pdf").endswith("&lang=en&download=pdf")
        with pytest.raises(ValueError):
            share_url(sample_state, "https://example.com/", download="docx")

    def test_decodes_browser_link(self):
        link = f"https://example.com/estimator?sharedState={_browser_token(BROWSER_DOCUMENT)}&lang=fr"
        state = decode_state(link)
        assert state.config.project_name == "Shop"
        assert state.tasks_order == ["2", "1"]

    def test_link_language_wins(self):
        link = f"https://example.com/?sharedState={_browser_token(BROWSER_DOCUMENT)}&lang=de&download=excel"
        assert decode_state(link).config.language == "de"

    def test_query_only_link(self, sample_state):
        assert decode_state(f"?sharedState={encode_state(sample_state)}") == sample_state

    def test_url_without_state(self):
        with pytest.raises(ShareLinkError):
            decode_state("https://example.com/?lang=en")

    def test_old_state_parameter_rejected(self, sample_state):
        with pytest.raises(ShareLinkError):
            decode_state(f"https://example.com/?state={encode_state(sample_state)}")
    @pytest.mark.parametrize("token", ["", "not base64!", base64.b64encode(b"plain text").decode()])
    def test_invalid_token(self, token):
        with pytest.raises(ShareLinkError):
            decode_state(token)

    def test_token_without_project(self):
        with pytest.raises(ShareLinkError):
            decode_state(_browser_token([1, 2, 3]))
