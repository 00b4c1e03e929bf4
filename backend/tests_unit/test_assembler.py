"""
Query Assembly and Rendering Tests (Unit)
=========================================

WHAT: Effective key filter selection and executor parameter rendering.
WHY: An empty key scope must never turn into "no filter", which would
     return every key's data in the workspace.

REFERENCES:
- backend/keylens/analytics/assembler.py
- backend/keylens/analytics/render.py
"""

import time

from keylens.analytics.assembler import assemble, synthesize_key_filter
from keylens.analytics.compiler import compile_filters
from keylens.analytics.filters import FilterValue
from keylens.analytics.granularity import HOUR_MS, GranularityContext, resolve_granularity
from keylens.analytics.render import render_executor_params

NOW = 1_700_000_000_000


def fv(operator, value):
    return FilterValue(operator=operator, value=value)


def regular_window():
    return resolve_granularity(GranularityContext.FOR_REGULAR, NOW - 3 * HOUR_MS, NOW, now=NOW)


def verifications_window():
    return resolve_granularity(GranularityContext.FOR_VERIFICATIONS, now=NOW)


class TestAssemble:
    def test_explicit_key_filter_passes_through(self):
        explicit = (fv("contains", "abc"), fv("is", "key_9"))
        compiled = compile_filters("keys", {"keyIds": explicit})
        request = assemble(
            ["key_1", "key_2"], explicit, compiled, regular_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.key_filter == explicit
        assert not request.matches_nothing

    def test_resolved_ids_are_synthesized(self):
        compiled = compile_filters("keys", {})
        request = assemble(
            ["key_1", "key_2", "key_1"], None, compiled, regular_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.key_filter == (fv("is", "key_1"), fv("is", "key_2"))

    def test_empty_resolution_matches_nothing(self):
        compiled = compile_filters("keys", {"names": (fv("is", "missing"),)})
        request = assemble(
            [], None, compiled, regular_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.matches_nothing
        assert request.key_filter == ()

        params = render_executor_params(request)
        assert params["keyIds"] == []
        assert params["keyIds"] is not None

    def test_empty_resolution_with_explicit_filter_still_matches_nothing(self):
        explicit = (fv("is", "key_404"),)
        compiled = compile_filters("keys", {"keyIds": explicit})
        request = assemble(
            [], explicit, compiled, regular_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.matches_nothing
        assert request.key_filter == explicit

    def test_not_key_scoped_has_no_key_filter(self):
        compiled = compile_filters("logs", {})
        request = assemble(None, None, compiled, regular_window(), workspace_id="ws_1")
        assert request.key_filter is None
        assert not request.matches_nothing
        assert "keyIds" not in render_executor_params(request)

    def test_window_is_merged(self):
        window = regular_window()
        request = assemble(None, None, compile_filters("logs", {}), window, workspace_id="ws_1")
        assert request.start_time == NOW - 3 * HOUR_MS
        assert request.end_time == NOW
        assert request.granularity is window.granularity

    def test_synthesize_key_filter(self):
        assert synthesize_key_filter([]) == ()
        assert synthesize_key_filter(["a"]) == (fv("is", "a"),)

    def test_synthesize_large_keyspace(self):
        key_ids = [f"key_{i}" for i in range(50_000)]

        started = time.perf_counter()
        key_filter = synthesize_key_filter(key_ids + key_ids[:100])
        elapsed = time.perf_counter() - started

        assert len(key_filter) == 50_000
        assert key_filter[0] == fv("is", "key_0")
        assert key_filter[-1] == fv("is", "key_49999")
        assert elapsed < 1.0

    def test_non_string_explicit_key_ids_are_dropped(self):
        explicit = (fv("contains", "key_"), fv("is", 7))
        compiled = compile_filters("verifications", {"keyIds": explicit})
        request = assemble(
            ["key_1"], explicit, compiled, verifications_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.key_filter == (fv("contains", "key_"),)
        assert render_executor_params(request)["keyIds"] == [{"operator": "contains", "value": "key_"}]

    def test_only_non_string_explicit_key_ids_fall_back_to_resolution(self):
        explicit = (fv("is", 7),)
        compiled = compile_filters("verifications", {"keyIds": explicit})
        request = assemble(
            ["key_1"], explicit, compiled, verifications_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        assert request.key_filter == (fv("is", "key_1"),)


class TestRenderExecutorParams:
    def test_logs_params(self):
        compiled = compile_filters(
            "logs",
            {
                "status": (fv("is", 404), fv("is", 500)),
                "paths": (fv("startsWith", "/v1/"), fv("is", "/health")),
                "host": (fv("is", "api.example.com"),),
            },
        )
        request = assemble(None, None, compiled, regular_window(), workspace_id="ws_1")
        assert render_executor_params(request) == {
            "workspaceId": "ws_1",
            "startTime": NOW - 3 * HOUR_MS,
            "endTime": NOW,
            "granularity": "per5Minutes",
            "statusCodes": [404, 500],
            "methods": None,
            "paths": [
                {"operator": "is", "value": "/health"},
                {"operator": "startsWith", "value": "/v1/"},
            ],
            "hosts": ["api.example.com"],
            "requestIds": None,
        }

    def test_verifications_params(self):
        compiled = compile_filters(
            "verifications",
            {
                "outcomes": (fv("is", "VALID"), fv("is", "RATE_LIMITED")),
                "identities": (fv("is", "user_123"),),
            },
        )
        request = assemble(
            ["key_1"], None, compiled, verifications_window(),
            workspace_id="ws_1", keyspace_id="ks_1",
        )
        params = render_executor_params(request)

        assert params["keyspaceId"] == "ks_1"
        assert params["granularity"] == "perHour"
        assert params["keyIds"] == [{"operator": "is", "value": "key_1"}]
        assert params["outcomes"] == [
            {"operator": "is", "value": "VALID"},
            {"operator": "is", "value": "RATE_LIMITED"},
        ]
        assert params["tags"] is None
        # identities are resolved into keyIds, never sent to the executor
        assert "identities" not in params

    def test_ratelimit_params(self):
        compiled = compile_filters(
            "ratelimits",
            {"identifiers": (fv("contains", "ip_"),), "status": (fv("is", "blocked"),)},
        )
        request = assemble(None, None, compiled, regular_window(), workspace_id="ws_1")
        params = render_executor_params(request)
        assert params["identifiers"] == [{"operator": "contains", "value": "ip_"}]
        assert params["status"] == [{"operator": "is", "value": "blocked"}]
        assert "keyspaceId" not in params
