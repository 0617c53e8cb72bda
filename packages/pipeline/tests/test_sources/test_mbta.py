"""
tests/test_sources/test_mbta.py — MBTA v3 JSON:API and GTFS enhanced clients.
"""

from __future__ import annotations

import httpx
import pytest

from citypulse_pipeline.sources.base import SourceError
from citypulse_pipeline.sources.gtfs_enhanced import GTFSEnhancedSource
from citypulse_pipeline.sources.mbta import MBTASource, chunked, parse_jsonapi_error

MBTA = "https://mbta.example.test"


class TestChunked:
    def test_chunks_of_forty(self):
        chunks = list(chunked([str(i) for i in range(85)]))
        assert [len(c) for c in chunks] == [40, 40, 5]

    def test_empty(self):
        assert list(chunked([])) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestParseJsonapiError:
    def test_detail_and_parameter(self):
        body = '{"errors": [{"detail": "Unsupported filter", "source": {"parameter": "filter[route_type]"}}]}'
        assert parse_jsonapi_error(body) == "Unsupported filter (param: filter[route_type])"

    def test_non_json_body_is_trimmed(self):
        assert parse_jsonapi_error("<html>\n  Bad gateway\n</html>") == "<html> Bad gateway </html>"

    def test_empty(self):
        assert parse_jsonapi_error("") == ""


class TestMBTASource:
    @pytest.mark.asyncio
    async def test_api_key_sent_when_configured(self, mock_http):
        route = mock_http.get(f"{MBTA}/vehicles").mock(
            return_value=httpx.Response(200, json={"data": []})
        )
        source = MBTASource(base_url=MBTA, api_key="secret")

        await source.fetch_vehicles(dict(source.vehicle_queries()[0][1]))

        params = route.calls[0].request.url.params
        assert params["api_key"] == "secret"
        assert params["filter[route_type]"] == "0,1,2,3,4"
        assert params["include"] == "route"
        assert source.api_key_used

    @pytest.mark.asyncio
    async def test_no_api_key_param_when_anonymous(self, mock_http):
        route = mock_http.get(f"{MBTA}/alerts").mock(
            return_value=httpx.Response(200, json={"data": []})
        )
        source = MBTASource(base_url=MBTA, api_key="")

        await source.fetch_alerts(dict(source.alert_queries()[1][1]))

        params = route.calls[0].request.url.params
        assert "api_key" not in params
        assert "filter[route_type]" not in params
        assert params["sort"] == "-updated_at"

    @pytest.mark.asyncio
    async def test_jsonapi_error_surfaces_detail(self, mock_http):
        mock_http.get(f"{MBTA}/vehicles").mock(
            return_value=httpx.Response(
                400,
                json={"errors": [{"detail": "Bad filter", "source": {"parameter": "filter[route_type]"}}]},
            )
        )

        with pytest.raises(SourceError) as excinfo:
            await MBTASource(base_url=MBTA, api_key="").fetch_vehicles({})
        assert excinfo.value.status_code == 400
        assert "Bad filter (param: filter[route_type])" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_routes_and_shapes_filters(self, mock_http):
        routes = mock_http.get(f"{MBTA}/routes").mock(return_value=httpx.Response(200, json={"data": []}))
        shapes = mock_http.get(f"{MBTA}/shapes").mock(return_value=httpx.Response(200, json={"data": []}))
        source = MBTASource(base_url=MBTA, api_key="")

        await source.fetch_routes(["Red", "1"])
        await source.fetch_shapes(["Red", "1"])

        assert routes.calls[0].request.url.params["filter[id]"] == "Red,1"
        assert routes.calls[0].request.url.params["page[limit]"] == "2"
        assert shapes.calls[0].request.url.params["filter[route]"] == "Red,1"

    @pytest.mark.asyncio
    async def test_non_object_json_rejected(self, mock_http):
        mock_http.get(f"{MBTA}/vehicles").mock(return_value=httpx.Response(200, json=[1, 2]))

        with pytest.raises(SourceError):
            await MBTASource(base_url=MBTA, api_key="").fetch_vehicles({})


class TestGTFSEnhancedSource:
    @pytest.mark.asyncio
    async def test_fetches_configured_urls(self, mock_http):
        mock_http.get("https://cdn.example.test/vehicles.json").mock(
            return_value=httpx.Response(200, json={"entity": [{"id": "v1"}]})
        )
        source = GTFSEnhancedSource(
            vehicles_url="https://cdn.example.test/vehicles.json",
            alerts_url="https://cdn.example.test/alerts.json",
        )

        document = await source.fetch_vehicle_positions()

        assert document["entity"][0]["id"] == "v1"
