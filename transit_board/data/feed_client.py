"""511.org StopMonitoring (SIRI) API client."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import requests

from transit_board.data.models import RawArrival

STOP_MONITORING_URL = "https://api.511.org/transit/StopMonitoring"
BOM = "\ufeff"


class FeedClientError(Exception):
    """Raised when a StopMonitoring request cannot produce records."""


class NetworkError(FeedClientError):
    """Transport-level failure talking to the feed."""


class UpstreamStatusError(FeedClientError):
    """The feed answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(FeedClientError):
    """The response body is not a StopMonitoring envelope."""


class FeedClient:
    """Thin wrapper around the StopMonitoring endpoint using requests."""

    def __init__(
        self,
        api_key: str,
        base_url: str = STOP_MONITORING_URL,
        timeout_seconds: float = 10,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds

    def fetch(self, agency: str, stop_ids: Iterable[str]) -> list[RawArrival]:
        """Fetch every monitored visit for an agency, keeping only the given stops."""
        wanted = set(stop_ids)
        payload = self._get(agency)
        return [arrival for arrival in parse_stop_monitoring(payload) if arrival.stop_id in wanted]

    def _get(self, agency: str) -> dict[str, Any]:
        params = {"api_key": self._api_key, "agency": agency, "format": "json"}
        try:
            response = requests.get(self._base_url, params=params, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise NetworkError(f"StopMonitoring request for {agency} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body_text = response.text.strip()
            detail = f"Status {response.status_code}"
            if body_text:
                detail = f"{detail}, Body: {body_text[:200]}"
            raise UpstreamStatusError(
                f"StopMonitoring request for {agency} failed: {detail}",
                response.status_code,
            )

        text = strip_bom(response.content.decode("utf-8-sig", errors="replace"))
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise ParseError(f"StopMonitoring response for {agency} was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ParseError(f"StopMonitoring response for {agency} was not a JSON object")
        return payload


def strip_bom(text: str) -> str:
    """Drop any leading byte-order marks left after decoding."""
    return text.lstrip(BOM)


def _optional_str(mapping: dict[str, Any], key: str) -> str | None:
    value = mapping.get(key)
    return value if isinstance(value, str) else None


def _deliveries(payload: dict[str, Any]) -> list[dict[str, Any]]:
    if "Siri" in payload and isinstance(payload["Siri"], dict):
        payload = payload["Siri"]

    service_delivery = payload.get("ServiceDelivery")
    if not isinstance(service_delivery, dict):
        raise ParseError("Missing ServiceDelivery in StopMonitoring response")

    deliveries = service_delivery.get("StopMonitoringDelivery")
    if isinstance(deliveries, dict):
        return [deliveries]
    if isinstance(deliveries, list) and all(isinstance(d, dict) for d in deliveries):
        return deliveries
    raise ParseError("Missing StopMonitoringDelivery in StopMonitoring response")


def parse_stop_monitoring(payload: dict[str, Any]) -> list[RawArrival]:
    """Extract one RawArrival per MonitoredStopVisit, in feed order."""
    arrivals: list[RawArrival] = []
    for delivery in _deliveries(payload):
        visits = delivery.get("MonitoredStopVisit") or []
        if isinstance(visits, dict):
            visits = [visits]
        if not isinstance(visits, list):
            raise ParseError("MonitoredStopVisit must be a list")

        for index, visit in enumerate(visits):
            journey = visit.get("MonitoredVehicleJourney") if isinstance(visit, dict) else None
            if not isinstance(journey, dict):
                raise ParseError(f"MonitoredStopVisit[{index}] has no MonitoredVehicleJourney")
            call = journey.get("MonitoredCall")
            if not isinstance(call, dict):
                raise ParseError(f"MonitoredStopVisit[{index}] has no MonitoredCall")
            stop_id = call.get("StopPointRef")
            if not isinstance(stop_id, str):
                raise ParseError(f"MonitoredStopVisit[{index}] has no StopPointRef")

            arrivals.append(
                RawArrival(
                    stop_id=stop_id,
                    line_id=_optional_str(journey, "LineRef"),
                    direction_id=_optional_str(journey, "DirectionRef"),
                    destination_name=_optional_str(journey, "DestinationName"),
                    expected_arrival_time=_optional_str(call, "ExpectedArrivalTime"),
                )
            )
    return arrivals


__all__ = [
    "FeedClient",
    "FeedClientError",
    "NetworkError",
    "ParseError",
    "UpstreamStatusError",
    "parse_stop_monitoring",
    "strip_bom",
]
