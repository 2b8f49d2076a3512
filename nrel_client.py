#!/usr/bin/env python3
"""
NREL Solar Resource API client (peak sun hours by coordinates).

Docs: https://developer.nrel.gov/docs/solar/solar-resource-v1/
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

from exceptions import UpstreamError

logger = logging.getLogger(__name__)


class NRELClient:
    BASE_URL = "https://developer.nrel.gov/api/solar/solar_resource/v1.json"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout

    def available(self) -> bool:
        return bool(self.api_key)

    def sun_hours(self, lat: float, lon: float) -> float:
        """
        Returns the annual average GHI (kWh/m²/day), which equals peak sun hours.

        Any transport, HTTP or payload problem raises UpstreamError.
        """
        if not self.available():
            raise UpstreamError("NREL_API_KEY is not configured")

        query = urllib.parse.urlencode({"api_key": self.api_key, "lat": lat, "lon": lon})
        url = f"{self.BASE_URL}?{query}"
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as response:
                data = json.loads(response.read().decode('utf-8'))
        except urllib.error.HTTPError as e:
            raise UpstreamError(f"NREL API returned HTTP {e.code}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise UpstreamError(f"NREL API unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamError("NREL API returned invalid JSON") from e

        if not isinstance(data, dict):
            raise UpstreamError("NREL API returned an unexpected payload")
        errors = data.get("errors") or data.get("error")
        if errors:
            raise UpstreamError(f"NREL API error: {errors}")

        outputs = data.get("outputs")
        ghi = outputs.get("avg_ghi") if isinstance(outputs, dict) else None
        avg_ghi = ghi.get("annual") if isinstance(ghi, dict) else None
        if not isinstance(avg_ghi, (int, float)) or isinstance(avg_ghi, bool) or avg_ghi <= 0:
            raise UpstreamError("NREL API did not return avg_ghi")

        logger.debug("NREL avg_ghi for (%s, %s): %s", lat, lon, avg_ghi)
        return float(avg_ghi)
