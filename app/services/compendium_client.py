"""HTTP client for the Hyrule compendium API, the source data of every report."""

import logging
from typing import Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from app.core.errors import FetchError
from app.models.report import ReportType
from app.services.report_schema import CompendiumEntry

DEFAULT_BASE_URL = "https://botw-compendium.herokuapp.com/api/v3/compendium"


def _attack(entry: CompendiumEntry) -> float:
    return float((entry.properties or {}).get("attack") or 0)


def _defense(entry: CompendiumEntry) -> float:
    return float((entry.properties or {}).get("defense") or 0)


# report type -> (compendium category, entry filter)
CATEGORIES: Dict[ReportType, Tuple[str, Optional[Callable[[CompendiumEntry], bool]]]] = {
    ReportType.MONSTERS: ("monsters", None),
    ReportType.WEAPONS: ("equipment", lambda e: _attack(e) > 0),
    ReportType.ARMOR: ("equipment", lambda e: _defense(e) > 0 and _attack(e) == 0),
}


class CompendiumClient:
    """Fetches report records; never returns an empty list as success."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout)
        self._logger = logger or logging.getLogger(__name__)

    def close(self) -> None:
        self._client.close()

    def fetch(self, report_type: ReportType) -> List[CompendiumEntry]:
        try:
            category, keep = CATEGORIES[ReportType(report_type)]
        except (KeyError, ValueError) as e:
            raise FetchError(f"unsupported report type: {report_type}") from e

        url = f"{self.base_url}/category/{category}"
        try:
            r = self._client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"failed to fetch {category}: {e}") from e
        if r.status_code != 200:
            raise FetchError(f"failed to fetch {category}: upstream returned {r.status_code}")

        try:
            payload = r.json()
            raw = payload.get("data") if isinstance(payload, dict) else None
            entries = [CompendiumEntry.model_validate(item) for item in raw or []]
            # Non-numeric attack/defense values fail here as well
            if keep is not None:
                entries = [e for e in entries if keep(e)]
        except (TypeError, ValueError, ValidationError) as e:
            raise FetchError(f"failed to decode {category} response: {e}") from e

        if not entries:
            raise FetchError(f"no {ReportType(report_type).value} found")

        self._logger.debug(
            "compendium.fetched",
            extra={"category": category, "report_type": ReportType(report_type).value, "count": len(entries)},
        )
        return entries
