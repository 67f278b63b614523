"""
HTTP client for the catalog's agent API.

Every call is a JSON POST to <catalog_url>/functions/v1/agent-api/<action>.
Failures of any kind surface as CatalogError so callers can decide whether
a file must be retried.
"""
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

import requests

from .. import config
from ..config import Settings
from ..exceptions import CatalogError, CatalogNotFoundError
from ..models import ScannedFile


class CatalogClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = f"{settings.catalog_url}/functions/v1/agent-api"
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "apikey": settings.catalog_anon_key,
            "Authorization": f"Bearer {settings.catalog_anon_key}",
            "x-agent-key": settings.agent_key,
        })

    def _post(self, action: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{action}"
        try:
            res = self.session.post(url, json=body, timeout=config.HTTP_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise CatalogError(f"API {action} failed: {e}") from e

        try:
            data = res.json()
        except ValueError:
            data = {"raw": res.text[:200]}

        if res.status_code == 404:
            raise CatalogNotFoundError(f"API {action} failed (404): {data}")
        if not res.ok:
            raise CatalogError(f"API {action} failed ({res.status_code}): {data}")
        return data

    # --- Agent lifecycle ---

    def register_agent(self) -> Dict[str, Any]:
        result = self._post("register", {
            "agent_name": self.settings.agent_name,
            "agent_key": self.settings.agent_key,
            "metadata": {
                "hostname": self.settings.agent_name,
                "scan_roots": [str(r) for r in self.settings.scan_roots],
                "started_at": datetime.now(UTC).isoformat(),
            },
        })
        agent = result.get("agent") or {}
        logging.info(f"Registered as agent {agent.get('id')}")
        return agent

    def heartbeat(self) -> Dict[str, Any]:
        return self._post("heartbeat", {"agent_key": self.settings.agent_key, "transfer_stats": None})

    def check_scan_request(self) -> bool:
        result = self._post("check-scan-request", {"agent_key": self.settings.agent_key})
        return bool(result.get("scan_requested"))

    # --- Assets ---

    def ingest_asset(self, file: ScannedFile) -> str:
        """Creates the asset record. Returns the catalog's asset id."""
        result = self._post("ingest", {
            "filename": file.filename,
            "file_path": file.canonical_path,
            "file_type": file.file_type,
            "file_size": file.size_bytes,
            "width": 0,
            "height": 0,
            "artboards": 1,
            "modified_at": file.modified_at.isoformat(),
            "file_created_at": file.created_at.isoformat(),
        })
        asset_id = (result.get("asset") or {}).get("id")
        if not asset_id:
            raise CatalogError(f"API ingest returned no asset id for {file.canonical_path}")
        return str(asset_id)

    def update_asset(self, asset_id: str, **updates) -> Dict[str, Any]:
        return self._post("update-asset", {"asset_id": asset_id, **updates})

    def move_asset(self, old_path: str, new_path: str) -> Dict[str, Any]:
        return self._post("move-asset", {"old_path": old_path, "new_path": new_path})

    def queue_render(self, asset_id: str, reason: str) -> Dict[str, Any]:
        return self._post("queue-render", {"asset_id": asset_id, "reason": reason})

    # --- Progress ---

    def report_scan_progress(self, status: str, scanned: int, new: int, total_estimate: int = 0):
        return self._post("scan-progress", {
            "agent_key": self.settings.agent_key,
            "scan_status": status,
            "scanned_count": scanned,
            "new_count": new,
            "total_estimate": total_estimate,
        })

    def report_ingestion_progress(self, total: int, done: int):
        return self._post("ingestion-progress", {
            "agent_key": self.settings.agent_key,
            "ingestion_total": total,
            "ingestion_done": done,
        })

    # --- Maintenance queries ---

    def fetch_assets(self, select: str, **filters: str) -> List[Dict[str, Any]]:
        """
        Pages through the REST assets endpoint. `filters` are PostgREST
        query params, e.g. file_type="eq.ai".
        """
        url = f"{self.settings.catalog_url}/rest/v1/assets"
        page_size = config.CATALOG_PAGE_SIZE
        offset = 0
        assets: List[Dict[str, Any]] = []

        while True:
            params = {"select": select, **filters, "limit": str(page_size), "offset": str(offset)}
            try:
                res = self.session.get(url, params=params, timeout=config.HTTP_TIMEOUT_SECONDS)
            except requests.RequestException as e:
                raise CatalogError(f"Failed to fetch assets: {e}") from e
            if not res.ok:
                raise CatalogError(f"Failed to fetch assets: {res.status_code}")

            page = res.json()
            assets.extend(page)
            if len(page) < page_size:
                break
            offset += page_size

        return assets

    def fetch_assets_missing_thumbnails(self) -> List[Dict[str, Any]]:
        """Assets with no thumbnail, or an inline data: URL left by an old agent."""
        return self.fetch_assets("id,file_path,file_type",
                                 **{"or": "(thumbnail_url.is.null,thumbnail_url.like.data:*)"})

    def fetch_ai_assets_without_thumbnails(self) -> List[Dict[str, Any]]:
        return self.fetch_assets("id,filename", file_type="eq.ai", thumbnail_url="is.null")

    def fetch_asset_paths(self) -> List[Dict[str, Any]]:
        return self.fetch_assets("id,file_path")
