# telephony.py
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import BackendUnavailable

logger = logging.getLogger(__name__)


class RetellClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str = "https://api.retellai.com"):
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.api_key:
            raise BackendUnavailable("Retell API key not configured")
        try:
            resp = await self.http.request(method, f"{self.base_url}/{path}", headers=self.headers, **kwargs)
            resp.raise_for_status()
            return resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(f"Retell {method} {path} -> {e.response.status_code}: {e.response.text[:200]}")
            raise BackendUnavailable(f"Retell returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Retell {method} {path} failed: {e!r}")
            raise BackendUnavailable(f"Retell unreachable: {e!r}") from e
        except ValueError as e:
            logger.error(f"Retell {method} {path} returned non-JSON: {resp.text[:200]!r}")
            raise BackendUnavailable("Retell returned an unreadable response") from e

    async def create_phone_call(self, *, to_number: str, from_number: str, agent_id: Optional[str] = None,
                                dynamic_variables: Optional[Dict[str, Any]] = None,
                                metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to_number": to_number,
            "from_number": from_number,
            "metadata": metadata or {},
            # dynamic variables must be strings; drop unknowns
            "retell_llm_dynamic_variables": {
                k: str(v) for k, v in (dynamic_variables or {}).items() if v is not None
            },
        }
        if agent_id:
            payload["override_agent_id"] = agent_id
        call = await self._request("POST", "v2/create-phone-call", json=payload)
        logger.info(f"Retell call {call.get('call_id')} placed to {to_number}")
        return call

    async def get_agent(self, agent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"get-agent/{agent_id}")

    async def list_agents(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "list-agents")
