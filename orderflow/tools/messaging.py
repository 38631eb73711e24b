import logging
from typing import Any, Dict, List, Optional
import httpx

from orderflow.errors import TransientIOError

logger = logging.getLogger(__name__)

class MessagingGateway:
    """
    Outbound side of the messaging channel (WhatsApp Cloud API message format).
    The httpx client is owned by the caller so connections are pooled app-wide.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: Optional[str] = None,
                 timeout: float = 5.0, language: str = "es_AR"):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.language = language

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/messages"
        try:
            response = await self.client.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise TransientIOError(f"Gateway timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise TransientIOError(
                f"Gateway returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientIOError(f"Gateway request failed: {e}") from e

    async def send_text(self, phone: str, body: str) -> Dict[str, Any]:
        logger.info(f"Sending text to {phone} ({len(body)} chars)")
        return await self._post({
            "messaging_product": "whatsapp",
            "to": phone.lstrip("+"),
            "type": "text",
            "text": {"body": body},
        })

    async def send_template(self, phone: str, name: str, variables: List[str]) -> Dict[str, Any]:
        logger.info(f"Sending template '{name}' to {phone}")
        return await self._post({
            "messaging_product": "whatsapp",
            "to": phone.lstrip("+"),
            "type": "template",
            "template": {
                "name": name,
                "language": {"code": self.language},
                "components": [{
                    "type": "body",
                    "parameters": [{"type": "text", "text": str(v)} for v in variables],
                }],
            },
        })
