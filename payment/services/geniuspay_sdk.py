import hashlib
import hmac
from typing import Any, Dict, Optional

import requests


DEFAULT_BASE_URL = "https://api.geniuspay.com/v1"


class GeniusPaySDK:
    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: int = 30) -> None:
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @staticmethod
    def _parse(response: requests.Response) -> Dict[str, Any]:
        if not response.ok:
            try:
                raise Exception(response.json())
            except ValueError as exc:
                raise Exception(response.text or f"GeniusPay returned HTTP {response.status_code}") from exc
        data = response.json()
        if not isinstance(data, dict):
            raise Exception("Unexpected GeniusPay response")
        return data

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            f"{self.base_url}/{endpoint}", json=payload, headers=self._headers(), timeout=self.timeout
        )
        return self._parse(response)

    def _get(self, endpoint: str) -> Dict[str, Any]:
        response = requests.get(f"{self.base_url}/{endpoint}", headers=self._headers(), timeout=self.timeout)
        return self._parse(response)

    def create_payin(
        self,
        amount: float,
        phone_number: str,
        reference: str,
        description: str,
        return_url: str = "",
        currency: str = "XOF",
        payment_method: str = "wave",
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "payment_method": payment_method,
            "phone_number": phone_number,
            "reference": reference,
            "description": description,
        }
        if return_url:
            payload["return_url"] = return_url
        return self._post("payin", payload)

    def get_payin(self, transaction_id: str) -> Dict[str, Any]:
        return self._get(f"payin/{transaction_id}")

    @staticmethod
    def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
        if not secret or not signature:
            return False
        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())
