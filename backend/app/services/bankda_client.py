from __future__ import annotations

from typing import Any

import httpx

from app.core.config import settings
from app.services.bankda_errors import BankdaProviderError, BankdaRateLimited


_RATE_LIMIT_CODES = {"E_LIMIT", "LIMIT", "TOO_MANY_REQUESTS", "429"}
_RATE_LIMIT_WORDS = ("조회 제한", "조회제한", "rate limit", "too many")


def _is_rate_limit_message(msg: str) -> bool:
    m = (msg or "").lower()
    return any(w in m for w in _RATE_LIMIT_WORDS)


def _provider_error(payload: dict) -> tuple[str | None, str | None]:
    req = payload.get("request") if isinstance(payload.get("request"), dict) else {}
    err = payload.get("error") or req.get("error")
    if isinstance(err, dict):
        return (str(err.get("code") or "") or None, str(err.get("message") or "") or None)
    if err:
        return (None, str(err))
    result = str(req.get("result") or "").strip().lower()
    if result and result not in ("ok", "success", "0000"):
        return (str(req.get("result")), str(req.get("message") or "") or None)
    return (None, None)


def extract_rows(payload: Any) -> list[dict]:
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if not isinstance(payload, dict):
        raise BankdaProviderError("bankda_bad_payload")
    resp = payload.get("response")
    if isinstance(resp, dict):
        rows = resp.get("bank") or []
    else:
        rows = payload.get("bank") or []
    if not isinstance(rows, list):
        raise BankdaProviderError("bankda_bad_payload")
    return [r for r in rows if isinstance(r, dict)]


class BankdaClient:
    def __init__(
        self,
        *,
        url: str | None = None,
        user_id: str | None = None,
        user_pw: str | None = None,
        account_num: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url or settings.bankda_api_url
        self.user_id = user_id if user_id is not None else settings.bankda_user_id
        self.user_pw = user_pw if user_pw is not None else settings.bankda_user_pw
        self.account_num = account_num if account_num is not None else settings.bankda_account_num
        self.timeout_s = float(timeout_s or settings.bankda_timeout_seconds)
        self._transport = transport

    def fetch_rows(self, date_from: str, date_to: str) -> list[dict]:
        """Fetch raw statement rows for an inclusive YYYYMMDD window.

        Raises BankdaRateLimited when the provider refuses the query for quota
        reasons and BankdaProviderError for everything else (network, timeout,
        HTTP status, malformed payload).
        """
        form = {
            "user_id": self.user_id,
            "user_pw": self.user_pw,
            "accountnum": self.account_num,
            "bkdate_from": date_from,
            "bkdate_to": date_to,
            "datatype": "json",
            "charset": "utf8",
        }

        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                r = client.post(self.url, data=form)
        except httpx.TimeoutException as e:
            raise BankdaProviderError("bankda_timeout") from e
        except httpx.HTTPError as e:
            raise BankdaProviderError(f"bankda_network_error: {e}") from e

        if r.status_code == 429:
            raise BankdaRateLimited("bankda_rate_limited")
        if r.status_code != 200:
            raise BankdaProviderError(f"bankda_http_{r.status_code}")

        try:
            payload = r.json()
        except ValueError as e:
            raise BankdaProviderError("bankda_bad_payload") from e

        if isinstance(payload, dict):
            code, msg = _provider_error(payload)
            if code is not None or msg is not None:
                if (code or "").upper() in _RATE_LIMIT_CODES or _is_rate_limit_message(msg or ""):
                    raise BankdaRateLimited(msg or "bankda_rate_limited")
                raise BankdaProviderError(msg or f"bankda_error_{code}")

        return extract_rows(payload)
