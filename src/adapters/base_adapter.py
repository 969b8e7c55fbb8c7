# src/adapters/base_adapter.py

"""Abstract base class for all retailer API adapters."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from enum import StrEnum
from typing import Any, TypeVar

from bs4 import BeautifulSoup
from curl_cffi.requests import AsyncSession
from curl_cffi.requests.exceptions import RequestException, Timeout

from src.adapters import demo_catalog
from src.config.settings import Settings
from src.models.errors import ErrorKind, RetailerError
from src.models.product import ProductDetail, ProductSummary, RetailerId

T = TypeVar("T")

# Raised by _parse_* helpers when an upstream payload has the wrong shape.
_SHAPE_ERRORS = (KeyError, TypeError, AttributeError, ValueError, IndexError)


class OperatingMode(StrEnum):
    """Whether an adapter talks to its upstream or serves demo data."""

    LIVE = "live"
    DEGRADED = "degraded"


def error_for_status(status: int, retailer: str = "") -> RetailerError:
    """Map a non-2xx HTTP status onto the shared error taxonomy."""
    if status in (401, 403):
        return RetailerError(
            ErrorKind.AUTHENTICATION_FAILED,
            retailer=retailer,
            status_code=status,
        )
    if status == 404:
        return RetailerError(ErrorKind.NOT_FOUND, retailer=retailer)
    if status == 429:
        return RetailerError(ErrorKind.RATE_LIMIT_EXCEEDED, retailer=retailer)
    if status >= 500:
        return RetailerError(
            ErrorKind.SERVER_ERROR, retailer=retailer, status_code=status
        )
    return RetailerError(
        ErrorKind.CUSTOM, retailer=retailer, message=f"HTTP {status}"
    )


class RetailerAdapter(ABC):
    """Abstract base class for all retailer API adapters.

    Subclasses own authentication, request shaping and the
    normalisation of their upstream JSON.  Everything they raise is a
    :class:`RetailerError`; transport and decoding failures are
    translated here.
    """

    retailer_id: RetailerId
    credential_setting: str = ""
    native_search_unreliable: bool = False
    supports_demo_mode: bool = False

    def __init__(self, api_key: str | None = None) -> None:
        self.logger = logging.getLogger(
            f"aggregator.{self.retailer_id.value}"
        )
        self.settings = Settings()
        self.api_key: str = (
            api_key
            if api_key is not None
            else getattr(self.settings, self.credential_setting, "")
        )
        self.mode = OperatingMode.LIVE
        self._session: AsyncSession | None = None
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

        if not self.api_key:
            if self.supports_demo_mode:
                self._degrade("no API key configured")
            else:
                self.logger.warning(
                    "[%s] %s is not set; calls will fail authentication",
                    self.retailer_id.value,
                    self.credential_setting,
                )

    @property
    def session(self) -> AsyncSession:
        """Browser-impersonating async session, created on first use."""
        if self._session is None:
            self._session = AsyncSession(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ── Operating mode ───────────────────────────────────

    def _degrade(self, reason: str) -> None:
        """Switch to demo data for the rest of this adapter's life."""
        if self.mode is OperatingMode.DEGRADED:
            return
        self.mode = OperatingMode.DEGRADED
        self.logger.warning(
            "[%s] Switching to degraded mode (demo data): %s",
            self.retailer_id.value,
            reason,
        )

    def _require_credentials(self) -> None:
        if not self.api_key:
            raise RetailerError(
                ErrorKind.AUTHENTICATION_FAILED,
                retailer=self.retailer_id.value,
                message=f"{self.credential_setting} is not set",
            )

    # ── HTTP plumbing ────────────────────────────────────

    async def _fetch_json(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET *url* and decode JSON, retrying transient failures.

        Network errors and 5xx responses are retried up to
        ``MAX_RETRIES`` times with linear back-off; every other
        failure is raised immediately.
        """
        self._require_credentials()
        merged = {**self.settings.DEFAULT_HEADERS, **(headers or {})}
        retailer = self.retailer_id.value
        last_error: RetailerError | None = None

        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = await self.session.get(
                    url,
                    headers=merged,
                    params=params,
                    timeout=self._request_timeout,
                )
            except Timeout as exc:
                raise RetailerError(
                    ErrorKind.TIMEOUT, retailer=retailer, message=str(exc)
                ) from exc
            except RequestException as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    retailer,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                last_error = RetailerError(
                    ErrorKind.NETWORK_UNAVAILABLE,
                    retailer=retailer,
                    message=str(exc),
                )
            else:
                status = resp.status_code
                if 200 <= status < 300:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise RetailerError(
                            ErrorKind.DECODING_FAILED,
                            retailer=retailer,
                            message=str(exc),
                        ) from exc
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    retailer,
                    status,
                    attempt + 1,
                )
                error = error_for_status(status, retailer)
                if status < 500:
                    raise error
                last_error = error

            if attempt + 1 < self.settings.MAX_RETRIES:
                await asyncio.sleep(Settings.RETRY_DELAY * (attempt + 1))

        if last_error is None:
            raise RetailerError(
                ErrorKind.NETWORK_UNAVAILABLE,
                retailer=retailer,
                message="no request attempted",
            )
        raise last_error

    # ── Parsing helpers ──────────────────────────────────

    @staticmethod
    def extract_price(value: Any) -> float | None:
        """Extract a numeric price from a number or a string like '$1,299.00'."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        cleaned = str(value).replace(",", "")
        numbers = re.findall(r"\d+(?:\.\d+)?", cleaned)
        return float(numbers[0]) if numbers else None

    @staticmethod
    def clean_text(value: Any) -> str | None:
        """Flatten HTML fragments in upstream descriptions to plain text."""
        if not value:
            return None
        text = str(value)
        if "<" in text:
            text = BeautifulSoup(text, "lxml").get_text(" ")
        text = " ".join(text.split())
        return text or None

    @staticmethod
    def to_int(value: Any) -> int | None:
        """Parse review counts like '1,234' or 1234.0."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(float(str(value).replace(",", "")))
        except ValueError:
            return None

    # ── Public contract ──────────────────────────────────

    async def search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        """Search the retailer and return normalised summaries."""
        if self.mode is OperatingMode.DEGRADED:
            return demo_catalog.demo_search(
                self.retailer_id, query, max_results
            )
        try:
            return await self._decoded(self._search(query, max_results))
        except RetailerError as exc:
            if not self._falls_back(exc):
                raise
        return demo_catalog.demo_search(self.retailer_id, query, max_results)

    async def get_details(self, source_id: str) -> ProductDetail:
        """Fetch the full record for one product."""
        if self.mode is OperatingMode.DEGRADED:
            return demo_catalog.demo_detail(self.retailer_id, source_id)
        try:
            return await self._decoded(self._get_details(source_id))
        except RetailerError as exc:
            if not self._falls_back(exc):
                raise
        return demo_catalog.demo_detail(self.retailer_id, source_id)

    async def get_related(self, source_id: str) -> list[ProductSummary]:
        """Products the retailer considers related to *source_id*."""
        if self.mode is OperatingMode.DEGRADED:
            return demo_catalog.demo_related(self.retailer_id, source_id)
        try:
            return await self._decoded(self._get_related(source_id))
        except RetailerError as exc:
            if not self._falls_back(exc):
                raise
        return demo_catalog.demo_related(self.retailer_id, source_id)

    async def _decoded(self, call: Awaitable[T]) -> T:
        """Await *call*, mapping shape mismatches to decoding errors."""
        try:
            return await call
        except _SHAPE_ERRORS as exc:
            self.logger.warning(
                "[%s] Unexpected payload shape: %r",
                self.retailer_id.value,
                exc,
            )
            raise RetailerError(
                ErrorKind.DECODING_FAILED,
                retailer=self.retailer_id.value,
                message=f"unexpected payload shape: {exc!r}",
            ) from exc

    def _falls_back(self, exc: RetailerError) -> bool:
        """Degrade on auth failure when this adapter supports demo mode."""
        if (
            exc.kind is ErrorKind.AUTHENTICATION_FAILED
            and self.supports_demo_mode
        ):
            self._degrade(f"upstream rejected credentials ({exc.describe()})")
            return True
        return False

    @abstractmethod
    async def _search(
        self, query: str, max_results: int
    ) -> list[ProductSummary]:
        ...

    @abstractmethod
    async def _get_details(self, source_id: str) -> ProductDetail:
        ...

    @abstractmethod
    async def _get_related(self, source_id: str) -> list[ProductSummary]:
        ...
