# src/auditor/services/acquisition_service.py
import asyncio
import logging
from typing import Optional, Protocol

import aiohttp

from auditor.dom.builder import DOMBuilder
from auditor.dom.models import DocumentModel
from auditor.errors import AcquisitionTimeoutError, FetchError, ParseError
from auditor.managers.config_manager import config_manager
from auditor.model import CancellationToken

logger = logging.getLogger(__name__)

MARKUP_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain", "application/xml", "text/xml")


class DocumentAcquirer(Protocol):
    """Produces a Document Model from a URL or an uploaded file."""

    async def acquire(self, url: str, file: Optional[bytes], token: CancellationToken) -> DocumentModel:
        ...


def decode_markup(data: bytes, encoding: Optional[str] = None) -> str:
    """Decodes raw markup, stripping a UTF-8 byte order mark. Undecodable bytes raise ParseError."""
    codec = encoding or "utf-8"
    if codec.lower().replace("_", "-") in ("utf-8", "utf8"):
        codec = "utf-8-sig"
    try:
        return data.decode(codec)
    except (UnicodeDecodeError, LookupError) as e:
        raise ParseError(f"Document could not be decoded as {codec}: {e}") from e


class DocumentAcquisitionService:
    """
    Default acquisition collaborator.

    Uploaded bytes are parsed directly; otherwise the URL is fetched over HTTP with aiohttp.
    Each fetch opens and closes its own session, so one instance can serve concurrent runs.
    Used as an async context manager, a single session is reused until exit.
    """

    def __init__(
            self,
            time_out: Optional[float] = None,
            max_redirects: Optional[int] = None,
            user_agent: Optional[str] = None,
            builder: Optional[DOMBuilder] = None
    ):
        self.timeout = float(time_out if time_out is not None else config_manager.get_nested("acquisition.time_out", 30))
        self.max_redirects = int(
            max_redirects if max_redirects is not None else config_manager.get_nested("acquisition.max_redirects", 10)
        )
        self.user_agent = user_agent or config_manager.get_nested("acquisition.user_agent", "a11y-auditor/1.0")
        self.builder = builder or DOMBuilder()
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        if not self.session or self.session.closed:
            self.session = self._new_session()
            logger.debug("DocumentAcquisitionService: Session initialized.")

    def _new_session(self) -> aiohttp.ClientSession:
        timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
        default_headers = {
            'Accept-Encoding': 'gzip, deflate',
            'User-Agent': self.user_agent
        }
        return aiohttp.ClientSession(timeout=timeout_obj, headers=default_headers)

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
            logger.debug("DocumentAcquisitionService: Session closed.")
        self.session = None

    async def acquire(self, url: str, file: Optional[bytes], token: CancellationToken) -> DocumentModel:
        token.raise_if_cancelled("acquisition")

        if file:
            logger.info("Parsing uploaded document for %s (%d bytes)", url or "<upload>", len(file))
            html = decode_markup(file)
        else:
            html = await self.fetch(url)

        token.raise_if_cancelled("acquisition")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.builder.parse_doc, url or "upload", html)

    async def fetch(self, url: str) -> str:
        """
        GETs the URL and returns the decoded body.

        Raises:
            FetchError: Client errors, too many redirects, or HTTP status >= 400.
            AcquisitionTimeoutError: The request exceeded the configured timeout.
            ParseError: The response is not markup or cannot be decoded.
        """
        # Outside `async with` each call owns a private session
        shared = self.session is not None and not self.session.closed
        session = self.session if shared else self._new_session()

        try:
            async with session.get(url, allow_redirects=True, max_redirects=self.max_redirects) as response:
                status = response.status
                if status >= 400:
                    raise FetchError(f"HTTP {status} while fetching {url}", status=status)

                content_type = response.headers.get("Content-Type", "").lower()
                if content_type and not content_type.startswith(MARKUP_CONTENT_TYPES):
                    raise ParseError(f"Unsupported content type for {url}: {content_type}")

                body = await response.read()
                logger.debug("Fetched %s (status %s, %d bytes)", url, status, len(body))
                return decode_markup(body, response.charset)

        except asyncio.TimeoutError as e:
            raise AcquisitionTimeoutError(f"Timed out after {self.timeout:g}s fetching {url}") from e
        except aiohttp.TooManyRedirects as e:
            raise FetchError(f"Too many redirects (>{self.max_redirects}) fetching {url}") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Could not fetch {url}: {e}") from e
        finally:
            if not shared:
                await session.close()
