"""
Configuration and thresholds for fetch module.
"""

from dataclasses import dataclass, field


# User agents for rotation
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
]

# Non-document file extensions (links to these are never content)
SKIP_EXTENSIONS = (
    '.pdf', '.jpg', '.jpeg', '.png', '.gif', '.svg', '.webp',
    '.css', '.js', '.json', '.xml', '.zip',
)

# Default request headers
DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate',
    'DNT': '1',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
}

# Extra headers set on browser pages
BROWSER_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
}

BROWSER_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
]


@dataclass
class FetchConfig:
    """Configuration for fetch operations."""

    # Direct request
    simple_timeout: float = 15.0

    # Browser fallback
    browser_fallback: bool = True
    browser_timeout_ms: int = 30000
    headless: bool = True
    settle_ms: int = 500  # let late JS finish before reading the DOM
    viewport: dict = field(default_factory=lambda: {'width': 1920, 'height': 1080})
    locale: str = 'en-US'

    # User agent
    user_agent: str | None = None  # if None, rotates from USER_AGENTS
    rotate_user_agent: bool = True


@dataclass
class FetchResult:
    """Result of a fetch operation."""

    url: str
    content: str | None = None
    status: int | None = None
    final_url: str | None = None
    used_browser: bool = False

    # Raw body of a direct response (kept for binary payloads like .gz)
    raw: bytes | None = None
    content_type: str = ''

    # Error tracking
    error: str | None = None
    block_signals: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when there is content worth parsing."""
        if not self.content and not self.raw:
            return False
        return self.status is None or 200 <= self.status < 400

    @property
    def timed_out(self) -> bool:
        return bool(self.error and 'timeout' in self.error.lower())
