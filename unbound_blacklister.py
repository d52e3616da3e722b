#!/usr/bin/env python3
"""
Unbound Blacklister v1.0

Downloads a hosts-file blocklist and prints it as Unbound local-data
directives that null-route every blocked domain.

Features:
- Single-shot download using requests
- Reserved-entry skipping and domain validation
- Optional local whitelist next to the program
- Sorted, de-duplicated output on stdout
"""

import os
import re
import sys
import logging
import argparse
import functools
from datetime import datetime
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

BLACKLIST_URL = "https://raw.githubusercontent.com/StevenBlack/hosts/master/hosts"
WHITELIST_FILENAME = "whitelist.conf"
USER_AGENT = "Mozilla/5.0 (Windows NT 6.1; WOW64; rv:59.0) Gecko/20100101 Firefox/59.0"

HTTP_STATUS_OK = 200
DEFAULT_TIMEOUT = 30

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
LOG_FORMAT = "# %(message)s"
DIRECTIVE_TEMPLATE = 'local-data: "{domain}. A 127.0.0.1"'

MIN_DOMAIN_LENGTH = 4

# Checked in order against the stripped line
RESERVED_PREFIXES = (
    '127.0.0.1',
    '255.255.255.255',
    '::1',
    'fe80:',
    'ff02::1',
    'ff02::2',
)

# Pre-compiled regex patterns, always used with fullmatch()
IPV4_PATTERN = re.compile(
    r'((25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)'
)
DOMAIN_PATTERN = re.compile(r'.*[a-zA-Z_0-9]\.[a-zA-Z_0-9]{2,}')
PUNYCODE_PREFIX = 'xn--'

# Only CR, LF and CRLF end a feed line
LINE_BREAK_PATTERN = re.compile(r'\r\n|\r|\n')

# ============================================================================
# EXCEPTIONS
# ============================================================================


class BlacklisterError(Exception):
    """Base class for errors raised by this module."""


class FeedError(BlacklisterError):
    """Raised when the remote feed answers with anything but HTTP 200."""


class WhitelistError(BlacklisterError):
    """Raised when an existing whitelist file cannot be read."""


class InstallDirError(BlacklisterError):
    """Raised when the program's own directory cannot be resolved."""


class MalformedLineError(BlacklisterError, ValueError):
    """Raised for a feed record with no domain field."""


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class Config:
    """Configuration for a blacklister run."""
    url: str = BLACKLIST_URL
    whitelist_file: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT
    quiet: bool = False
    verbose: bool = False

    def __post_init__(self):
        if self.timeout <= 0:
            self.timeout = DEFAULT_TIMEOUT


@dataclass
class BuildStats:
    """Counters collected while building the blacklist."""
    lines: int = 0
    skipped: int = 0
    malformed: int = 0
    invalid: int = 0
    whitelisted: int = 0
    duplicates: int = 0
    unique: int = 0


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def classify_line(line: str) -> Optional[str]:
    """Return the candidate domain of a feed line, or None to skip it.

    Empty lines, comments and reserved address entries are skipped. Any
    other line must have at least two whitespace-separated fields; the
    second one, lower-cased, is the candidate. Lines with a single field
    raise MalformedLineError.
    """
    line = line.strip()
    if not line or line.startswith('#') or line.startswith(RESERVED_PREFIXES):
        return None

    fields = line.split()
    if len(fields) < 2:
        raise MalformedLineError(f"No domain field in line: {line}")
    return fields[1].lower().strip()


@functools.lru_cache(maxsize=10000)
def is_valid_domain(domain: str) -> bool:
    """Validate a candidate domain token."""
    if len(domain) < MIN_DOMAIN_LENGTH:
        return False
    if IPV4_PATTERN.fullmatch(domain):
        return False
    if domain.startswith(PUNYCODE_PREFIX):
        return True
    return bool(DOMAIN_PATTERN.fullmatch(domain))


def render_directives(domains: Iterable[str]) -> List[str]:
    """Render domains as Unbound local-data directives."""
    return [DIRECTIVE_TEMPLATE.format(domain=domain) for domain in domains]


def get_install_dir() -> Path:
    """Return the directory this program is installed in."""
    try:
        path = Path(__file__).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise InstallDirError(str(e)) from e
    return path.parent if path.is_file() else path


# ============================================================================
# PIPELINE
# ============================================================================

def build_blacklist_with_stats(lines: Iterable[str],
                               whitelist: FrozenSet[str]) -> Tuple[List[str], BuildStats]:
    """Filter feed lines into a sorted blacklist.

    Returns:
        Tuple of (sorted domains, BuildStats)
    """
    stats = BuildStats()
    blacklist: Set[str] = set()

    for line in lines:
        stats.lines += 1
        try:
            domain = classify_line(line)
        except MalformedLineError as e:
            stats.malformed += 1
            logger.debug(f"Skipping malformed line: {e}")
            continue

        if domain is None:
            stats.skipped += 1
        elif not is_valid_domain(domain):
            stats.invalid += 1
        elif domain in whitelist:
            stats.whitelisted += 1
        elif domain in blacklist:
            stats.duplicates += 1
        else:
            blacklist.add(domain)

    stats.unique = len(blacklist)
    return sorted(blacklist), stats


def build_blacklist(lines: Iterable[str], whitelist: FrozenSet[str]) -> List[str]:
    """Return the sorted, de-duplicated blacklist for the given feed lines."""
    domains, _ = build_blacklist_with_stats(lines, whitelist)
    return domains


# ============================================================================
# WHITELIST
# ============================================================================

def load_whitelist(path: Path) -> FrozenSet[str]:
    """Load whitelisted domains, one per line, '#' starts a comment line.

    A missing or unreadable file is not an error and yields an empty set.
    Failing to read an existing file raises WhitelistError.
    """
    path = Path(path)
    if not (path.is_file() and os.access(path, os.R_OK)):
        logger.info("Optional whitelist file not found")
        return frozenset()

    domains: Set[str] = set()
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    domains.add(line.lower())
    except OSError as e:
        raise WhitelistError(str(e)) from e

    logger.info(f"Found a total of {len(domains)} whitelisted unique domains")
    return frozenset(domains)


# ============================================================================
# HTTP CLIENT
# ============================================================================

class HTTPClient:
    """HTTP client making exactly one attempt per request."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a session that never retries."""
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @staticmethod
    def charset_for(content_type: Optional[str]) -> str:
        """Pick the body charset from a Content-Type header value."""
        if content_type and 'charset=utf-8' in content_type.lower():
            return 'utf-8'
        return 'iso-8859-1'

    def fetch(self, url: str) -> str:
        """Download url and return its decoded body."""
        headers = {'User-Agent': USER_AGENT}
        response = self.session.get(url, headers=headers, timeout=self.timeout)
        try:
            if response.status_code != HTTP_STATUS_OK:
                raise FeedError(f"HTTP status code: {response.status_code}")
            charset = self.charset_for(response.headers.get('Content-Type'))
            return response.content.decode(charset, errors='replace')
        finally:
            response.close()

    def fetch_lines(self, url: str) -> List[str]:
        """Download url and split its body into lines."""
        lines = LINE_BREAK_PATTERN.split(self.fetch(url))
        if lines and not lines[-1]:
            lines.pop()
        return lines

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# ============================================================================
# BLACKLISTER
# ============================================================================

class UnboundBlacklister:
    """Runs whitelist loading, download, filtering and printing in order."""

    def __init__(self, config: Config, http_client: Optional[HTTPClient] = None):
        self.config = config
        self.http_client = http_client or HTTPClient(timeout=config.timeout)

    def whitelist_path(self) -> Path:
        """Return the whitelist location, defaulting to the install dir."""
        if self.config.whitelist_file:
            return Path(self.config.whitelist_file)
        return get_install_dir() / WHITELIST_FILENAME

    def fetch_feed(self) -> Optional[List[str]]:
        """Download the feed lines, or return None if retrieval failed."""
        url = self.config.url
        logger.info(f"Processing URL: {url}")
        try:
            return self.http_client.fetch_lines(url)
        except (requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            logger.error(f"Malformed URL - {e}")
        except (requests.RequestException, FeedError) as e:
            logger.error(f"Error while fetching blacklist URL - {e}")
        return None

    def run(self) -> List[str]:
        """Build and return the directive lines."""
        whitelist = load_whitelist(self.whitelist_path())

        lines = self.fetch_feed()
        domains, stats = build_blacklist_with_stats(lines or [], whitelist)
        if lines is not None:
            logger.debug(f"Read {stats.lines} lines: {stats.skipped} skipped, "
                         f"{stats.malformed} malformed, {stats.invalid} invalid, "
                         f"{stats.whitelisted} whitelisted, {stats.duplicates} duplicates")
            logger.info(f"Found a total of {stats.unique} blacklisted unique domains")

        return render_directives(domains)


# ============================================================================
# CLI
# ============================================================================

def parse_arguments(argv: Optional[List[str]] = None) -> Config:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Unbound Blacklister v1.0",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("-u", "--url", default=BLACKLIST_URL,
                        help="Hosts-file blocklist URL")
    parser.add_argument("-w", "--whitelist", default=None,
                        help=f"Whitelist file (default: {WHITELIST_FILENAME} next to this program)")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT,
                        help="HTTP timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Only log errors")
    parser.add_argument("--version", action="version", version=f"Unbound Blacklister v{__version__}")

    args = parser.parse_args(argv)

    return Config(
        url=args.url,
        whitelist_file=args.whitelist,
        timeout=args.timeout,
        quiet=args.quiet,
        verbose=args.verbose
    )


def _configure_logging(config: Config) -> None:
    """Send log records to stdout as '#' comment lines."""
    if config.verbose:
        level = logging.DEBUG
    elif config.quiet:
        level = logging.ERROR
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout, force=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    config = parse_arguments(argv)
    _configure_logging(config)

    print(f"# {datetime.now().strftime(TIMESTAMP_FORMAT)}", flush=True)

    try:
        with HTTPClient(timeout=config.timeout) as client:
            directives = UnboundBlacklister(config, client).run()
    except InstallDirError as e:
        logger.error(f"Unexpected error while getting install location - {e}")
        return 1
    except WhitelistError as e:
        logger.error(f"Error while parsing whitelist file - {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user.")
        return 1

    for directive in directives:
        print(directive)
    return 0


if __name__ == "__main__":
    sys.exit(main())
