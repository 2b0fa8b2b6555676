"""
Link pipeline: extracts, canonicalizes and filters links from fetched pages.
"""

import re
import logging
from typing import List, Optional
from bs4 import BeautifulSoup
from yarl import URL

from ..utils.config import Settings

SCHEME_PATTERN = re.compile(
    r"^(?:https?|ftp|ftps|mailto|javascript|tel|sms|data|file|about|irc|news|ws|wss):",
    re.IGNORECASE
)
DUPLICATE_SLASHES = re.compile(r'/{2,}')


def _remove_dot_segments(path: str) -> str:
    """Resolve '.' and '..' segments, keeping a trailing slash."""
    segments = path.split('/')
    output: List[str] = []
    for segment in segments[1:]:
        if segment == '..':
            if output:
                output.pop()
        elif segment != '.':
            output.append(segment)
    if segments[-1] in ('.', '..'):
        output.append('')
    return '/' + '/'.join(output)


def canonicalize(link: str) -> Optional[str]:
    """
    Normalize an absolute URL into a single comparable form.

    Scheme and host are lowercased, the default port is dropped, duplicate
    slashes are collapsed and dot segments resolved. Returns None for links
    that cannot be parsed or are not http(s) with a host.
    """
    try:
        url = URL(link)
        scheme = url.scheme.lower()
        host = url.raw_host
        if scheme not in ('http', 'https') or not host:
            return None

        path = url.raw_path or '/'
        path = _remove_dot_segments(DUPLICATE_SLASHES.sub('/', path))
        port = None if url.is_default_port() else url.port

        netloc = host.lower()
        if ':' in netloc:
            # IPv6 literal
            netloc = f'[{netloc}]'
        if port is not None:
            netloc = f'{netloc}:{port}'
        if url.raw_user:
            userinfo = url.raw_user
            if url.raw_password is not None:
                userinfo = f'{userinfo}:{url.raw_password}'
            netloc = f'{userinfo}@{netloc}'

        normalized = f'{scheme}://{netloc}{path}'
        if url.raw_query_string:
            normalized += '?' + url.raw_query_string
        if url.raw_fragment:
            normalized += '#' + url.raw_fragment
        return normalized
    except (ValueError, TypeError, UnicodeError):
        return None


class LinkPipeline:
    """
    Turns a fetched page into candidate URLs for the frontier.

    The steps always run in the same order, so the same href under the same
    settings always yields the same candidate or the same discard decision.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def extract_links(self, body: bytes) -> List[str]:
        """Return raw href values of anchor elements in document order."""
        soup = BeautifulSoup(body, 'lxml')
        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if href:
                links.append(href)
        return links

    def _resolve(self, link: str) -> str:
        base_url = self.settings.base_url
        if link and not SCHEME_PATTERN.match(link):
            if not base_url.endswith('/') and not link.startswith('/'):
                link = '/' + link
            link = base_url + link
        return link

    def filter_link(self, href: str) -> Optional[str]:
        """Apply the filter steps to one href. Returns the candidate or None."""
        link = href
        if '?' in link and not self.settings.allow_query_parameters:
            link = link.split('?', 1)[0]

        if '#' in link and not self.settings.allow_hash_parameters:
            link = link.split('#', 1)[0]

        link = self._resolve(link)

        # Same-site scope
        if self.settings.base_url not in link:
            return None

        normalized = canonicalize(link)
        if not normalized:
            return None

        for keyword in self.settings.keywords_to_exclude:
            if keyword in normalized:
                return None

        if self.settings.keywords_to_include:
            if not any(keyword in normalized for keyword in self.settings.keywords_to_include):
                return None

        return normalized

    def candidates(self, status_code: int, body: bytes) -> List[str]:
        """
        Candidate URLs from a fetched page. Duplicates within one page are
        kept; global dedup happens when the frontier admits them.
        """
        if status_code != 200 or self.settings.dont_follow_links:
            return []

        links = self.extract_links(body)
        candidates = []
        for href in links:
            candidate = self.filter_link(href)
            if candidate is not None:
                candidates.append(candidate)

        self.logger.debug(f"Kept {len(candidates)} of {len(links)} links")
        return candidates
