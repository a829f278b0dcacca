"""
Extraction strategies: turn a fetched page into result fields and follow-ups.
"""

import re
import logging
from typing import List, Optional, Set
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, Comment

from .page import Page
from .site import Site


SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.ico', '.woff', '.woff2', '.ttf', '.eot'
)


class PageProcessor:
    """
    Abstract base class for extraction strategies.

    `process` mutates the page in place: put result fields, add target
    requests, or set `skip`, `is_need_cycle_retry` or `miss_target_urls`.
    One instance is shared by every worker, so implementations must be
    safe to call concurrently.
    """

    def __init__(self, site: Optional[Site] = None):
        self.site = site or Site()

    def process(self, page: Page):
        raise NotImplementedError

    def close(self):
        pass


class LinkPageProcessor(PageProcessor):
    """
    Extracts title, description and main text, and follows every in-scope link.
    """

    def __init__(self, site: Optional[Site] = None):
        super().__init__(site)
        self.logger = logging.getLogger(__name__)
        self.allowed_domains: Set[str] = set(self.site.allowed_domains)
        self.blocked_domains: Set[str] = set(self.site.blocked_domains)
        self.whitespace_pattern = re.compile(r'\s+')

    def process(self, page: Page):
        if not page.content:
            page.result_items.skip = True
            return

        soup = BeautifulSoup(page.content, 'lxml')

        for element in soup(["script", "style", "noscript"]):
            element.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        page.put_field('url', page.url)

        title_tag = soup.find('title')
        if title_tag:
            page.put_field('title', self._clean_text(title_tag.get_text()))

        meta_desc = soup.find('meta', attrs={'name': 'description'}) or \
            soup.find('meta', attrs={'property': 'og:description'})
        if meta_desc:
            page.put_field('description', self._clean_text(meta_desc.get('content', '')))

        content = self._extract_main_content(soup)
        page.put_field('content', content)
        page.put_field('word_count', len(content.split()) if content else 0)

        links = self._extract_links(soup, page.url)
        page.add_target_requests(links)

        self.logger.debug(f"Processed {page.url}: {len(links)} links")

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        """Extract main text content."""
        for selector in ('main', 'article', '[role="main"]', '#content', '#main'):
            content_element = soup.select_one(selector)
            if content_element:
                break
        else:
            content_element = soup.find('body') or soup

        for unwanted in content_element.select('nav, footer, aside'):
            unwanted.decompose()

        return self._clean_text(content_element.get_text(separator=' ', strip=True))

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Extract and normalize links, preserving document order."""
        links = []
        seen = set()

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            absolute_url = self._normalize_url(urljoin(base_url, href))
            if absolute_url not in seen and self._is_valid_url(absolute_url):
                seen.add(absolute_url)
                links.append(absolute_url)

        return links

    def _normalize_url(self, url: str) -> str:
        """Lowercase the host and drop the fragment."""
        parsed = urlparse(url)
        return urlunparse((
            parsed.scheme,
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            parsed.query,
            ''
        ))

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is in scope for crawling."""
        parsed = urlparse(url)

        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return False

        domain = parsed.netloc.lower()

        if any(blocked in domain for blocked in self.blocked_domains):
            return False

        if self.allowed_domains and not any(allowed in domain for allowed in self.allowed_domains):
            return False

        return not parsed.path.lower().endswith(SKIP_EXTENSIONS)

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
