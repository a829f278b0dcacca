"""
Exceptions raised by the crawler core.
"""


class SpiderError(Exception):
    """Fatal configuration or lifecycle error raised at the offending call."""
    pass


class DownloadError(Exception):
    """A single request could not be fetched."""

    def __init__(self, url: str, message: str, status_code: int = 0):
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status_code = status_code
