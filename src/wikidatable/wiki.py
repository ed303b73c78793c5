import json
import logging

import mwclient
import requests

from . import config
from .errors import ConfigurationError, WriteError

logger = logging.getLogger(__name__)


class WikiClient:
    """Page reads and writes against the target wiki through mwclient."""

    def __init__(self, site=None, host=config.WIKI_HOST, path=config.WIKI_PATH):
        self.site = site or mwclient.Site(host, path=path, clients_useragent=config.HEADERS["User-Agent"])

    def login(self, username=config.WIKI_USERNAME, password=config.WIKI_PASSWORD):
        """Log in when credentials are configured; anonymous sessions can still read."""
        if not username or not password:
            logger.info("[*] No wiki credentials configured; continuing anonymously.")
            return False
        self.site.login(username, password)
        logger.info("[+] Logged in to %s as %s", config.WIKI_HOST, username)
        return True

    def fetch_wikitext(self, title):
        """Return the current wikitext of a page."""
        try:
            page = self.site.pages[title]
            if not page.exists:
                raise ConfigurationError("MISSING_PAGE", f"Page {title!r} does not exist.", {"title": title})
            return page.text()
        except (mwclient.errors.MwClientError, requests.RequestException) as exc:
            raise ConfigurationError("PAGE_READ", f"Could not read page {title!r}.", {"error": str(exc)})

    def load_json(self, title):
        """Return the decoded JSON content of a page."""
        text = self.fetch_wikitext(title)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            details = {"title": title, "message": exc.msg, "line": exc.lineno, "column": exc.colno}
            raise ConfigurationError("INVALID_JSON", f"Page {title!r} is not valid JSON.", details)
        return payload

    def save_page(self, title, text, summary=config.EDIT_SUMMARY):
        """Write a page as a non-minor bot edit."""
        try:
            self.site.pages[title].edit(text, summary=summary, minor=False, bot=True)
        except (mwclient.errors.MwClientError, requests.RequestException) as exc:
            raise WriteError("PAGE_WRITE", f"Saving {title!r} failed.", {"error": str(exc)})
        logger.info("[+] Saved %s", title)
