"""
Attribution fields parsed from the page URL and the referrer.

Campaign parameters (utm_*) and ad-network click identifiers are read from the
page URL's query string. The referrer is split into domain, path and query;
referrals from the tracked site itself are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import SplitResult, parse_qs, urlsplit

from umami_common.exceptions import InvalidInput

from .attribute_store import truncate

UTM_PARAMS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")
CLICK_ID_PARAMS = ("gclid", "fbclid", "msclkid", "ttclid", "li_fat_id", "twclid")

URL_FIELD_LENGTH = 500
CAMPAIGN_FIELD_LENGTH = 255
HOSTNAME_LENGTH = 100


def _split(value: str, field_name: str) -> SplitResult:
    try:
        return urlsplit(value.strip())
    except ValueError as e:
        msg = f"{field_name} is not a valid URL: {e}"
        raise InvalidInput(msg, field=field_name) from e


def _bare_host(host: str | None) -> str | None:
    if not host:
        return None
    host = host.lower().split(":", 1)[0]
    return host[4:] if host.startswith("www.") else host


@dataclass
class Attribution:
    url_path: str
    url_query: str | None = None
    hostname: str | None = None
    referrer_domain: str | None = None
    referrer_path: str | None = None
    referrer_query: str | None = None
    campaign: dict[str, str] = field(default_factory=dict)

    def as_columns(self) -> dict[str, str | None]:
        columns: dict[str, str | None] = {
            "url_path": self.url_path,
            "url_query": self.url_query,
            "hostname": self.hostname,
            "referrer_domain": self.referrer_domain,
            "referrer_path": self.referrer_path,
            "referrer_query": self.referrer_query,
        }
        for name in UTM_PARAMS + CLICK_ID_PARAMS:
            columns[name] = self.campaign.get(name)
        return columns


def parse_attribution(
    url: str | None,
    referrer: str | None = None,
    hostname: str | None = None,
    site_domain: str | None = None,
) -> Attribution:
    """
    Parse a tracked page URL and its referrer.

    Args:
        url: Absolute URL or path (with optional query) of the page.
        referrer: Referrer URL as reported by the browser.
        hostname: Host the hit was sent from. Defaults to the URL's host.
        site_domain: Configured domain of the website, for self-referral detection.

    Raises:
        InvalidInput: If ``url`` is missing or blank, or ``url`` or ``referrer``
            cannot be parsed as a URL.
    """
    if url is None or not url.strip():
        msg = "url is required"
        raise InvalidInput(msg, field="url")

    page = _split(url, "url")
    host = hostname or page.hostname
    params = parse_qs(page.query, keep_blank_values=False)

    campaign = {}
    for name in UTM_PARAMS + CLICK_ID_PARAMS:
        values = params.get(name)
        if values:
            campaign[name] = truncate(values[0], CAMPAIGN_FIELD_LENGTH, name)

    attribution = Attribution(
        url_path=truncate(page.path or "/", URL_FIELD_LENGTH, "url_path"),
        url_query=truncate(page.query, URL_FIELD_LENGTH, "url_query") or None,
        hostname=truncate(host.lower(), HOSTNAME_LENGTH, "hostname") if host else None,
        campaign=campaign,
    )

    if referrer and referrer.strip():
        ref = _split(referrer, "referrer")
        ref_domain = _bare_host(ref.hostname)
        own_domains = {_bare_host(host), _bare_host(site_domain)} - {None}
        if ref_domain and ref_domain not in own_domains:
            attribution.referrer_domain = truncate(ref_domain, URL_FIELD_LENGTH, "referrer_domain")
            attribution.referrer_path = truncate(ref.path or None, URL_FIELD_LENGTH, "referrer_path")
            attribution.referrer_query = truncate(ref.query or None, URL_FIELD_LENGTH, "referrer_query")

    return attribution
