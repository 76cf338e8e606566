#!/usr/bin/env python3
"""Web scraping configuration check.

Prints the current scrape allow-list, validates every configured URL and
domain, and lists required environment variables that are still missing.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import ScrapeSettings, missing_required
from pipelines.whitelist import ScrapeWhitelist, is_valid_domain, is_valid_url

logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(levelname)s - %(message)s')

CONFIGURATION_GUIDE = """
Configuration Guide:
====================

To enable web scraping, set these environment variables:

# Comma-separated list of specific URLs (and their sub-paths) that can be scraped
ALLOWED_SCRAPE_URLS=https://example.com/page1,https://docs.example.com/api

# Comma-separated list of domains that can be scraped (all pages on these hosts)
ALLOWED_SCRAPE_DOMAINS=docs.example.com,api.example.com

# Examples:
# ALLOWED_SCRAPE_URLS=https://elasticpath.dev/docs/getting-started,https://elasticpath.com/pricing
# ALLOWED_SCRAPE_DOMAINS=elasticpath.dev,elasticpath.com

Security notes:
- Only URLs and domains on the allow-list can be scraped
- Domains match the exact hostname; subdomains must be listed separately
- Web scraping is disabled when both variables are empty
- Only enable scraping for trusted, public websites
"""


def print_current_configuration(whitelist: ScrapeWhitelist) -> None:
    print("\nCurrent Web Scraping Configuration:")
    print("===================================")

    if not whitelist.is_web_scraping_enabled():
        print("Web scraping is DISABLED")
        print("   No URLs or domains are configured in the whitelist.")
        return

    info = whitelist.get_whitelist_info()
    print("Web scraping is ENABLED")

    print(f"\nAllowed URLs ({info['totalAllowedUrls']}):")
    for index, url in enumerate(info['allowedUrls'], 1):
        print(f"   {index}. {url}")
    if not info['allowedUrls']:
        print("   None configured")

    print(f"\nAllowed Domains ({info['totalAllowedDomains']}):")
    for index, domain in enumerate(info['allowedDomains'], 1):
        print(f"   {index}. {domain}")
    if not info['allowedDomains']:
        print("   None configured")


def validate_configuration(whitelist: ScrapeWhitelist) -> bool:
    """Print per-entry validation results. Returns True when every entry is valid."""
    print("\nValidating Current Configuration:")
    print("=================================")

    print("\nValidating URLs:")
    for index, url in enumerate(whitelist.allowed_urls, 1):
        status = "OK     " if is_valid_url(url) else "INVALID"
        print(f"   [{status}] {index}. {url}")

    print("\nValidating domains:")
    for index, domain in enumerate(whitelist.allowed_domains, 1):
        status = "OK     " if is_valid_domain(domain) else "INVALID"
        print(f"   [{status}] {index}. {domain}")

    problems = whitelist.validate()
    has_errors = bool(problems['invalid_urls'] or problems['invalid_domains'])

    if has_errors:
        print("\nConfiguration has errors. Please fix the invalid URLs/domains.")
    elif whitelist.is_web_scraping_enabled():
        print("\nConfiguration is valid and web scraping is enabled.")
    else:
        print("\nWeb scraping is disabled (no URLs or domains configured).")

    return not has_errors


def print_missing_environment(missing: List[str]) -> None:
    if not missing:
        print("\nAll required environment variables are set.")
        return
    print("\nMissing required environment variables:")
    for name in missing:
        print(f"   - {name}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check the DocAssist web scraping configuration")
    parser.add_argument("--guide", action="store_true", help="Print the configuration guide")
    parser.add_argument("--validate-only", action="store_true", help="Only validate allow-list entries")
    args = parser.parse_args(argv)

    whitelist = ScrapeWhitelist.from_settings(ScrapeSettings.from_env())

    if not args.validate_only:
        print_current_configuration(whitelist)

    valid = validate_configuration(whitelist)

    if not args.validate_only:
        print_missing_environment(missing_required())
        if args.guide or not whitelist.is_web_scraping_enabled():
            print(CONFIGURATION_GUIDE)

    return 0 if valid else 1


if __name__ == "__main__":
    sys.exit(main())
