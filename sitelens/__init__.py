"""SiteLens — website scraping, crawling and AI enrichment."""

__version__ = "0.1.0"
