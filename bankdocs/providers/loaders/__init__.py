"""Source loaders, one per kind of document source."""

from bankdocs.providers.loaders.confluence_loader import ConfluenceLoader
from bankdocs.providers.loaders.jira_loader import JiraLoader
from bankdocs.providers.loaders.local_file_loader import LocalFileLoader
from bankdocs.providers.loaders.web_page_loader import WebPageLoader

__all__ = ["ConfluenceLoader", "JiraLoader", "LocalFileLoader", "WebPageLoader"]
