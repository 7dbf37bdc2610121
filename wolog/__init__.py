"""
wolog - a Markdown publishing core with search, feeds and webmentions.

This package loads a directory of Markdown articles into an in-memory index,
answers search and tag queries over it, renders RSS feeds and implements
the webmention protocol in both directions.

Main entry point is the Site facade, or the CLI via the `wolog` command.

Example:
    $ wolog search blog --tag python --sort NameAsc -d articles/
"""

__all__ = ["__version__", "Site", "load_config"]
__version__ = "0.1.0"

from .config import load_config
from .site import Site
