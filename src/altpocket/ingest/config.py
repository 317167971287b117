"""Constants for the content ingestion pipeline.

Deployment-tunable values (limits, timeouts, batch sizes) live in
:class:`altpocket.config.settings.Settings`.  The values here are fixed
parts of the pipeline's behaviour.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: User-agent string sent with every outbound request.
USER_AGENT: str = "altpocket/1.0"

#: Redirect cap used when no explicit value is configured.
DEFAULT_MAX_REDIRECTS: int = 5

# ---------------------------------------------------------------------------
# Content size guards
# ---------------------------------------------------------------------------

#: Maximum excerpt size (UTF-8 bytes).
EXCERPT_LIMIT_BYTES: int = 200

# ---------------------------------------------------------------------------
# URL canonicalization
# ---------------------------------------------------------------------------

#: Query-parameter prefix (lowercased) stripped during canonicalization.
TRACKING_PARAM_PREFIX: str = "utm_"

#: Click-tracking query-parameter names (lowercased) stripped during
#: canonicalization.
TRACKING_PARAMS: frozenset[str] = frozenset({"fbclid", "gclid"})

# ---------------------------------------------------------------------------
# Readability extraction
# ---------------------------------------------------------------------------

#: Subtrees removed before content-root selection.  Attribute substring
#: matches are case-sensitive on the attribute value as authored.
PRUNE_SELECTORS: tuple[str, ...] = (
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "canvas",
    "svg",
    "object",
    "embed",
    "nav",
    "aside",
    "footer",
    "form",
    "button",
    "input",
    "select",
    "textarea",
    "[hidden]",
    "[aria-hidden='true']",
    "[role='navigation']",
    "[role='contentinfo']",
    "[role='search']",
    "[style*='display:none']",
    "[style*='visibility:hidden']",
    "[class*='sidebar']",
    "[class*='footer']",
    "[class*='nav']",
    "[class*='menu']",
    "[class*='breadcrumb']",
    "[class*='share']",
    "[class*='social']",
    "[class*='related']",
    "[class*='comment']",
    "[class*='ad-']",
    "[class*='ads']",
    "[id*='sidebar']",
    "[id*='footer']",
    "[id*='nav']",
    "[id*='menu']",
    "[id*='breadcrumb']",
    "[id*='comment']",
    "[id*='ad-']",
    "[id*='ads']",
)

#: Content-root candidates, in priority order for equal scores.
CONTENT_SELECTORS: tuple[str, ...] = (
    "article",
    "main",
    "[role='main']",
    "#content",
    "#main",
    ".content",
    ".main",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".article-body",
    ".markdown-body",
)

#: Elements whose text becomes one block of article text each.
BLOCK_SELECTOR: str = "h1, h2, h3, h4, h5, h6, p, li, blockquote, pre"
