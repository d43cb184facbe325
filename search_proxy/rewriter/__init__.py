from search_proxy.rewriter.html import Rewriter, RewriteRule, rewrite_html

__all__ = ["Rewriter", "RewriteRule", "rewrite_html"]
