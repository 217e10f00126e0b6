"""Convert package: HTML to compact, de-duplicated markdown."""

from pagedistill.convert.cleanup import CLEANUP_RULES, TextRule, apply_rules
from pagedistill.convert.dedupe import dedupe
from pagedistill.convert.markdown import to_markdown

__all__ = ["to_markdown", "dedupe", "apply_rules", "CLEANUP_RULES", "TextRule"]
