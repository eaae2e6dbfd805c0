"""Cheap CJK detection for choosing a translation direction."""

import re

# CJK Unified Ideographs block only.
_CJK_IDEOGRAPH = re.compile('[\u4e00-\u9fff]')


def is_cjk(text: str | None) -> bool:
    """True if ``text`` contains at least one CJK unified ideograph."""
    if not text:
        return False
    return _CJK_IDEOGRAPH.search(text) is not None
